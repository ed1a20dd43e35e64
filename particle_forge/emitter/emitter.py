# Emitters respawn dead particles while the simulation runs

import math
from dataclasses import dataclass
from typing import Any, Optional

from particle_forge.error import ConfigurationError


@dataclass
class EmitterState:
    """
    Host side schedule of one emitter: fractional particles carried over
    between steps and whether a burst already fired.
    """

    carry: float = 0.0
    fired: bool = False


class Emitter:
    """
    Base class of the emitters. Every step an emitter asks for a number of
    particles (schedule) and each one is initialized in a free slot by the
    generated code of spawn. The slot starts from the schema defaults with
    alive = 1 and age = 0.
    """

    def schedule(self, state: EmitterState, time: float, delta_time: float) -> int:
        raise NotImplementedError

    def spawn(self, ctx):
        raise NotImplementedError

    @property
    def name(self) -> str:
        return type(self).__name__

    def _rate_schedule(self, state, delta_time):
        state.carry += self.rate * delta_time
        count = int(state.carry)
        state.carry -= count
        return count

    def _check_rate(self):
        if not (isinstance(self.rate, (int, float)) and math.isfinite(self.rate) and self.rate >= 0.0):
            raise ConfigurationError(
                "{} rate must be a finite non negative number, got {!r}".format(self.name, self.rate)
            )

    def _identity(self, ctx):
        # Type tag and optional color shared by every emitter
        nodes = [ctx.code("{type_tag} = {t}", t=ctx.uint(self.particle_type))]
        if self.color is not None:
            if len(self.color) != 3:
                raise ConfigurationError("{} color needs 3 components".format(self.name))
            rgba = "wp.vec4({}, {}, {}, 1.0)".format(*(ctx.number(c) for c in self.color))
            nodes.append(ctx.code(ctx.assign_color4(rgba)))
        return nodes


@dataclass(frozen=True)
class PointEmitter(Emitter):
    """
    Emit from a single point. With a positive speed particles leave in a
    random direction at that speed, otherwise with a random velocity in
    [-0.5, 0.5] per axis.
    """

    position: Any = (0.0, 0.0, 0.0)
    rate: float = 100.0
    speed: Any = 0.0
    particle_type: int = 0
    color: Optional[tuple] = None

    def __post_init__(self):
        self._check_rate()

    def schedule(self, state, time, delta_time):
        return self._rate_schedule(state, delta_time)

    def spawn(self, ctx):
        nodes = [ctx.code("{pos} = {p}", p=ctx.vec3(self.position))]
        if isinstance(self.speed, (int, float)) and self.speed <= 0.0:
            nodes.append(ctx.code(
                "{vel} = wp.vec3(wp.randf(rng, -1.0, 1.0), wp.randf(rng, -1.0, 1.0), wp.randf(rng, -1.0, 1.0)) * 0.5"
            ))
        else:
            nodes.append(ctx.code(
                "{vel} = wp.sample_unit_sphere_surface(rng) * {s}",
                s=ctx.value(self.speed),
            ))
        return nodes + self._identity(ctx)


@dataclass(frozen=True)
class BurstEmitter(Emitter):
    """
    Spawn count particles once, on the first step ending at or after
    at_time, flying outward at speed.
    """

    position: Any = (0.0, 0.0, 0.0)
    count: int = 100
    speed: Any = 1.0
    at_time: float = 0.0
    particle_type: int = 0
    color: Optional[tuple] = None

    def __post_init__(self):
        if self.count < 0:
            raise ConfigurationError("BurstEmitter count must be >= 0, got {}".format(self.count))

    def schedule(self, state, time, delta_time):
        if state.fired or time < self.at_time:
            return 0
        state.fired = True
        return self.count

    def spawn(self, ctx):
        return [
            ctx.code(
                """
                {pos} = {p}
                {vel} = wp.sample_unit_sphere_surface(rng) * {s}
                """,
                p=ctx.vec3(self.position),
                s=ctx.value(self.speed),
            ),
        ] + self._identity(ctx)


@dataclass(frozen=True)
class ConeEmitter(Emitter):
    """
    Emit along direction, spread is the cone half angle in radians.
    """

    position: Any = (0.0, 0.0, 0.0)
    direction: Any = (0.0, 1.0, 0.0)
    speed: Any = 1.0
    spread: Any = 0.3
    rate: float = 100.0
    particle_type: int = 0
    color: Optional[tuple] = None

    def __post_init__(self):
        self._check_rate()

    def schedule(self, state, time, delta_time):
        return self._rate_schedule(state, delta_time)

    def spawn(self, ctx):
        return [
            ctx.code(
                """
                {l}base = {dir}
                {l}up = wp.vec3(0.0, 1.0, 0.0)
                """,
                dir=ctx.unit_vec3(self.direction),
            ),
            ctx.branch("wp.abs({l}base[1]) > 0.9", [ctx.code("{l}up = wp.vec3(1.0, 0.0, 0.0)")]),
            ctx.code(
                """
                {l}right = wp.normalize(wp.cross({l}up, {l}base))
                {l}forward = wp.cross({l}base, {l}right)
                {l}angle = wp.randf(rng) * 2.0 * wp.pi
                {l}tilt = wp.randf(rng) * {spread}
                {l}dir = {l}right * (wp.sin({l}tilt) * wp.cos({l}angle)) + {l}forward * (wp.sin({l}tilt) * wp.sin({l}angle)) + {l}base * wp.cos({l}tilt)
                {pos} = {p}
                {vel} = wp.normalize({l}dir) * {s}
                """,
                spread=ctx.value(self.spread),
                p=ctx.vec3(self.position),
                s=ctx.value(self.speed),
            ),
        ] + self._identity(ctx)


@dataclass(frozen=True)
class SphereEmitter(Emitter):
    """
    Emit from the surface of a sphere, moving outward (negative speed
    moves inward).
    """

    center: Any = (0.0, 0.0, 0.0)
    radius: Any = 0.5
    speed: Any = 0.0
    rate: float = 100.0
    particle_type: int = 0
    color: Optional[tuple] = None

    def __post_init__(self):
        self._check_rate()

    def schedule(self, state, time, delta_time):
        return self._rate_schedule(state, delta_time)

    def spawn(self, ctx):
        return [
            ctx.code(
                """
                {l}dir = wp.sample_unit_sphere_surface(rng)
                {pos} = {center} + {l}dir * {r}
                {vel} = {l}dir * {s}
                """,
                center=ctx.vec3(self.center),
                r=ctx.value(self.radius),
                s=ctx.value(self.speed),
            ),
        ] + self._identity(ctx)


@dataclass(frozen=True)
class BoxEmitter(Emitter):
    """
    Emit uniformly inside the box [min, max] with a fixed velocity.
    """

    min: tuple = (-0.5, -0.5, -0.5)
    max: tuple = (0.5, 0.5, 0.5)
    velocity: Any = (0.0, 0.0, 0.0)
    rate: float = 100.0
    particle_type: int = 0
    color: Optional[tuple] = None

    def __post_init__(self):
        self._check_rate()
        if len(self.min) != 3 or len(self.max) != 3:
            raise ConfigurationError("BoxEmitter corners need 3 components")
        if any(lo > hi for lo, hi in zip(self.min, self.max)):
            raise ConfigurationError("BoxEmitter min must not exceed max")

    def schedule(self, state, time, delta_time):
        return self._rate_schedule(state, delta_time)

    def spawn(self, ctx):
        axes = ", ".join(
            "wp.randf(rng, {}, {})".format(ctx.number(lo), ctx.number(hi))
            for lo, hi in zip(self.min, self.max)
        )
        return [
            ctx.code(
                """
                {pos} = wp.vec3({axes})
                {vel} = {v}
                """,
                axes=axes,
                v=ctx.vec3(self.velocity),
            ),
        ] + self._identity(ctx)
