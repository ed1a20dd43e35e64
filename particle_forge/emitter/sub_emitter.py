# Spawn children where particles of a given type die

import math
from dataclasses import dataclass
from typing import Optional

from particle_forge.error import ConfigurationError


@dataclass(frozen=True)
class SubEmitter:
    """
    When a particle of parent_type dies, spawn count particles of
    child_type at its position. Children fly off inside a cone of half
    angle spread around +Y (pi covers every direction) at a speed drawn
    from the speed range, plus inherit_velocity times the parent velocity.
    They take child_color or, without one, the parent color.
    """

    parent_type: Optional[int] = 0
    child_type: int = 0
    count: int = 10
    speed: tuple = (0.5, 1.5)
    spread: float = math.pi
    inherit_velocity: float = 0.3
    child_color: Optional[tuple] = None
    spawn_radius: float = 0.0

    def __post_init__(self):
        if self.count < 1:
            raise ConfigurationError("SubEmitter count must be >= 1, got {}".format(self.count))
        if len(self.speed) != 2 or self.speed[0] > self.speed[1]:
            raise ConfigurationError("SubEmitter speed must be a (min, max) pair, got {!r}".format(self.speed))
        if self.spawn_radius < 0.0:
            raise ConfigurationError("SubEmitter spawn_radius must be >= 0")
        object.__setattr__(self, "inherit_velocity", min(max(float(self.inherit_velocity), 0.0), 1.0))

    @property
    def name(self) -> str:
        return "SubEmitter"

    def trigger(self, ctx, source: int):
        """
        Nodes run after the rules, queueing the particle when it died
        during this step
        """
        condition = "{alive} == wp.uint32(0)"
        params = {}
        if self.parent_type is not None:
            condition += " and {type_tag} == {t}"
            params["t"] = ctx.uint(self.parent_type)
        return [ctx.branch(condition, [ctx.push_spawn(source)], **params)]

    def spawn(self, ctx):
        nodes = [ctx.code(
            """
            {l}angle = wp.randf(rng) * 2.0 * wp.pi
            {l}tilt = wp.randf(rng) * {spread}
            {l}dir = wp.vec3(wp.sin({l}tilt) * wp.cos({l}angle), wp.cos({l}tilt), wp.sin({l}tilt) * wp.sin({l}angle))
            {pos} = parent_pos + wp.sample_unit_sphere(rng) * {radius}
            {vel} = parent_vel * {inherit} + {l}dir * wp.randf(rng, {lo}, {hi})
            {type_tag} = {t}
            """,
            spread=ctx.number(self.spread),
            radius=ctx.number(self.spawn_radius),
            inherit=ctx.number(self.inherit_velocity),
            lo=ctx.number(self.speed[0]),
            hi=ctx.number(self.speed[1]),
            t=ctx.uint(self.child_type),
        )]
        if ctx.layout.color is not None:
            if self.child_color is not None:
                rgba = "wp.vec4({}, {}, {}, 1.0)".format(*(ctx.number(c) for c in self.child_color))
            else:
                rgba = "parent_color"
            nodes.append(ctx.code(ctx.assign_color4(rgba)))
        return nodes
