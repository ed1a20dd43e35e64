# Rules driven by the neighbor query

from dataclasses import dataclass
from typing import Any, Optional

from particle_forge.error import ConfigurationError
from particle_forge.rule.rule import NeighborRule, Falloff


def _other(ctx, name: str) -> str:
    return "other." + name


def _other_type(ctx) -> str:
    return _other(ctx, ctx.layout.type_tag)


@dataclass(frozen=True)
class Separate(NeighborRule):
    """
    Steer away from neighbors closer than radius.
    """

    radius: Any = 0.1
    strength: Any = 1.0

    category = "Flocking"

    def setup(self, ctx):
        return [ctx.code("{l}force = wp.vec3(0.0, 0.0, 0.0)")]

    def body(self, ctx):
        r = ctx.value(self.radius)
        return [ctx.branch("neighbor_dist < {r} and neighbor_dist > 0.0001", [ctx.code(
            "{l}force = {l}force + neighbor_dir * (({r} - neighbor_dist) / {r})", r=r,
        )], r=r)]

    def finish(self, ctx):
        return [ctx.code("{vel} = {vel} + {l}force * {s} * {dt}", s=ctx.value(self.strength))]


@dataclass(frozen=True)
class Cohere(NeighborRule):
    """
    Steer toward the center of neighbors within radius.
    """

    radius: Any = 0.2
    strength: Any = 1.0

    category = "Flocking"

    def setup(self, ctx):
        return [ctx.code(
            """
            {l}center = wp.vec3(0.0, 0.0, 0.0)
            {l}count = float(0.0)
            """
        )]

    def body(self, ctx):
        return [ctx.branch("neighbor_dist < {r}", [ctx.code(
            """
            {l}center = {l}center + neighbor_pos
            {l}count = {l}count + 1.0
            """
        )], r=ctx.value(self.radius))]

    def finish(self, ctx):
        return [ctx.branch("{l}count > 0.0", [ctx.code(
            "{vel} = {vel} + ({l}center / {l}count - {pos}) * {s} * {dt}",
            s=ctx.value(self.strength),
        )])]


@dataclass(frozen=True)
class Align(NeighborRule):
    """
    Match the average velocity of neighbors within radius.
    """

    radius: Any = 0.2
    strength: Any = 1.0

    category = "Flocking"

    def setup(self, ctx):
        return [ctx.code(
            """
            {l}heading = wp.vec3(0.0, 0.0, 0.0)
            {l}count = float(0.0)
            """
        )]

    def body(self, ctx):
        return [ctx.branch("neighbor_dist < {r}", [ctx.code(
            """
            {l}heading = {l}heading + neighbor_vel
            {l}count = {l}count + 1.0
            """
        )], r=ctx.value(self.radius))]

    def finish(self, ctx):
        return [ctx.branch("{l}count > 0.0", [ctx.code(
            "{vel} = {vel} + ({l}heading / {l}count - {vel}) * {s} * {dt}",
            s=ctx.value(self.strength),
        )])]


@dataclass(frozen=True)
class Flock(NeighborRule):
    """
    Separation, cohesion and alignment from a single neighbor pass.
    """

    radius: Any = 0.2
    separation: Any = 1.0
    cohesion: Any = 1.0
    alignment: Any = 1.0

    category = "Flocking"

    def setup(self, ctx):
        return [ctx.code(
            """
            {l}force = wp.vec3(0.0, 0.0, 0.0)
            {l}center = wp.vec3(0.0, 0.0, 0.0)
            {l}heading = wp.vec3(0.0, 0.0, 0.0)
            {l}count = float(0.0)
            """
        )]

    def body(self, ctx):
        r = ctx.value(self.radius)
        return [ctx.branch("neighbor_dist < {r}", [ctx.code(
            """
            {l}force = {l}force + neighbor_dir * (({r} - neighbor_dist) / {r})
            {l}center = {l}center + neighbor_pos
            {l}heading = {l}heading + neighbor_vel
            {l}count = {l}count + 1.0
            """,
            r=r,
        )], r=r)]

    def finish(self, ctx):
        return [ctx.branch("{l}count > 0.0", [ctx.code(
            """
            {l}steer = {l}force * {sep}
            {l}steer = {l}steer + ({l}center / {l}count - {pos}) * {coh}
            {l}steer = {l}steer + ({l}heading / {l}count - {vel}) * {ali}
            {vel} = {vel} + {l}steer * {dt}
            """,
            sep=ctx.value(self.separation),
            coh=ctx.value(self.cohesion),
            ali=ctx.value(self.alignment),
        )])]


@dataclass(frozen=True)
class Avoid(NeighborRule):
    """
    Strong short range repulsion, growing as 1 / distance.
    """

    radius: Any = 0.1
    strength: Any = 1.0

    category = "Flocking"

    def setup(self, ctx):
        return [ctx.code("{l}force = wp.vec3(0.0, 0.0, 0.0)")]

    def body(self, ctx):
        r = ctx.value(self.radius)
        return [ctx.branch("neighbor_dist < {r}", [ctx.code(
            "{l}force = {l}force + neighbor_dir * (1.0 / wp.max(neighbor_dist, 0.01) - 1.0 / {r})",
            r=r,
        )], r=r)]

    def finish(self, ctx):
        return [ctx.code("{vel} = {vel} + {l}force * {s} * {dt}", s=ctx.value(self.strength))]


@dataclass(frozen=True)
class Collide(NeighborRule):
    """
    Resolve overlaps between spheres of the given radius and reflect the
    approaching part of the relative velocity.
    """

    radius: Any = 0.05
    restitution: Any = 0.5

    category = "Physics"

    def setup(self, ctx):
        return [ctx.code(
            """
            {l}push = wp.vec3(0.0, 0.0, 0.0)
            {l}impulse = wp.vec3(0.0, 0.0, 0.0)
            """
        )]

    def body(self, ctx):
        r = ctx.value(self.radius)
        return [ctx.branch("neighbor_dist < {r} and neighbor_dist > 0.0001", [
            ctx.code(
                """
                {l}push = {l}push + neighbor_dir * (({r} - neighbor_dist) * 0.5)
                {l}vn = wp.dot({vel} - neighbor_vel, neighbor_dir)
                """,
                r=r,
            ),
            ctx.branch("{l}vn < 0.0", [ctx.code(
                "{l}impulse = {l}impulse - neighbor_dir * ({l}vn * (1.0 + {e}) * 0.5)",
                e=ctx.value(self.restitution),
            )]),
        ], r=r)]

    def finish(self, ctx):
        return [ctx.code(
            """
            {pos} = {pos} + {l}push
            {vel} = {vel} + {l}impulse
            """
        )]


@dataclass(frozen=True)
class NBodyGravity(NeighborRule):
    strength: Any = 0.01
    softening: Any = 0.05
    radius: Any = 0.5

    category = "Physics"

    def setup(self, ctx):
        return [ctx.code("{l}force = wp.vec3(0.0, 0.0, 0.0)")]

    def body(self, ctx):
        soft = ctx.value(self.softening)
        return [ctx.branch("neighbor_dist < {r}", [ctx.code(
            "{l}force = {l}force - neighbor_dir * ({s} / (neighbor_dist * neighbor_dist + {soft} * {soft}))",
            s=ctx.value(self.strength),
            soft=soft,
        )], r=ctx.value(self.radius))]

    def finish(self, ctx):
        return [ctx.code("{vel} = {vel} + {l}force * {dt}")]


@dataclass(frozen=True)
class LennardJones(NeighborRule):
    """
    Lennard-Jones 12-6 potential, force clamped to keep close encounters
    stable.
    """

    epsilon: Any = 1.0
    sigma: Any = 0.05
    cutoff: Any = 0.15

    category = "Physics"

    def setup(self, ctx):
        return [ctx.code("{l}force = wp.vec3(0.0, 0.0, 0.0)")]

    def body(self, ctx):
        sigma = ctx.value(self.sigma)
        return [ctx.branch("neighbor_dist < {cutoff} and neighbor_dist > 0.0001", [ctx.code(
            """
            {l}rd = wp.max(neighbor_dist, {sigma} * 0.5)
            {l}sr = {sigma} / {l}rd
            {l}sr6 = {l}sr * {l}sr * {l}sr * {l}sr * {l}sr * {l}sr
            {l}mag = 24.0 * {eps} * (2.0 * {l}sr6 * {l}sr6 - {l}sr6) / {l}rd
            {l}force = {l}force + neighbor_dir * wp.clamp({l}mag, -1000.0, 1000.0)
            """,
            sigma=sigma,
            eps=ctx.value(self.epsilon),
        )], cutoff=ctx.value(self.cutoff))]

    def finish(self, ctx):
        return [ctx.code("{vel} = {vel} + {l}force * {dt}")]


@dataclass(frozen=True)
class Viscosity(NeighborRule):
    radius: Any = 0.1
    strength: Any = 1.0

    category = "Physics"

    def setup(self, ctx):
        return [ctx.code(
            """
            {l}delta = wp.vec3(0.0, 0.0, 0.0)
            {l}weight = float(0.0)
            """
        )]

    def body(self, ctx):
        r = ctx.value(self.radius)
        return [ctx.branch("neighbor_dist < {r}", [ctx.code(
            """
            {l}w = 1.0 - neighbor_dist / {r}
            {l}delta = {l}delta + (neighbor_vel - {vel}) * {l}w
            {l}weight = {l}weight + {l}w
            """,
            r=r,
        )], r=r)]

    def finish(self, ctx):
        return [ctx.branch("{l}weight > 0.0", [ctx.code(
            "{vel} = {vel} + {l}delta / {l}weight * {s} * {dt}",
            s=ctx.value(self.strength),
        )])]


@dataclass(frozen=True)
class Pressure(NeighborRule):
    """
    Push apart where the local density exceeds target_density.
    """

    radius: Any = 0.1
    strength: Any = 1.0
    target_density: Any = 1.0

    category = "Physics"

    def setup(self, ctx):
        return [ctx.code(
            """
            {l}density = float(0.0)
            {l}push = wp.vec3(0.0, 0.0, 0.0)
            """
        )]

    def body(self, ctx):
        r = ctx.value(self.radius)
        return [ctx.branch("neighbor_dist < {r}", [ctx.code(
            """
            {l}w = 1.0 - neighbor_dist / {r}
            {l}density = {l}density + {l}w * {l}w
            {l}push = {l}push + neighbor_dir * {l}w
            """,
            r=r,
        )], r=r)]

    def finish(self, ctx):
        return [ctx.code(
            """
            {l}pressure = wp.max({l}density - {target}, 0.0) * {s}
            {vel} = {vel} + {l}push * {l}pressure * {dt}
            """,
            target=ctx.value(self.target_density),
            s=ctx.value(self.strength),
        )]


@dataclass(frozen=True)
class SurfaceTension(NeighborRule):
    """
    Pull particles with few neighbors (the surface) toward their neighbors.
    """

    radius: Any = 0.1
    strength: Any = 1.0
    threshold: Any = 8.0

    category = "Physics"

    def setup(self, ctx):
        return [ctx.code(
            """
            {l}center = wp.vec3(0.0, 0.0, 0.0)
            {l}count = float(0.0)
            """
        )]

    def body(self, ctx):
        return [ctx.branch("neighbor_dist < {r}", [ctx.code(
            """
            {l}center = {l}center + neighbor_pos
            {l}count = {l}count + 1.0
            """
        )], r=ctx.value(self.radius))]

    def finish(self, ctx):
        return [ctx.branch("{l}count > 0.0 and {l}count < {threshold}", [ctx.code(
            "{vel} = {vel} + ({l}center / {l}count - {pos}) * {s} * {dt}",
            s=ctx.value(self.strength),
        )], threshold=ctx.value(self.threshold))]


@dataclass(frozen=True)
class Magnetism(NeighborRule):
    """
    Type tags act as poles: equal tags repel and different tags attract
    when same_repel is set, the other way around otherwise.
    """

    radius: Any = 0.2
    strength: Any = 1.0
    same_repel: bool = True

    category = "Physics"

    def setup(self, ctx):
        return [ctx.code("{l}force = wp.vec3(0.0, 0.0, 0.0)")]

    def body(self, ctx):
        same, different = ("1.0", "-1.0") if self.same_repel else ("-1.0", "1.0")
        return [ctx.branch("neighbor_dist < {r} and neighbor_dist > 0.0001", [
            ctx.code("{l}sign = {different}", different=different),
            ctx.branch("{other} == {type_tag}", [ctx.code("{l}sign = {same}", same=same)], other=_other_type(ctx)),
            ctx.code(
                "{l}force = {l}force + neighbor_dir * ({l}sign * {s} / (neighbor_dist * neighbor_dist + 0.01))",
                s=ctx.value(self.strength),
            ),
        ], r=ctx.value(self.radius))]

    def finish(self, ctx):
        return [ctx.code("{vel} = {vel} + {l}force * {dt}")]


@dataclass(frozen=True)
class Chase(NeighborRule):
    """
    Particles of self_type steer toward the nearest target_type neighbor.
    """

    self_type: int = 0
    target_type: int = 1
    radius: Any = 0.3
    strength: Any = 1.0

    category = "Typed"

    def emit(self, ctx):
        return [ctx.branch("{type_tag} == {t}", super().emit(ctx), t=ctx.uint(self.self_type))]

    def setup(self, ctx):
        return [ctx.code(
            """
            {l}nearest = float(1.0e10)
            {l}target = wp.vec3(0.0, 0.0, 0.0)
            """
        )]

    def body(self, ctx):
        return [ctx.branch(
            "{other} == {t} and neighbor_dist < {r} and neighbor_dist < {l}nearest",
            [ctx.code(
                """
                {l}nearest = neighbor_dist
                {l}target = neighbor_pos
                """
            )],
            other=_other_type(ctx),
            t=ctx.uint(self.target_type),
            r=ctx.value(self.radius),
        )]

    def finish(self, ctx):
        return [ctx.branch("{l}nearest < 1.0e9 and {l}nearest > 0.0001", [ctx.code(
            "{vel} = {vel} + wp.normalize({l}target - {pos}) * {s} * {dt}",
            s=ctx.value(self.strength),
        )])]


@dataclass(frozen=True)
class Evade(NeighborRule):
    """
    Particles of self_type flee the nearest threat_type neighbor.
    """

    self_type: int = 0
    threat_type: int = 1
    radius: Any = 0.3
    strength: Any = 1.0

    category = "Typed"

    def emit(self, ctx):
        return [ctx.branch("{type_tag} == {t}", super().emit(ctx), t=ctx.uint(self.self_type))]

    def setup(self, ctx):
        return [ctx.code(
            """
            {l}nearest = float(1.0e10)
            {l}threat = wp.vec3(0.0, 0.0, 0.0)
            """
        )]

    def body(self, ctx):
        return [ctx.branch(
            "{other} == {t} and neighbor_dist < {r} and neighbor_dist < {l}nearest",
            [ctx.code(
                """
                {l}nearest = neighbor_dist
                {l}threat = neighbor_pos
                """
            )],
            other=_other_type(ctx),
            t=ctx.uint(self.threat_type),
            r=ctx.value(self.radius),
        )]

    def finish(self, ctx):
        return [ctx.branch("{l}nearest < 1.0e9 and {l}nearest > 0.0001", [ctx.code(
            "{vel} = {vel} + wp.normalize({pos} - {l}threat) * {s} * {dt}",
            s=ctx.value(self.strength),
        )])]


@dataclass(frozen=True)
class Convert(NeighborRule):
    """
    A from_type particle touching a trigger_type neighbor turns into
    to_type with the given probability per step.
    """

    from_type: int = 0
    trigger_type: int = 1
    to_type: int = 1
    radius: Any = 0.05
    probability: Any = 1.0

    category = "Typed"

    def emit(self, ctx):
        return [ctx.branch("{type_tag} == {t}", super().emit(ctx), t=ctx.uint(self.from_type))]

    def setup(self, ctx):
        return [ctx.code("{l}hit = int(0)")]

    def body(self, ctx):
        return [ctx.branch(
            "{other} == {t} and neighbor_dist < {r}",
            [ctx.code("{l}hit = 1")],
            other=_other_type(ctx),
            t=ctx.uint(self.trigger_type),
            r=ctx.value(self.radius),
        )]

    def finish(self, ctx):
        return [ctx.branch("{l}hit == 1", [
            ctx.branch("wp.randf(rng) < {prob}", [ctx.code(
                "{type_tag} = {to}", to=ctx.uint(self.to_type),
            )], prob=ctx.value(self.probability)),
        ])]


@dataclass(frozen=True)
class DLA(NeighborRule):
    """
    Diffusion limited aggregation: mobile particles random walk until they
    touch a seed particle, then freeze and become seeds themselves.
    """

    seed_type: int = 0
    mobile_type: int = 1
    stick_radius: Any = 0.02
    diffusion_strength: Any = 0.5

    category = "Growth & Decay"

    def emit(self, ctx):
        return [ctx.branch(
            "{type_tag} == {seed}",
            [ctx.code("{vel} = wp.vec3(0.0, 0.0, 0.0)")],
            [ctx.branch("{type_tag} == {mobile}", super().emit(ctx), mobile=ctx.uint(self.mobile_type))],
            seed=ctx.uint(self.seed_type),
        )]

    def setup(self, ctx):
        return [ctx.code("{l}stuck = int(0)")]

    def body(self, ctx):
        return [ctx.branch(
            "{other} == {seed} and neighbor_dist < {r}",
            [ctx.code("{l}stuck = 1")],
            other=_other_type(ctx),
            seed=ctx.uint(self.seed_type),
            r=ctx.value(self.stick_radius),
        )]

    def finish(self, ctx):
        return [ctx.branch(
            "{l}stuck == 1",
            [ctx.code(
                """
                {type_tag} = {seed}
                {vel} = wp.vec3(0.0, 0.0, 0.0)
                """,
                seed=ctx.uint(self.seed_type),
            )],
            [ctx.code(
                """
                {l}step = wp.vec3(wp.randf(rng) - 0.5, wp.randf(rng) - 0.5, wp.randf(rng) - 0.5)
                {vel} = {l}step * (2.0 * {d})
                """,
                d=ctx.value(self.diffusion_strength),
            )],
        )]


@dataclass(frozen=True)
class Diffuse(NeighborRule):
    """
    Relax a particle field toward the average of its neighbors.
    """

    field: str = ""
    rate: Any = 1.0
    radius: Any = 0.1

    category = "Physics"

    def setup(self, ctx):
        ctx.user_field(self.field)
        return [ctx.code(
            """
            {l}sum = float(0.0)
            {l}count = float(0.0)
            """
        )]

    def body(self, ctx):
        return [ctx.branch("neighbor_dist < {r}", [ctx.code(
            """
            {l}sum = {l}sum + {other}
            {l}count = {l}count + 1.0
            """,
            other=_other(ctx, self.field),
        )], r=ctx.value(self.radius))]

    def finish(self, ctx):
        return [ctx.branch("{l}count > 0.0", [ctx.code(
            "{f} = {f} + ({l}sum / {l}count - {f}) * wp.min({rate} * {dt}, 1.0)",
            f=ctx.user_field(self.field),
            rate=ctx.value(self.rate),
        )])]


ACCUMULATE_OPERATIONS = ("sum", "average", "max", "min")


@dataclass(frozen=True)
class Accumulate(NeighborRule):
    """
    Gather a field over neighbors within radius into target using sum,
    average, max or min, optionally weighted by distance falloff.
    """

    source: str = ""
    target: str = ""
    radius: Any = 0.1
    operation: str = "sum"
    falloff: Optional[Falloff] = None

    category = "Neighbor Fields"

    def setup(self, ctx):
        if self.operation not in ACCUMULATE_OPERATIONS:
            raise ConfigurationError(
                "Unknown accumulate operation '{}', expected one of {}".format(
                    self.operation, ", ".join(ACCUMULATE_OPERATIONS)
                )
            )
        ctx.user_field(self.source)
        ctx.user_field(self.target)
        start = {"sum": "0.0", "average": "0.0", "max": "-1.0e30", "min": "1.0e30"}[self.operation]
        return [ctx.code(
            """
            {l}acc = float({start})
            {l}count = float(0.0)
            """,
            start=start,
        )]

    def body(self, ctx):
        r = ctx.value(self.radius)
        weight = "1.0"
        if self.falloff is not None:
            weight = Falloff(self.falloff).expression("(neighbor_dist / {})".format(r))
        update = {
            "sum": "{l}acc = {l}acc + {l}value",
            "average": "{l}acc = {l}acc + {l}value",
            "max": "{l}acc = wp.max({l}acc, {l}value)",
            "min": "{l}acc = wp.min({l}acc, {l}value)",
        }[self.operation]
        return [ctx.branch("neighbor_dist < {r}", [ctx.code(
            """
            {l}value = {other} * {w}
            %s
            {l}count = {l}count + 1.0
            """ % update,
            other=_other(ctx, self.source),
            w=weight,
        )], r=r)]

    def finish(self, ctx):
        target = ctx.user_field(self.target)
        if self.operation == "sum":
            return [ctx.code("{t} = {l}acc", t=target)]
        result = "{l}acc / {l}count" if self.operation == "average" else "{l}acc"
        return [ctx.branch(
            "{l}count > 0.0",
            [ctx.code("{t} = %s" % result, t=target)],
            [ctx.code("{t} = 0.0", t=target)],
        )]


@dataclass(frozen=True)
class Signal(NeighborRule):
    """
    Integrate neighbors' source field into target over time.
    """

    source: str = ""
    target: str = ""
    radius: Any = 0.1
    strength: Any = 1.0
    falloff: Optional[Falloff] = None

    category = "Neighbor Fields"

    def setup(self, ctx):
        ctx.user_field(self.source)
        return [ctx.code("{l}sum = float(0.0)")]

    def body(self, ctx):
        r = ctx.value(self.radius)
        weight = "1.0"
        if self.falloff is not None:
            weight = Falloff(self.falloff).expression("(neighbor_dist / {})".format(r))
        return [ctx.branch("neighbor_dist < {r}", [ctx.code(
            "{l}sum = {l}sum + {other} * {w}",
            other=_other(ctx, self.source),
            w=weight,
        )], r=r)]

    def finish(self, ctx):
        return [ctx.code(
            "{t} = {t} + {l}sum * {s} * {dt}",
            t=ctx.user_field(self.target),
            s=ctx.value(self.strength),
        )]


@dataclass(frozen=True)
class Absorb(NeighborRule):
    """
    Particles swallow neighbors within radius: the absorber adds the
    neighbor's source_field to its target_field, the absorbed particle
    dies. With target_type only particles of that type are absorbed, by
    any particle of another type. Without it the neighbor holding less
    source_field is absorbed, ties going to the lower index. Every
    absorber in reach collects the full amount.
    """

    target_type: Optional[int] = None
    radius: Any = 0.1
    source_field: str = "energy"
    target_field: str = "absorbed"

    category = "Neighbor Fields"

    def setup(self, ctx):
        ctx.user_field(self.target_field)
        return [ctx.code(
            """
            {l}gain = float(0.0)
            {l}eaten = int(0)
            """
        )]

    def body(self, ctx):
        source = ctx.user_field(self.source_field)
        other = _other(ctx, self.source_field)
        if self.target_type is not None:
            t = ctx.uint(self.target_type)
            absorbs = "{} != {} and {} == {}".format(ctx.type_tag, t, _other_type(ctx), t)
            absorbed = "{} == {} and {} != {}".format(ctx.type_tag, t, _other_type(ctx), t)
        else:
            absorbs = "{o} < {s} or ({o} == {s} and other_index > tid)".format(o=other, s=source)
            absorbed = "{o} > {s} or ({o} == {s} and other_index < tid)".format(o=other, s=source)
        return [ctx.branch("neighbor_dist < {r}", [
            ctx.branch(absorbs, [ctx.code("{l}gain = {l}gain + {o}", o=other)]),
            ctx.branch(absorbed, [ctx.code("{l}eaten = 1")]),
        ], r=ctx.value(self.radius))]

    def finish(self, ctx):
        return [
            ctx.code("{t} = {t} + {l}gain", t=ctx.user_field(self.target_field)),
            ctx.branch("{l}eaten == 1", [ctx.code("{alive} = wp.uint32(0)")]),
        ]
