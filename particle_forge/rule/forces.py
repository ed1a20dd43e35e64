# Unconditional per particle forces, boundaries and flow

from dataclasses import dataclass
from typing import Any

from particle_forge.error import ConfigurationError
from particle_forge.rule.rule import Rule, Falloff

AXES = ("x", "y", "z")


@dataclass(frozen=True)
class Gravity(Rule):
    strength: Any = 9.8

    category = "Forces"

    def emit(self, ctx):
        return [ctx.code(
            "{vel} = {vel} - wp.vec3(0.0, {g} * {dt}, 0.0)",
            g=ctx.value(self.strength),
        )]


@dataclass(frozen=True)
class Drag(Rule):
    coefficient: Any = 1.0

    category = "Forces"

    def emit(self, ctx):
        return [ctx.code(
            "{vel} = {vel} * wp.max(1.0 - {d} * {dt}, 0.0)",
            d=ctx.value(self.coefficient),
        )]


@dataclass(frozen=True)
class Acceleration(Rule):
    direction: Any = (0.0, -1.0, 0.0)

    category = "Forces"

    def emit(self, ctx):
        return [ctx.code("{vel} = {vel} + {a} * {dt}", a=ctx.vec3(self.direction))]


def _split_axes(ctx):
    lines = []
    for i, axis in enumerate(AXES):
        lines.append("{l}p%s = {pos}[%d]" % (axis, i))
        lines.append("{l}v%s = {vel}[%d]" % (axis, i))
    return ctx.code("\n".join(lines))


def _join_axes(ctx):
    return ctx.code(
        "{pos} = wp.vec3({l}px, {l}py, {l}pz)\n"
        "{vel} = wp.vec3({l}vx, {l}vy, {l}vz)"
    )


@dataclass(frozen=True)
class BounceWalls(Rule):
    """
    Reflect particles off the faces of the [-bounds, bounds] cube.

    A particle moving outward that would cross a face during this step has
    its normal velocity reflected and scaled by restitution. Reflected
    speeds below rest_speed are absorbed, so particles pushed into a face
    by a constant force come to rest on it. Positions outside the cube are
    clamped onto the face.
    """

    restitution: Any = 0.8
    rest_speed: Any = 1.0

    category = "Boundaries"

    def emit(self, ctx):
        b = ctx.number(ctx.bounds)
        r = ctx.value(self.restitution)
        rest = ctx.value(self.rest_speed)
        nodes = [_split_axes(ctx)]
        for axis in AXES:
            p = ctx.local("p" + axis)
            v = ctx.local("v" + axis)
            bounce = ctx.local("bounce")

            # Low face
            nodes.append(ctx.branch("{v} < 0.0 and {p} + {v} * {dt} < -{b}", [
                ctx.code("{bounce} = -{v} * {r}", bounce=bounce, v=v, r=r),
                ctx.branch(
                    "{bounce} < {rest}",
                    [ctx.code("{v} = 0.0", v=v)],
                    [ctx.code("{v} = {bounce}", v=v, bounce=bounce)],
                    bounce=bounce,
                    rest=rest,
                ),
            ], v=v, p=p, b=b))
            nodes.append(ctx.branch("{p} < -{b}", [ctx.code("{p} = -{b}", p=p, b=b)], p=p, b=b))

            # High face
            nodes.append(ctx.branch("{v} > 0.0 and {p} + {v} * {dt} > {b}", [
                ctx.code("{bounce} = {v} * {r}", bounce=bounce, v=v, r=r),
                ctx.branch(
                    "{bounce} < {rest}",
                    [ctx.code("{v} = 0.0", v=v)],
                    [ctx.code("{v} = -{bounce}", v=v, bounce=bounce)],
                    bounce=bounce,
                    rest=rest,
                ),
            ], v=v, p=p, b=b))
            nodes.append(ctx.branch("{p} > {b}", [ctx.code("{p} = {b}", p=p, b=b)], p=p, b=b))
        nodes.append(_join_axes(ctx))
        return nodes


@dataclass(frozen=True)
class WrapWalls(Rule):
    """
    Periodic boundaries on the [-bounds, bounds] cube.
    """

    category = "Boundaries"

    def emit(self, ctx):
        b = ctx.number(ctx.bounds)
        span = ctx.number(2.0 * ctx.bounds)
        nodes = [_split_axes(ctx)]
        for axis in AXES:
            nodes.append(ctx.branch("{l}p%s < -%s" % (axis, b), [
                ctx.code("{l}p%s = {l}p%s + %s" % (axis, axis, span)),
            ]))
            nodes.append(ctx.branch("{l}p%s > %s" % (axis, b), [
                ctx.code("{l}p%s = {l}p%s - %s" % (axis, axis, span)),
            ]))
        nodes.append(_join_axes(ctx))
        return nodes


@dataclass(frozen=True)
class AttractTo(Rule):
    point: Any = (0.0, 0.0, 0.0)
    strength: Any = 1.0

    category = "Point Forces"

    def emit(self, ctx):
        return [
            ctx.code(
                """
                {l}d = {point} - {pos}
                {l}dist = wp.length({l}d)
                """,
                point=ctx.vec3(self.point),
            ),
            ctx.branch("{l}dist > 0.001", [ctx.code(
                "{vel} = {vel} + {l}d / {l}dist * {s} * {dt}",
                s=ctx.value(self.strength),
            )]),
        ]


@dataclass(frozen=True)
class RepelFrom(Rule):
    point: Any = (0.0, 0.0, 0.0)
    strength: Any = 1.0
    radius: Any = 0.5

    category = "Point Forces"

    def emit(self, ctx):
        r = ctx.value(self.radius)
        return [
            ctx.code(
                """
                {l}d = {pos} - {point}
                {l}dist = wp.length({l}d)
                """,
                point=ctx.vec3(self.point),
            ),
            ctx.branch("{l}dist < {r} and {l}dist > 0.001", [ctx.code(
                "{vel} = {vel} + {l}d / {l}dist * (({r} - {l}dist) / {r} * {s}) * {dt}",
                r=r,
                s=ctx.value(self.strength),
            )], r=r),
        ]


@dataclass(frozen=True)
class PointGravity(Rule):
    """
    Inverse square attraction to a point, softened near the center.
    """

    point: Any = (0.0, 0.0, 0.0)
    strength: Any = 1.0
    softening: Any = 0.05

    category = "Point Forces"

    def emit(self, ctx):
        return [ctx.code(
            """
            {l}d = {point} - {pos}
            {l}r2 = wp.dot({l}d, {l}d) + {soft} * {soft}
            {vel} = {vel} + {l}d * ({s} / ({l}r2 * wp.sqrt({l}r2))) * {dt}
            """,
            point=ctx.vec3(self.point),
            soft=ctx.value(self.softening),
            s=ctx.value(self.strength),
        )]


@dataclass(frozen=True)
class Orbit(Rule):
    """
    Swirl around the vertical axis through center while being pulled in.
    """

    center: Any = (0.0, 0.0, 0.0)
    strength: Any = 1.0

    category = "Point Forces"

    def emit(self, ctx):
        return [
            ctx.code(
                """
                {l}d = {pos} - {center}
                {l}tangent = wp.cross(wp.vec3(0.0, 1.0, 0.0), {l}d)
                {l}len = wp.length({l}tangent)
                """,
                center=ctx.vec3(self.center),
            ),
            ctx.branch("{l}len > 0.0001", [ctx.code(
                "{vel} = {vel} + ({l}tangent / {l}len * {s} - {l}d * ({s} * 0.5)) * {dt}",
                s=ctx.value(self.strength),
            )]),
        ]


@dataclass(frozen=True)
class Spring(Rule):
    anchor: Any = (0.0, 0.0, 0.0)
    stiffness: Any = 1.0
    damping: Any = 0.1

    category = "Point Forces"

    def emit(self, ctx):
        return [ctx.code(
            "{vel} = {vel} + (({anchor} - {pos}) * {k} - {vel} * {c}) * {dt}",
            anchor=ctx.vec3(self.anchor),
            k=ctx.value(self.stiffness),
            c=ctx.value(self.damping),
        )]


@dataclass(frozen=True)
class Radial(Rule):
    """
    Push away from (positive strength) or pull toward a point within
    radius, weighted by falloff.
    """

    point: Any = (0.0, 0.0, 0.0)
    strength: Any = 1.0
    radius: Any = 1.0
    falloff: Falloff = Falloff.LINEAR

    category = "Point Forces"

    def emit(self, ctx):
        r = ctx.value(self.radius)
        weight = Falloff(self.falloff).expression(ctx.local("x"))
        return [
            ctx.code(
                """
                {l}d = {pos} - {point}
                {l}dist = wp.length({l}d)
                """,
                point=ctx.vec3(self.point),
            ),
            ctx.branch("{l}dist < {r} and {l}dist > 0.0001", [ctx.code(
                """
                {l}x = {l}dist / {r}
                {vel} = {vel} + {l}d / {l}dist * ({s} * {w}) * {dt}
                """,
                r=r,
                s=ctx.value(self.strength),
                w=weight,
            )], r=r),
        ]


@dataclass(frozen=True)
class Vortex(Rule):
    center: Any = (0.0, 0.0, 0.0)
    axis: Any = (0.0, 1.0, 0.0)
    strength: Any = 1.0

    category = "Point Forces"

    def emit(self, ctx):
        return [ctx.code(
            """
            {l}d = {pos} - {center}
            {vel} = {vel} + wp.cross({axis}, {l}d) * {s} * {dt}
            """,
            center=ctx.vec3(self.center),
            axis=ctx.unit_vec3(self.axis),
            s=ctx.value(self.strength),
        )]


@dataclass(frozen=True)
class Pulse(Rule):
    """
    Radial push that oscillates in time.
    """

    point: Any = (0.0, 0.0, 0.0)
    strength: Any = 1.0
    frequency: Any = 1.0
    radius: Any = 1.0

    category = "Point Forces"

    def emit(self, ctx):
        r = ctx.value(self.radius)
        return [
            ctx.code(
                """
                {l}d = {pos} - {point}
                {l}dist = wp.length({l}d)
                """,
                point=ctx.vec3(self.point),
            ),
            ctx.branch("{l}dist < {r} and {l}dist > 0.0001", [ctx.code(
                """
                {l}wave = wp.sin({time} * {f} * 2.0 * wp.pi)
                {vel} = {vel} + {l}d / {l}dist * ({l}wave * {s} * (1.0 - {l}dist / {r})) * {dt}
                """,
                r=r,
                f=ctx.value(self.frequency),
                s=ctx.value(self.strength),
            )], r=r),
        ]


@dataclass(frozen=True)
class Turbulence(Rule):
    scale: Any = 1.0
    strength: Any = 1.0

    category = "Noise & Flow"

    def emit(self, ctx):
        return [ctx.code(
            "{vel} = {vel} + noise_vec3({pos} * {scale} + wp.vec3({time} * 0.1, 0.0, 0.0)) * {s} * {dt}",
            scale=ctx.value(self.scale),
            s=ctx.value(self.strength),
        )]


@dataclass(frozen=True)
class Curl(Rule):
    """
    Divergence free noise flow.
    """

    scale: Any = 1.0
    strength: Any = 1.0

    category = "Noise & Flow"

    def emit(self, ctx):
        return [ctx.code(
            "{vel} = {vel} + curl_noise3({pos} * {scale} + wp.vec3(0.0, {time} * 0.1, 0.0)) * {s} * {dt}",
            scale=ctx.value(self.scale),
            s=ctx.value(self.strength),
        )]


@dataclass(frozen=True)
class Wind(Rule):
    direction: Any = (1.0, 0.0, 0.0)
    strength: Any = 1.0
    turbulence: Any = 0.0

    category = "Noise & Flow"

    def emit(self, ctx):
        return [ctx.code(
            """
            {l}gust = noise_vec3({pos} * 2.0 + wp.vec3({time}, {time}, {time}) * 0.5)
            {vel} = {vel} + ({dir} * {s} + {l}gust * {turb}) * {dt}
            """,
            dir=ctx.unit_vec3(self.direction),
            s=ctx.value(self.strength),
            turb=ctx.value(self.turbulence),
        )]


@dataclass(frozen=True)
class PositionNoise(Rule):
    """
    Jitter positions directly, bypassing velocity.
    """

    scale: Any = 1.0
    strength: Any = 0.1
    speed: Any = 1.0

    category = "Noise & Flow"

    def emit(self, ctx):
        return [ctx.code(
            "{pos} = {pos} + noise_vec3({pos} * {scale} + wp.vec3({time} * {speed}, 0.0, 0.0)) * {s} * {dt}",
            scale=ctx.value(self.scale),
            speed=ctx.value(self.speed),
            s=ctx.value(self.strength),
        )]


def _limit(ctx, vector: str, limit: str):
    return ctx.branch("wp.length({v}) > {m}".format(v=vector, m=limit), [ctx.code(
        "{v} = wp.normalize({v}) * {m}", v=vector, m=limit,
    )])


@dataclass(frozen=True)
class Seek(Rule):
    target: Any = (0.0, 0.0, 0.0)
    max_speed: Any = 1.0
    max_force: Any = 1.0

    category = "Steering"

    def emit(self, ctx):
        steer = ctx.local("steer")
        return [
            ctx.code(
                """
                {l}d = {target} - {pos}
                {l}steer = wp.vec3(0.0, 0.0, 0.0)
                """,
                target=ctx.vec3(self.target),
            ),
            ctx.branch("wp.length({l}d) > 0.0001", [ctx.code(
                "{l}steer = wp.normalize({l}d) * {speed} - {vel}",
                speed=ctx.value(self.max_speed),
            )]),
            _limit(ctx, steer, ctx.value(self.max_force)),
            ctx.code("{vel} = {vel} + {l}steer * {dt}"),
        ]


@dataclass(frozen=True)
class Flee(Rule):
    target: Any = (0.0, 0.0, 0.0)
    max_speed: Any = 1.0
    max_force: Any = 1.0
    panic_radius: Any = 0.5

    category = "Steering"

    def emit(self, ctx):
        steer = ctx.local("steer")
        return [
            ctx.code(
                """
                {l}d = {pos} - {target}
                {l}steer = wp.vec3(0.0, 0.0, 0.0)
                """,
                target=ctx.vec3(self.target),
            ),
            ctx.branch("wp.length({l}d) < {r} and wp.length({l}d) > 0.0001", [ctx.code(
                "{l}steer = wp.normalize({l}d) * {speed} - {vel}",
                speed=ctx.value(self.max_speed),
            )], r=ctx.value(self.panic_radius)),
            _limit(ctx, steer, ctx.value(self.max_force)),
            ctx.code("{vel} = {vel} + {l}steer * {dt}"),
        ]


@dataclass(frozen=True)
class Arrive(Rule):
    """
    Seek that slows down inside slowing_radius.
    """

    target: Any = (0.0, 0.0, 0.0)
    max_speed: Any = 1.0
    max_force: Any = 1.0
    slowing_radius: Any = 0.5

    category = "Steering"

    def emit(self, ctx):
        steer = ctx.local("steer")
        return [
            ctx.code(
                """
                {l}d = {target} - {pos}
                {l}dist = wp.length({l}d)
                {l}steer = wp.vec3(0.0, 0.0, 0.0)
                """,
                target=ctx.vec3(self.target),
            ),
            ctx.branch("{l}dist > 0.0001", [ctx.code(
                """
                {l}speed = {speed} * wp.min({l}dist / {slow}, 1.0)
                {l}steer = {l}d / {l}dist * {l}speed - {vel}
                """,
                speed=ctx.value(self.max_speed),
                slow=ctx.value(self.slowing_radius),
            )]),
            _limit(ctx, steer, ctx.value(self.max_force)),
            ctx.code("{vel} = {vel} + {l}steer * {dt}"),
        ]


@dataclass(frozen=True)
class Wander(Rule):
    """
    Random steering that changes direction frequency times per second.
    """

    strength: Any = 1.0
    frequency: Any = 1.0

    category = "Steering"

    def emit(self, ctx):
        return [ctx.code(
            """
            {l}seed = wp.uint32(tid) * wp.uint32(1973) + wp.uint32(wp.int32({time} * {f}))
            {vel} = {vel} + random_unit_vec3(hash_u32({l}seed)) * {s} * {dt}
            """,
            f=ctx.value(self.frequency),
            s=ctx.value(self.strength),
        )]


@dataclass(frozen=True)
class SpeedLimit(Rule):
    min: Any = 0.0
    max: Any = 1.0

    category = "Constraints"

    def emit(self, ctx):
        lo = ctx.value(self.min)
        hi = ctx.value(self.max)
        return [
            ctx.code("{l}speed = wp.length({vel})"),
            ctx.branch(
                "{l}speed > {hi}",
                [ctx.code("{vel} = {vel} / {l}speed * {hi}", hi=hi)],
                [ctx.branch("{l}speed < {lo} and {l}speed > 0.0001", [
                    ctx.code("{vel} = {vel} / {l}speed * {lo}", lo=lo),
                ], lo=lo)],
                hi=hi,
            ),
        ]


@dataclass(frozen=True)
class Buoyancy(Rule):
    """
    Upward force proportional to depth below surface_y.
    """

    surface_y: Any = 0.0
    density: Any = 1.0

    category = "Constraints"

    def emit(self, ctx):
        surface = ctx.value(self.surface_y)
        return [ctx.branch("{pos}[1] < {surface}", [ctx.code(
            "{vel} = {vel} + wp.vec3(0.0, ({surface} - {pos}[1]) * {density} * {dt}, 0.0)",
            surface=surface,
            density=ctx.value(self.density),
        )], surface=surface)]


@dataclass(frozen=True)
class Friction(Rule):
    """
    Slow horizontal motion of particles near the ground.
    """

    ground_y: Any = -1.0
    strength: Any = 1.0
    threshold: Any = 0.05

    category = "Constraints"

    def emit(self, ctx):
        return [ctx.branch("{pos}[1] < {ground} + {threshold}", [ctx.code(
            """
            {l}f = wp.max(1.0 - {s} * {dt}, 0.0)
            {vel} = wp.vec3({vel}[0] * {l}f, {vel}[1], {vel}[2] * {l}f)
            """,
            s=ctx.value(self.strength),
        )], ground=ctx.value(self.ground_y), threshold=ctx.value(self.threshold))]


@dataclass(frozen=True)
class Shockwave(Rule):
    """
    Expanding spherical wave front, restarting every repeat seconds when
    repeat is positive.
    """

    origin: Any = (0.0, 0.0, 0.0)
    speed: Any = 1.0
    width: Any = 0.1
    strength: Any = 1.0
    repeat: Any = 0.0

    category = "Events"

    def emit(self, ctx):
        if isinstance(self.repeat, (int, float)) and self.repeat <= 0.0:
            front = "{time} * {speed}"
        else:
            front = "wp.mod({time}, {repeat}) * {speed}"
        width = ctx.value(self.width)
        return [
            ctx.code(
                """
                {l}d = {pos} - {origin}
                {l}dist = wp.length({l}d)
                {l}front = %s
                {l}gap = wp.abs({l}dist - {l}front)
                """ % front,
                origin=ctx.vec3(self.origin),
                speed=ctx.value(self.speed),
                repeat=ctx.value(self.repeat),
            ),
            ctx.branch("{l}gap < {w} and {l}dist > 0.0001", [ctx.code(
                "{vel} = {vel} + {l}d / {l}dist * ({s} * (1.0 - {l}gap / {w})) * {dt}",
                w=width,
                s=ctx.value(self.strength),
            )], w=width),
        ]


@dataclass(frozen=True)
class Oscillate(Rule):
    axis: Any = (0.0, 1.0, 0.0)
    amplitude: Any = 1.0
    frequency: Any = 1.0
    spatial_scale: Any = 0.0

    category = "Events"

    def emit(self, ctx):
        return [ctx.code(
            """
            {l}phase = {time} * {f} * 2.0 * wp.pi + ({pos}[0] + {pos}[1] + {pos}[2]) * {k}
            {vel} = {vel} + {axis} * (wp.sin({l}phase) * {a}) * {dt}
            """,
            f=ctx.value(self.frequency),
            k=ctx.value(self.spatial_scale),
            axis=ctx.unit_vec3(self.axis),
            a=ctx.value(self.amplitude),
        )]


@dataclass(frozen=True)
class RespawnBelow(Rule):
    threshold_y: Any = -1.0
    spawn_y: Any = 1.0
    reset_velocity: bool = True

    category = "Events"

    def emit(self, ctx):
        body = [ctx.code(
            """
            {pos} = wp.vec3({pos}[0], {spawn}, {pos}[2])
            {age} = 0.0
            """,
            spawn=ctx.value(self.spawn_y),
        )]
        if self.reset_velocity:
            body.append(ctx.code("{vel} = wp.vec3(0.0, 0.0, 0.0)"))
        return [ctx.branch("{pos}[1] < {threshold}", body, threshold=ctx.value(self.threshold_y))]


@dataclass(frozen=True)
class Mass(Rule):
    """
    Divide the velocity change made by the rules before this one by the
    particle's mass field, so heavy particles respond less to forces.
    Masses are clamped to 1e-4.
    """

    field: str = "mass"

    category = "Physics"

    def emit(self, ctx):
        return [ctx.code(
            """
            {l}start = particles_in[tid].{velocity}
            {vel} = {l}start + ({vel} - {l}start) / wp.max({m}, 0.0001)
            """,
            velocity=ctx.layout.velocity,
            m=ctx.user_field(self.field),
        )]


@dataclass(frozen=True)
class DensityBuoyancy(Rule):
    """
    Particles lighter than the medium rise and heavier ones sink, with an
    acceleration of strength * (medium_density - density) / medium_density.
    """

    density_field: str = "density"
    medium_density: float = 1.0
    strength: Any = 5.0

    category = "Physics"

    def emit(self, ctx):
        if not self.medium_density > 0.0:
            raise ConfigurationError(
                "DensityBuoyancy medium_density must be positive, got {}".format(self.medium_density)
            )
        medium = ctx.number(self.medium_density)
        return [ctx.code(
            "{vel} = {vel} + wp.vec3(0.0, ({medium} - {d}) / {medium} * {s} * {dt}, 0.0)",
            medium=medium,
            d=ctx.user_field(self.density_field),
            s=ctx.value(self.strength),
        )]
