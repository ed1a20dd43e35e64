# Lifecycle, appearance and growth rules

from dataclasses import dataclass
from typing import Any

from particle_forge.compiler.fragment import statement
from particle_forge.rule.rule import Rule


@dataclass(frozen=True)
class Lifetime(Rule):
    """
    Kill particles older than duration seconds.
    """

    duration: Any = 1.0

    category = "Lifecycle"

    def emit(self, ctx):
        return [ctx.branch(
            "{age} >= {d}",
            [ctx.code("{alive} = wp.uint32(0)")],
            d=ctx.value(self.duration),
        )]


@dataclass(frozen=True)
class FadeOut(Rule):
    """
    Fade the color linearly to black over duration seconds of age.
    """

    duration: Any = 1.0

    category = "Lifecycle"

    def emit(self, ctx):
        return [ctx.code(
            """
            {l}remaining = wp.max({d} - {age}, {dt})
            {color} = {color} * wp.clamp(1.0 - {dt} / {l}remaining, 0.0, 1.0)
            """,
            d=ctx.value(self.duration),
            color=ctx.color,
        )]


@dataclass(frozen=True)
class ShrinkOut(Rule):
    duration: Any = 1.0

    category = "Lifecycle"

    def emit(self, ctx):
        return [ctx.code(
            "{scale} = wp.clamp(1.0 - {age} / {d}, 0.0, 1.0)",
            d=ctx.value(self.duration),
        )]


@dataclass(frozen=True)
class ColorOverLife(Rule):
    start: Any = (1.0, 1.0, 1.0)
    end: Any = (0.0, 0.0, 0.0)
    duration: Any = 1.0

    category = "Lifecycle"

    def emit(self, ctx):
        return [
            ctx.code("{l}t = wp.clamp({age} / {d}, 0.0, 1.0)", d=ctx.value(self.duration)),
            _set_color(ctx, "mix_vec3({a}, {b}, {l}t)", a=ctx.vec3(self.start), b=ctx.vec3(self.end)),
        ]


def _set_color(ctx, rgb: str, **params):
    """
    Statement assigning an rgb template expression to the color field
    """
    values = ctx.placeholders()
    values.update(params)
    return statement(ctx.set_color(rgb.format(**values)))


@dataclass(frozen=True)
class ColorBySpeed(Rule):
    slow_color: Any = (0.0, 0.0, 1.0)
    fast_color: Any = (1.0, 0.0, 0.0)
    max_speed: Any = 1.0

    category = "Lifecycle"

    def emit(self, ctx):
        return [
            ctx.code("{l}t = wp.clamp(wp.length({vel}) / {m}, 0.0, 1.0)", m=ctx.value(self.max_speed)),
            _set_color(ctx, "mix_vec3({a}, {b}, {l}t)", a=ctx.vec3(self.slow_color), b=ctx.vec3(self.fast_color)),
        ]


@dataclass(frozen=True)
class ColorByAge(Rule):
    young_color: Any = (1.0, 1.0, 1.0)
    old_color: Any = (1.0, 0.0, 0.0)
    max_age: Any = 1.0

    category = "Lifecycle"

    def emit(self, ctx):
        return [
            ctx.code("{l}t = wp.clamp({age} / {m}, 0.0, 1.0)", m=ctx.value(self.max_age)),
            _set_color(ctx, "mix_vec3({a}, {b}, {l}t)", a=ctx.vec3(self.young_color), b=ctx.vec3(self.old_color)),
        ]


@dataclass(frozen=True)
class ColorByHue(Rule):
    """
    Color from a hue that cycles with time and particle index.
    """

    speed: Any = 0.1
    saturation: Any = 0.8
    value: Any = 1.0

    category = "Lifecycle"

    def emit(self, ctx):
        return [
            ctx.code(
                "{l}hue = {time} * {speed} + hash_float(wp.uint32(tid))",
                speed=ctx.value(self.speed),
            ),
            _set_color(ctx, "hsv_to_rgb({l}hue, {s}, {v})", s=ctx.value(self.saturation), v=ctx.value(self.value)),
        ]


@dataclass(frozen=True)
class ScaleBySpeed(Rule):
    min_scale: Any = 0.5
    max_scale: Any = 2.0
    max_speed: Any = 1.0

    category = "Lifecycle"

    def emit(self, ctx):
        return [ctx.code(
            """
            {l}t = wp.clamp(wp.length({vel}) / {m}, 0.0, 1.0)
            {scale} = {lo} + ({hi} - {lo}) * {l}t
            """,
            m=ctx.value(self.max_speed),
            lo=ctx.value(self.min_scale),
            hi=ctx.value(self.max_scale),
        )]


@dataclass(frozen=True)
class Grow(Rule):
    rate: Any = 0.1
    min: Any = 0.0
    max: Any = 2.0

    category = "Growth & Decay"

    def emit(self, ctx):
        return [ctx.code(
            "{scale} = wp.clamp({scale} + {rate} * {dt}, {lo}, {hi})",
            rate=ctx.value(self.rate),
            lo=ctx.value(self.min),
            hi=ctx.value(self.max),
        )]


@dataclass(frozen=True)
class Decay(Rule):
    """
    Exponentially shrink a particle field toward zero.
    """

    field: str = ""
    rate: Any = 1.0

    category = "Growth & Decay"

    def emit(self, ctx):
        return [ctx.code(
            "{f} = {f} * wp.max(1.0 - {rate} * {dt}, 0.0)",
            f=ctx.user_field(self.field),
            rate=ctx.value(self.rate),
        )]


@dataclass(frozen=True)
class Die(Rule):
    """
    Kill particles for which condition holds.
    """

    condition: str

    category = "Growth & Decay"

    def emit(self, ctx):
        return [ctx.raw_condition(self.condition, [ctx.code("{alive} = wp.uint32(0)")])]
