# Conditionals, event hooks, math on particle fields and logic gates

from dataclasses import dataclass
from typing import Any, Optional

from particle_forge.error import ConfigurationError
from particle_forge.rule.rule import Rule, emit_actions, action_children


@dataclass(frozen=True)
class Maybe(Rule):
    """
    Run action with the given probability every step.
    """

    probability: Any = 0.5
    action: Any = None

    category = "Conditionals"

    def children(self):
        return action_children(self.action)

    def emit(self, ctx):
        return [ctx.branch(
            "wp.randf(rng) < {prob}",
            emit_actions(ctx, self.action),
            prob=ctx.value(self.probability),
        )]


@dataclass(frozen=True)
class Trigger(Rule):
    """
    Run action while condition holds. The condition is kernel text.
    """

    condition: str = "False"
    action: Any = None

    category = "Conditionals"

    def children(self):
        return action_children(self.action)

    def emit(self, ctx):
        return [ctx.raw_condition(self.condition, emit_actions(ctx, self.action))]


@dataclass(frozen=True)
class OnCondition(Trigger):
    pass


@dataclass(frozen=True)
class Gate(Trigger):
    pass


@dataclass(frozen=True)
class Switch(Rule):
    condition: str = "False"
    then_action: Any = None
    else_action: Any = None

    category = "Conditionals"

    def children(self):
        return action_children(self.then_action) + action_children(self.else_action)

    def emit(self, ctx):
        return [ctx.raw_condition(
            self.condition,
            emit_actions(ctx.child("then"), self.then_action),
            emit_actions(ctx.child("else"), self.else_action),
        )]


@dataclass(frozen=True)
class OnDeath(Rule):
    """
    Run action on the step a particle dies. Dead particles are skipped by
    the kernel, so alive being zero here means an earlier rule killed it
    during this step.
    """

    action: Any = None

    category = "Event Hooks"

    def children(self):
        return action_children(self.action)

    def emit(self, ctx):
        return [ctx.branch("{alive} == wp.uint32(0)", emit_actions(ctx, self.action))]


@dataclass(frozen=True)
class OnSpawn(Rule):
    """
    Run action on the first step of a particle's life.
    """

    action: Any = None

    category = "Event Hooks"

    def children(self):
        return action_children(self.action)

    def emit(self, ctx):
        return [ctx.branch("{age} == 0.0", emit_actions(ctx, self.action))]


@dataclass(frozen=True)
class OnInterval(Rule):
    """
    Run action on steps where simulation time crosses a multiple of
    interval.
    """

    interval: Any = 1.0
    action: Any = None

    category = "Event Hooks"

    def children(self):
        return action_children(self.action)

    def emit(self, ctx):
        return [ctx.branch(
            "wp.floor({time} / {i}) != wp.floor(({time} - {dt}) / {i})",
            emit_actions(ctx, self.action),
            i=ctx.value(self.interval),
        )]


@dataclass(frozen=True)
class Periodic(Rule):
    """
    Like OnInterval with an optional per particle phase offset read from
    phase_field.
    """

    interval: Any = 1.0
    action: Any = None
    phase_field: Optional[str] = None

    category = "Event Hooks"

    def children(self):
        return action_children(self.action)

    def emit(self, ctx):
        phase = "0.0" if self.phase_field is None else ctx.user_field(self.phase_field)
        return [
            ctx.code("{l}t = {time} + {phase}", phase=phase),
            ctx.branch(
                "wp.floor({l}t / {i}) != wp.floor(({l}t - {dt}) / {i})",
                emit_actions(ctx, self.action),
                i=ctx.value(self.interval),
            ),
        ]


# Math and signal


@dataclass(frozen=True)
class Lerp(Rule):
    field: str = ""
    target: Any = 0.0
    rate: Any = 1.0

    category = "Math"

    def emit(self, ctx):
        return [ctx.code(
            "{f} = {f} + ({target} - {f}) * wp.min({rate} * {dt}, 1.0)",
            f=ctx.user_field(self.field),
            target=ctx.value(self.target),
            rate=ctx.value(self.rate),
        )]


@dataclass(frozen=True)
class Clamp(Rule):
    field: str = ""
    min: Any = 0.0
    max: Any = 1.0

    category = "Math"

    def emit(self, ctx):
        return [ctx.code(
            "{f} = wp.clamp({f}, {lo}, {hi})",
            f=ctx.user_field(self.field),
            lo=ctx.value(self.min),
            hi=ctx.value(self.max),
        )]


@dataclass(frozen=True)
class Remap(Rule):
    """
    Linearly map field from [in_min, in_max] to [out_min, out_max].
    """

    field: str = ""
    in_min: float = 0.0
    in_max: float = 1.0
    out_min: float = 0.0
    out_max: float = 1.0

    category = "Math"

    def emit(self, ctx):
        if float(self.in_max) == float(self.in_min):
            raise ConfigurationError("Remap needs in_min != in_max")
        return [ctx.code(
            "{f} = {out_min} + ({f} - {in_min}) / ({in_max} - {in_min}) * ({out_max} - {out_min})",
            f=ctx.user_field(self.field),
            in_min=ctx.number(self.in_min),
            in_max=ctx.number(self.in_max),
            out_min=ctx.number(self.out_min),
            out_max=ctx.number(self.out_max),
        )]


@dataclass(frozen=True)
class Quantize(Rule):
    field: str = ""
    step: float = 0.25

    category = "Math"

    def emit(self, ctx):
        if float(self.step) <= 0.0:
            raise ConfigurationError("Quantize step must be positive")
        return [ctx.code(
            "{f} = wp.floor({f} / {step} + 0.5) * {step}",
            f=ctx.user_field(self.field),
            step=ctx.number(self.step),
        )]


@dataclass(frozen=True)
class Noise(Rule):
    """
    Set field to animated coherent noise sampled at the particle position.
    """

    field: str = ""
    amplitude: Any = 1.0
    frequency: Any = 1.0

    category = "Math"

    def emit(self, ctx):
        return [ctx.code(
            "{f} = noise3({pos} * {freq} + wp.vec3({time}, 0.0, 0.0)) * {amp}",
            f=ctx.user_field(self.field),
            freq=ctx.value(self.frequency),
            amp=ctx.value(self.amplitude),
        )]


@dataclass(frozen=True)
class Smooth(Rule):
    """
    Exponential approach of field toward target, frame rate independent.
    """

    field: str = ""
    target: Any = 0.0
    rate: Any = 1.0

    category = "Math"

    def emit(self, ctx):
        return [ctx.code(
            "{f} = {target} + ({f} - {target}) * wp.exp(-{rate} * {dt})",
            f=ctx.user_field(self.field),
            target=ctx.value(self.target),
            rate=ctx.value(self.rate),
        )]


@dataclass(frozen=True)
class Modulo(Rule):
    """
    Wrap field into [min, max).
    """

    field: str = ""
    min: float = 0.0
    max: float = 1.0

    category = "Math"

    def emit(self, ctx):
        if float(self.max) <= float(self.min):
            raise ConfigurationError("Modulo needs min < max")
        return [ctx.code(
            """
            {l}span = {hi} - {lo}
            {l}t = ({f} - {lo}) / {l}span
            {f} = {lo} + ({l}t - wp.floor({l}t)) * {l}span
            """,
            f=ctx.user_field(self.field),
            lo=ctx.number(self.min),
            hi=ctx.number(self.max),
        )]


@dataclass(frozen=True)
class Copy(Rule):
    source: str = ""
    target: str = ""
    scale: Any = 1.0
    offset: Any = 0.0

    category = "Math"

    def emit(self, ctx):
        return [ctx.code(
            "{t} = {s} * {scale} + {offset}",
            t=ctx.user_field(self.target),
            s=ctx.user_field(self.source),
            scale=ctx.value(self.scale),
            offset=ctx.value(self.offset),
        )]


@dataclass(frozen=True)
class CopyField(Rule):
    """
    Assign one particle field to another of the same type, any type.
    """

    source: str = ""
    target: str = ""

    category = "Field Operations"

    def emit(self, ctx):
        if not ctx.layout.has_field(self.source):
            raise ConfigurationError("Particle schema has no field '{}'".format(self.source))
        source_type = ctx.layout.entry(self.source).field.type
        return [ctx.code(
            "{t} = {s}",
            t=ctx.user_field(self.target, (source_type,)),
            s=ctx.member(self.source),
        )]


@dataclass(frozen=True)
class Threshold(Rule):
    input: str = ""
    output: str = ""
    threshold: Any = 0.5
    above: Any = 1.0
    below: Any = 0.0

    category = "Math"

    def emit(self, ctx):
        out = ctx.user_field(self.output)
        return [ctx.branch(
            "{i} >= {threshold}",
            [ctx.code("{o} = {above}", o=out, above=ctx.value(self.above))],
            [ctx.code("{o} = {below}", o=out, below=ctx.value(self.below))],
            i=ctx.user_field(self.input),
            threshold=ctx.value(self.threshold),
        )]


@dataclass(frozen=True)
class Tween(Rule):
    """
    Animate field from start to end over duration seconds, tracked by
    timer_field.
    """

    field: str = ""
    start: Any = 0.0
    end: Any = 1.0
    duration: Any = 1.0
    timer_field: str = ""

    category = "Math"

    def emit(self, ctx):
        return [ctx.code(
            """
            {timer} = {timer} + {dt}
            {l}t = wp.clamp({timer} / {d}, 0.0, 1.0)
            {f} = {a} + ({b} - {a}) * {l}t
            """,
            timer=ctx.user_field(self.timer_field),
            f=ctx.user_field(self.field),
            d=ctx.value(self.duration),
            a=ctx.value(self.start),
            b=ctx.value(self.end),
        )]


# Logic gates over f32 fields, where values above zero count as true


@dataclass(frozen=True)
class And(Rule):
    a: str = ""
    b: str = ""
    output: str = ""

    category = "Logic"

    def emit(self, ctx):
        return [ctx.code(
            "{o} = wp.min({a}, {b})",
            o=ctx.user_field(self.output),
            a=ctx.user_field(self.a),
            b=ctx.user_field(self.b),
        )]


@dataclass(frozen=True)
class Or(Rule):
    a: str = ""
    b: str = ""
    output: str = ""

    category = "Logic"

    def emit(self, ctx):
        return [ctx.code(
            "{o} = wp.max({a}, {b})",
            o=ctx.user_field(self.output),
            a=ctx.user_field(self.a),
            b=ctx.user_field(self.b),
        )]


@dataclass(frozen=True)
class Not(Rule):
    input: str = ""
    output: str = ""
    max: Any = 1.0

    category = "Logic"

    def emit(self, ctx):
        return [ctx.code(
            "{o} = {m} - {i}",
            o=ctx.user_field(self.output),
            i=ctx.user_field(self.input),
            m=ctx.value(self.max),
        )]


@dataclass(frozen=True)
class Xor(Rule):
    a: str = ""
    b: str = ""
    output: str = ""

    category = "Logic"

    def emit(self, ctx):
        return [ctx.code(
            "{o} = wp.abs({a} - {b})",
            o=ctx.user_field(self.output),
            a=ctx.user_field(self.a),
            b=ctx.user_field(self.b),
        )]


@dataclass(frozen=True)
class Hysteresis(Rule):
    """
    Switch output on above high_threshold and off below low_threshold,
    keeping the previous value in between.
    """

    input: str = ""
    output: str = ""
    low_threshold: Any = 0.3
    high_threshold: Any = 0.7
    on_value: Any = 1.0
    off_value: Any = 0.0

    category = "Logic"

    def emit(self, ctx):
        i = ctx.user_field(self.input)
        o = ctx.user_field(self.output)
        return [ctx.branch(
            "{i} > {high}",
            [ctx.code("{o} = {on}", o=o, on=ctx.value(self.on_value))],
            [ctx.branch(
                "{i} < {low}",
                [ctx.code("{o} = {off}", o=o, off=ctx.value(self.off_value))],
                i=i,
                low=ctx.value(self.low_threshold),
            )],
            i=i,
            high=ctx.value(self.high_threshold),
        )]


@dataclass(frozen=True)
class Latch(Rule):
    output: str = ""
    set_condition: str = "False"
    reset_condition: str = "False"
    set_value: Any = 1.0
    reset_value: Any = 0.0

    category = "Logic"

    def emit(self, ctx):
        o = ctx.user_field(self.output)
        return [ctx.raw_condition(
            self.set_condition,
            [ctx.code("{o} = {v}", o=o, v=ctx.value(self.set_value))],
            [ctx.raw_condition(
                self.reset_condition,
                [ctx.code("{o} = {v}", o=o, v=ctx.value(self.reset_value))],
            )],
        )]


@dataclass(frozen=True)
class Edge(Rule):
    """
    Pulse output to 1.0 on the step input crosses threshold, 0.0
    otherwise. prev_field holds the input of the previous step.
    """

    input: str = ""
    prev_field: str = ""
    output: str = ""
    threshold: Any = 0.5
    rising: bool = True
    falling: bool = False

    category = "Logic"

    def emit(self, ctx):
        params = dict(
            i=ctx.user_field(self.input),
            prev=ctx.user_field(self.prev_field),
            o=ctx.user_field(self.output),
            thr=ctx.value(self.threshold),
        )
        nodes = [ctx.code("{o} = 0.0", **params)]
        if self.rising:
            nodes.append(ctx.branch(
                "{prev} < {thr} and {i} >= {thr}", [ctx.code("{o} = 1.0", **params)], **params
            ))
        if self.falling:
            nodes.append(ctx.branch(
                "{prev} >= {thr} and {i} < {thr}", [ctx.code("{o} = 1.0", **params)], **params
            ))
        nodes.append(ctx.code("{prev} = {i}", **params))
        return nodes


@dataclass(frozen=True)
class Select(Rule):
    condition: str = "False"
    then_field: str = ""
    else_field: str = ""
    output: str = ""

    category = "Logic"

    def emit(self, ctx):
        o = ctx.user_field(self.output)
        return [ctx.raw_condition(
            self.condition,
            [ctx.code("{o} = {v}", o=o, v=ctx.user_field(self.then_field))],
            [ctx.code("{o} = {v}", o=o, v=ctx.user_field(self.else_field))],
        )]


@dataclass(frozen=True)
class Blend(Rule):
    a: str = ""
    b: str = ""
    weight: str = ""
    output: str = ""

    category = "Logic"

    def emit(self, ctx):
        return [ctx.code(
            "{o} = {a} + ({b} - {a}) * wp.clamp({w}, 0.0, 1.0)",
            o=ctx.user_field(self.output),
            a=ctx.user_field(self.a),
            b=ctx.user_field(self.b),
            w=ctx.user_field(self.weight),
        )]


@dataclass(frozen=True)
class Refractory(Rule):
    """
    Limit how long trigger can stay active. Charge in [0, 1] drains while
    trigger is above active_threshold and refills otherwise; an empty
    charge forces trigger to zero.
    """

    trigger: str = ""
    charge: str = ""
    active_threshold: Any = 0.5
    depletion_rate: Any = 1.0
    regen_rate: Any = 0.5

    category = "Logic"

    def emit(self, ctx):
        params = dict(
            trig=ctx.user_field(self.trigger),
            charge=ctx.user_field(self.charge),
        )
        return [
            ctx.branch(
                "{trig} > {thr}",
                [ctx.code("{charge} = {charge} - {dep} * {dt}", dep=ctx.value(self.depletion_rate), **params)],
                [ctx.code("{charge} = {charge} + {regen} * {dt}", regen=ctx.value(self.regen_rate), **params)],
                thr=ctx.value(self.active_threshold),
                **params
            ),
            ctx.code("{charge} = wp.clamp({charge}, 0.0, 1.0)", **params),
            ctx.branch("{charge} <= 0.0", [ctx.code("{trig} = 0.0", **params)], **params),
        ]
