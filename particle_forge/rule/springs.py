# Spring networks between particles addressed by index

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from particle_forge.error import ConfigurationError
from particle_forge.rule.rule import Rule


def _spring(ctx, key: str, other_index: str, stiffness: str, damping: str, rest: str, max_stretch=None):
    """
    Accumulate the damped spring force toward particle other_index into
    {l}force, guarded against dead partners and coincident positions.
    """
    names = dict(
        o="{l}%s_other" % key,
        d="{l}%s_d" % key,
        len="{l}%s_len" % key,
        dir="{l}%s_dir" % key,
        idx=other_index,
        k=stiffness,
        c=damping,
        rest=rest,
    )
    names = {n: v.format(l=ctx.prefix) for n, v in names.items()}
    inner = [ctx.code(
        """
        {dir} = {d} / {len}
        {l}spring = {dir} * (({len} - {rest}) * {k})
        {l}spring = {l}spring + {dir} * (wp.dot({o}.{velocity} - {vel}, {dir}) * {c})
        {l}force = {l}force + {l}spring
        """,
        velocity=ctx.layout.velocity,
        **names
    )]
    if max_stretch is not None:
        inner.append(ctx.branch(
            "{len} > {rest} * {m}",
            [ctx.code("{pos} = {pos} + {dir} * (({len} - {rest} * {m}) * 0.5)", m=max_stretch, **names)],
            m=max_stretch,
            **names
        ))
    fetch = ctx.code("{o} = particles_in[{idx}]", **names)
    return fetch, ctx.branch(
        "{o}.alive != wp.uint32(0)",
        [
            ctx.code(
                """
                {d} = {o}.{position} - {pos}
                {len} = wp.length({d})
                """,
                position=ctx.layout.position,
                **names
            ),
            ctx.branch("{len} > 0.0001", inner, **names),
        ],
        **names
    )


def _max_stretch(ctx, value):
    if value is None:
        return None
    if float(value) < 1.0:
        raise ConfigurationError("max_stretch must be >= 1.0, got {}".format(value))
    return ctx.number(value)


@dataclass(frozen=True)
class ChainSprings(Rule):
    """
    Connect every particle to its index neighbors i - 1 and i + 1.
    """

    stiffness: Any = 100.0
    damping: Any = 1.0
    rest_length: Any = 0.02
    max_stretch: Optional[float] = None

    category = "Springs"

    def emit(self, ctx):
        k = ctx.value(self.stiffness)
        c = ctx.value(self.damping)
        rest = ctx.value(self.rest_length)
        m = _max_stretch(ctx, self.max_stretch)
        return [
            ctx.code(
                """
                {l}force = wp.vec3(0.0, 0.0, 0.0)
                {l}count = particles_in.shape[0]
                """
            ),
            ctx.branch("index > 0", list(_spring(ctx, "prev", "index - 1", k, c, rest, m))),
            ctx.branch("index < {l}count - 1", list(_spring(ctx, "next", "index + 1", k, c, rest, m))),
            ctx.code("{vel} = {vel} + {l}force * {dt}"),
        ]


@dataclass(frozen=True)
class RadialSprings(Rule):
    """
    Wheel topology: particle 0 is the hub, every other particle is tied to
    the hub and to its neighbors on the rim.
    """

    hub_stiffness: Any = 50.0
    ring_stiffness: Any = 100.0
    damping: Any = 1.0
    hub_length: Any = 0.5
    ring_length: Any = 0.05

    category = "Springs"

    def emit(self, ctx):
        c = ctx.value(self.damping)
        ring_k = ctx.value(self.ring_stiffness)
        ring_rest = ctx.value(self.ring_length)
        return [
            ctx.code(
                """
                {l}force = wp.vec3(0.0, 0.0, 0.0)
                {l}count = particles_in.shape[0]
                """
            ),
            ctx.branch("index > 0 and {l}count > 2", [
                ctx.code(
                    """
                    {l}prev_index = index - 1
                    if {l}prev_index < 1:
                        {l}prev_index = {l}count - 1
                    {l}next_index = index + 1
                    if {l}next_index >= {l}count:
                        {l}next_index = 1
                    """
                ),
                *_spring(ctx, "hub", "0", ctx.value(self.hub_stiffness), c, ctx.value(self.hub_length)),
                *_spring(ctx, "prev", ctx.local("prev_index"), ring_k, c, ring_rest),
                *_spring(ctx, "next", ctx.local("next_index"), ring_k, c, ring_rest),
            ]),
            ctx.code("{vel} = {vel} + {l}force * {dt}"),
        ]


@dataclass(frozen=True)
class BondSprings(Rule):
    """
    Springs to partners stored in i32 particle fields, -1 meaning no bond.
    """

    bonds: Tuple[str, ...] = ()
    stiffness: Any = 100.0
    damping: Any = 1.0
    rest_length: Any = 0.05
    max_stretch: Optional[float] = None

    category = "Springs"

    def __post_init__(self):
        object.__setattr__(self, "bonds", tuple(self.bonds))

    def emit(self, ctx):
        if not self.bonds:
            raise ConfigurationError("BondSprings needs at least one bond field")
        k = ctx.value(self.stiffness)
        c = ctx.value(self.damping)
        rest = ctx.value(self.rest_length)
        m = _max_stretch(ctx, self.max_stretch)
        nodes = [ctx.code(
            """
            {l}force = wp.vec3(0.0, 0.0, 0.0)
            {l}count = particles_in.shape[0]
            """
        )]
        for i, bond in enumerate(self.bonds):
            key = "b{}".format(i)
            partner = ctx.user_field(bond, ("i32",))
            nodes.append(ctx.branch(
                "{partner} >= 0 and {partner} < {l}count and {partner} != index",
                list(_spring(ctx, key, partner, k, c, rest, m)),
                partner=partner,
            ))
        nodes.append(ctx.code("{vel} = {vel} + {l}force * {dt}"))
        return nodes
