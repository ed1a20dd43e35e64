# Rules carrying caller written kernel text

from dataclasses import dataclass
from typing import Any

from particle_forge.rule.rule import Rule, NeighborRule


@dataclass(frozen=True)
class Custom(Rule):
    """
    Kernel statements run in particle scope. They can read and write p and
    use tid, index, time, delta_time, uniforms, rng, fields, the FIELD_
    constants and the utility functions.
    """

    code: str = ""

    category = "Custom"

    def emit(self, ctx):
        return [ctx.raw(self.code)]


@dataclass(frozen=True)
class NeighborCustom(NeighborRule):
    """
    Kernel statements run once per neighbor, with other, other_index,
    neighbor_pos, neighbor_vel, neighbor_dist and neighbor_dir bound.
    """

    code: str = ""

    category = "Custom"

    def body(self, ctx):
        return [ctx.raw(self.code)]


@dataclass(frozen=True)
class OnCollision(NeighborRule):
    """
    Like NeighborCustom, only for neighbors closer than radius.
    """

    radius: Any = 0.05
    response: str = ""

    category = "Custom"

    def body(self, ctx):
        return [ctx.branch("neighbor_dist < {r}", [ctx.raw(self.response)], r=ctx.value(self.radius))]
