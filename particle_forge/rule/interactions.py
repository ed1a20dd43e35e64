# Type against type force table

from dataclasses import dataclass, replace

from particle_forge.error import ConfigurationError
from particle_forge.rule.rule import NeighborRule


@dataclass(frozen=True)
class InteractionMatrix(NeighborRule):
    """
    Pairwise forces looked up by particle type. table holds one
    (strength, radius) entry per (self type, other type) pair at
    self_type * num_types + other_type. Within radius a neighbor pulls
    with strength * (1 - distance / radius)^2, positive strength
    attracts and negative strength repels. Zero entries cost nothing.

        matrix = (
            InteractionMatrix(3)
            .attract(0, 1, 2.0, 0.3)
            .repel(1, 0, 1.0, 0.2)
            .set_symmetric(2, 2, -0.5, 0.1)
        )
    """

    num_types: int = 1
    table: tuple = ()

    category = "Typed"

    def __post_init__(self):
        if self.num_types < 1:
            raise ConfigurationError("InteractionMatrix needs at least one type")
        size = self.num_types * self.num_types
        if not self.table:
            object.__setattr__(self, "table", ((0.0, 0.0),) * size)
        if len(self.table) != size:
            raise ConfigurationError(
                "InteractionMatrix table needs {} entries, got {}".format(size, len(self.table))
            )
        for strength, radius in self.table:
            if radius < 0.0:
                raise ConfigurationError("InteractionMatrix radius must be >= 0, got {}".format(radius))

    def _key(self, self_type: int, other_type: int) -> int:
        if not (0 <= self_type < self.num_types and 0 <= other_type < self.num_types):
            raise ConfigurationError(
                "Types ({}, {}) out of range for {} types".format(self_type, other_type, self.num_types)
            )
        return self_type * self.num_types + other_type

    def get(self, self_type: int, other_type: int):
        return self.table[self._key(self_type, other_type)]

    def set(self, self_type: int, other_type: int, strength: float, radius: float) -> "InteractionMatrix":
        table = list(self.table)
        table[self._key(self_type, other_type)] = (float(strength), float(radius))
        return replace(self, table=tuple(table))

    def attract(self, self_type, other_type, strength, radius):
        return self.set(self_type, other_type, abs(strength), radius)

    def repel(self, self_type, other_type, strength, radius):
        return self.set(self_type, other_type, -abs(strength), radius)

    def set_symmetric(self, a, b, strength, radius):
        return self.set(a, b, strength, radius).set(b, a, strength, radius)

    def setup(self, ctx):
        return [ctx.code("{l}force = wp.vec3(0.0, 0.0, 0.0)")]

    def body(self, ctx):
        nodes = [ctx.code(
            "{l}key = wp.int32({type_tag}) * {n} + wp.int32({other})",
            n=self.num_types,
            other="other." + ctx.layout.type_tag,
        )]
        for key, (strength, radius) in enumerate(self.table):
            if strength == 0.0 or radius == 0.0:
                continue
            r = ctx.number(radius)
            nodes.append(ctx.branch(
                "{l}key == {key} and neighbor_dist < {r}",
                [ctx.code(
                    """
                    {l}falloff = 1.0 - neighbor_dist / {r}
                    {l}force = {l}force - neighbor_dir * ({s} * {l}falloff * {l}falloff)
                    """,
                    r=r,
                    s=ctx.number(strength),
                )],
                key=key,
                r=r,
            ))
        return nodes

    def finish(self, ctx):
        return [ctx.code("{vel} = {vel} + {l}force * {dt}")]
