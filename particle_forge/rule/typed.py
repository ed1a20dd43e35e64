# Type tag filtering wrapper

from dataclasses import dataclass
from typing import Optional

from particle_forge.compiler.fragment import filter_neighbors
from particle_forge.error import ConfigurationError
from particle_forge.rule.rule import Rule


@dataclass(frozen=True)
class Typed(Rule):
    """
    Apply rule only to particles whose type tag equals self_type. For
    neighbor rules other_type also restricts which neighbors are visited.
    """

    rule: Rule = None
    self_type: Optional[int] = None
    other_type: Optional[int] = None

    category = "Typed"

    def __post_init__(self):
        if not isinstance(self.rule, Rule):
            raise ConfigurationError("Typed wraps a rule, got {!r}".format(self.rule))

    @property
    def name(self) -> str:
        return "Typed({})".format(self.rule.name)

    @property
    def requires_neighbors(self) -> bool:
        return any(r.requires_neighbors for r in self.rule.walk())

    def children(self):
        return (self.rule,)

    def emit(self, ctx):
        if self.other_type is not None and not self.requires_neighbors:
            raise ConfigurationError(
                "other_type only applies to neighbor rules, {} has no neighbor query".format(
                    self.rule.name
                )
            )
        nodes = list(self.rule.emit(ctx.child(0)))
        if self.other_type is not None:
            nodes = filter_neighbors(
                nodes,
                "other.{} == {}".format(ctx.layout.type_tag, ctx.uint(self.other_type)),
            )
        if self.self_type is not None:
            nodes = [ctx.branch("{type_tag} == {t}", nodes, t=ctx.uint(self.self_type))]
        return nodes
