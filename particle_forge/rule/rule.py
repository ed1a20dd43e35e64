# Base classes for the rule taxonomy

from dataclasses import dataclass
from enum import Enum

from particle_forge.compiler.fragment import NeighborLoop, Comment


class Falloff(Enum):
    CONSTANT = "constant"
    LINEAR = "linear"
    INVERSE = "inverse"
    INVERSE_SQUARE = "inverse_square"
    SMOOTH = "smooth"

    def expression(self, x: str) -> str:
        """
        Weight for a normalized distance x in [0, 1]
        """
        if self is Falloff.CONSTANT:
            return "1.0"
        if self is Falloff.LINEAR:
            return "(1.0 - {x})".format(x=x)
        if self is Falloff.INVERSE:
            return "(1.0 / ({x} + 0.1))".format(x=x)
        if self is Falloff.INVERSE_SQUARE:
            return "(1.0 / ({x} * {x} + 0.01))".format(x=x)
        return "(1.0 - {x} * {x} * (3.0 - 2.0 * {x}))".format(x=x)


@dataclass(frozen=True)
class Rule:
    """
    A declarative particle behavior. Rules lower to fragment nodes through
    emit and are executed in the order they are declared.
    """

    category = "Rule"
    requires_neighbors = False

    @property
    def name(self) -> str:
        return type(self).__name__

    def children(self):
        return ()

    def walk(self):
        yield self
        for child in self.children():
            yield from child.walk()

    def emit(self, ctx):
        raise NotImplementedError


@dataclass(frozen=True)
class NeighborRule(Rule):
    """
    Rule evaluated against every neighbor found through the spatial hash.
    Subclasses provide setup (before the loop), body (per neighbor) and
    finish (after the loop).
    """

    requires_neighbors = True

    def setup(self, ctx):
        return []

    def body(self, ctx):
        return []

    def finish(self, ctx):
        return []

    def emit(self, ctx):
        ctx.require_spatial(self.name)
        return [
            NeighborLoop(
                ctx.prefix,
                tuple(self.setup(ctx)),
                tuple(self.body(ctx)),
                tuple(self.finish(ctx)),
            )
        ]


def emit_actions(ctx, actions):
    """
    Lower an action, either caller supplied text or a sequence of rules
    """
    if actions is None:
        return []
    if isinstance(actions, str):
        return [ctx.raw(actions)]
    if isinstance(actions, Rule):
        actions = [actions]
    nodes = []
    for i, rule in enumerate(actions):
        nodes.append(Comment(rule.name))
        nodes.extend(rule.emit(ctx.child(i)))
    return nodes


def action_children(actions):
    if actions is None or isinstance(actions, str):
        return ()
    if isinstance(actions, Rule):
        return (actions,)
    return tuple(actions)
