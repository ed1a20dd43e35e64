# State machines over an integer particle field

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from particle_forge.error import ConfigurationError
from particle_forge.rule.rule import Rule, emit_actions, action_children


def _freeze(actions):
    if isinstance(actions, list):
        return tuple(actions)
    return actions


@dataclass(frozen=True)
class State(Rule):
    """
    Transition table over a u32 field. transitions is a sequence of
    (from_state, to_state, condition) and the first matching row for the
    current state wins.
    """

    field: str = ""
    transitions: Tuple[Tuple[int, int, str], ...] = ()

    category = "State Machines"

    def __post_init__(self):
        object.__setattr__(self, "transitions", tuple(tuple(t) for t in self.transitions))

    def emit(self, ctx):
        f = ctx.user_field(self.field, ("u32",))
        nodes = [ctx.code("{l}state = {f}", f=f)]
        chain = []
        for source, target, condition in reversed(self.transitions):
            node = ctx.raw_condition(
                "{l}state == {s} and ({c})".format(l=ctx.prefix, s=ctx.uint(source), c=condition),
                [ctx.code("{f} = {t}", f=f, t=ctx.uint(target))],
                chain,
            )
            chain = [node]
        return nodes + chain


@dataclass(frozen=True)
class Transition:
    """
    Move to state `to` when condition holds. Higher priority is checked
    first, equal priorities in declaration order.
    """

    to: int
    condition: str
    priority: int = 0


@dataclass(frozen=True)
class AgentState:
    """
    One state of an Agent. Actions are kernel text or rule sequences.
    """

    id: int
    name: Optional[str] = None
    on_enter: Any = None
    on_update: Any = None
    on_exit: Any = None
    transitions: Tuple[Transition, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "on_enter", _freeze(self.on_enter))
        object.__setattr__(self, "on_update", _freeze(self.on_update))
        object.__setattr__(self, "on_exit", _freeze(self.on_exit))
        object.__setattr__(self, "transitions", tuple(self.transitions))

    @property
    def label(self) -> str:
        return self.name if self.name is not None else "state {}".format(self.id)

    def sorted_transitions(self):
        # sorted is stable, ties keep declaration order
        return sorted(self.transitions, key=lambda t: -t.priority)


@dataclass(frozen=True)
class Agent(Rule):
    """
    State machine with enter, update and exit actions.

    Every step the agent detects a state change (state differs from
    prev_state), runs the old state's exit and the new state's enter
    actions and resets the timer. It then runs the update action of the
    current state, advances the timer and evaluates the current state's
    transitions, first match wins.
    """

    state_field: str = ""
    prev_state_field: str = ""
    states: Tuple[AgentState, ...] = ()
    timer_field: Optional[str] = None

    category = "State Machines"

    def __post_init__(self):
        object.__setattr__(self, "states", tuple(self.states))
        ids = [s.id for s in self.states]
        if len(set(ids)) != len(ids):
            raise ConfigurationError("Agent state ids must be unique, got {}".format(ids))
        for state in self.states:
            for transition in state.transitions:
                if transition.to not in ids:
                    raise ConfigurationError(
                        "Transition from {} targets unknown state {}".format(state.label, transition.to)
                    )

    def children(self):
        rules = ()
        for state in self.states:
            rules += action_children(state.on_enter)
            rules += action_children(state.on_update)
            rules += action_children(state.on_exit)
        return rules

    def emit(self, ctx):
        state_member = ctx.user_field(self.state_field, ("u32",))
        prev_member = ctx.user_field(self.prev_state_field, ("u32",))
        timer = None
        if self.timer_field is not None:
            timer = ctx.user_field(self.timer_field)

        nodes = [ctx.code(
            """
            {l}state = {s}
            {l}prev = {prev}
            """,
            s=state_member,
            prev=prev_member,
        )]

        # Exit the old state and enter the new one
        change = []
        for state in self.states:
            if state.on_exit is not None:
                change.append(ctx.branch(
                    "{l}prev == {k}",
                    emit_actions(ctx.child("s{}_exit".format(state.id)), state.on_exit),
                    k=ctx.uint(state.id),
                ))
        for state in self.states:
            if state.on_enter is not None:
                change.append(ctx.branch(
                    "{l}state == {k}",
                    emit_actions(ctx.child("s{}_enter".format(state.id)), state.on_enter),
                    k=ctx.uint(state.id),
                ))
        change.append(ctx.code("{prev} = {l}state", prev=prev_member))
        if timer is not None:
            change.append(ctx.code("{t} = 0.0", t=timer))
        nodes.append(ctx.branch("{l}state != {l}prev", change))

        # Update the current state
        for state in self.states:
            if state.on_update is not None:
                nodes.append(ctx.branch(
                    "{l}state == {k}",
                    emit_actions(ctx.child("s{}_update".format(state.id)), state.on_update),
                    k=ctx.uint(state.id),
                ))
        if timer is not None:
            nodes.append(ctx.code("{t} = {t} + {dt}", t=timer))

        # Transitions
        for state in self.states:
            chain = []
            for transition in reversed(state.sorted_transitions()):
                chain = [ctx.raw_condition(
                    transition.condition,
                    [ctx.code("{s} = {to}", s=state_member, to=ctx.uint(transition.to))],
                    chain,
                )]
            if chain:
                nodes.append(ctx.branch("{l}state == {k}", chain, k=ctx.uint(state.id)))
        return nodes
