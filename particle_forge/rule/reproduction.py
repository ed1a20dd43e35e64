# Firefly synchronization and particle reproduction

from dataclasses import dataclass
from typing import Any, Optional

from particle_forge.error import ConfigurationError
from particle_forge.rule.rule import Rule, emit_actions, action_children


@dataclass(frozen=True)
class Sync(Rule):
    """
    Pulse coupled oscillators. The phase advances by frequency per second
    and is pulled ahead by coupling * sensed while the field value at the
    particle exceeds detection_threshold. Reaching 1 the phase wraps, the
    particle deposits emit_amount into the field and runs on_fire.
    """

    phase_field: str = "phase"
    frequency: Any = 1.0
    field: Any = None
    emit_amount: Any = 1.0
    coupling: Any = 0.5
    detection_threshold: Any = 0.5
    on_fire: Any = None

    category = "Lifecycle"

    def children(self):
        return action_children(self.on_fire)

    def emit(self, ctx):
        phase = ctx.user_field(self.phase_field)
        nodes = []
        fire = []
        if self.field is not None:
            f = ctx.field(self.field, "scalar")
            nodes.append(ctx.code(
                """
                {l}sensed = field_read(fields, {f}, {pos})
                {phase} = {phase} + {freq} * {dt}
                """,
                f=f,
                phase=phase,
                freq=ctx.value(self.frequency),
            ))
            nodes.append(ctx.branch(
                "{l}sensed > {threshold}",
                [ctx.code(
                    "{phase} = {phase} + {coupling} * {l}sensed * {dt}",
                    phase=phase,
                    coupling=ctx.value(self.coupling),
                )],
                threshold=ctx.value(self.detection_threshold),
            ))
            fire.append(ctx.code(
                "field_write(fields, {f}, {pos}, {amount})",
                f=f,
                amount=ctx.value(self.emit_amount),
            ))
        else:
            nodes.append(ctx.code(
                "{phase} = {phase} + {freq} * {dt}",
                phase=phase,
                freq=ctx.value(self.frequency),
            ))
        nodes.append(ctx.branch(
            "{phase} >= 1.0",
            [ctx.code("{phase} = {phase} - wp.floor({phase})", phase=phase)]
            + fire
            + emit_actions(ctx, self.on_fire),
            phase=phase,
        ))
        return nodes


@dataclass(frozen=True)
class Split(Rule):
    """
    Spawn offspring_count particles when condition holds. The parent
    survives; with a resource_field it needs at least resource_cost, pays
    it, and every child starts with resource_cost / offspring_count.
    Children appear spread away from the parent in a random direction,
    moving away at a speed in [speed_min, speed_max] on top of the parent
    velocity. Offspring keep the parent type unless offspring_type is set.
    """

    condition: str = "False"
    offspring_count: int = 2
    offspring_type: Optional[int] = None
    resource_field: Optional[str] = None
    resource_cost: float = 1.0
    spread: float = 0.5
    speed_min: float = 0.1
    speed_max: float = 0.5

    category = "Lifecycle"

    def emit(self, ctx):
        if self.speed_min > self.speed_max:
            raise ConfigurationError("Split speed_min must not exceed speed_max")
        resource = None
        if self.resource_field is not None:
            resource = ctx.user_field(self.resource_field)
        source = ctx.register_birth(self.name, self.offspring_count, self._offspring)

        spawn = [ctx.push_spawn(source)]
        if resource is not None:
            spawn = [ctx.branch(
                "{r} >= {cost}",
                [ctx.code("{r} = {r} - {cost}", r=resource, cost=ctx.number(self.resource_cost))] + spawn,
                r=resource,
                cost=ctx.number(self.resource_cost),
            )]
        return [ctx.raw_condition(self.condition, spawn)]

    def _offspring(self, ctx):
        tag = "parent_type" if self.offspring_type is None else ctx.uint(self.offspring_type)
        nodes = [ctx.code(
            """
            {l}dir = wp.sample_unit_sphere_surface(rng)
            {pos} = parent_pos + {l}dir * {spread}
            {vel} = parent_vel + {l}dir * wp.randf(rng, {lo}, {hi})
            {type_tag} = {tag}
            """,
            spread=ctx.number(self.spread),
            lo=ctx.number(self.speed_min),
            hi=ctx.number(self.speed_max),
            tag=tag,
        )]
        if ctx.layout.color is not None:
            nodes.append(ctx.code(ctx.assign_color4("parent_color")))
        if self.resource_field is not None:
            nodes.append(ctx.code(
                "{r} = {share}",
                r=ctx.user_field(self.resource_field),
                share=ctx.number(self.resource_cost / self.offspring_count),
            ))
        return nodes
