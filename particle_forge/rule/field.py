# Rules reading and writing the 3D fields

from dataclasses import dataclass
from typing import Any, Optional

from particle_forge.error import ConfigurationError
from particle_forge.rule.rule import Rule


@dataclass(frozen=True)
class Deposit(Rule):
    """
    Add amount to the field at the particle position, scaled by a particle
    field when source is given. Vector fields receive velocity * amount and
    take no source.
    """

    field: Any = None
    amount: Any = 1.0
    source: Optional[str] = None

    category = "Field Interactions"

    def emit(self, ctx):
        f = ctx.field(self.field)
        if ctx.field_config(self.field).kind == "vector":
            if self.source is not None:
                raise ConfigurationError(
                    "Deposit into vector field '{}' writes velocity, source '{}' is not used".format(
                        self.field.name, self.source
                    )
                )
            return [ctx.code(
                "field_write_vec3(fields, {f}, {pos}, {vel} * {amount})",
                f=f,
                amount=ctx.value(self.amount),
            )]
        value = ctx.value(self.amount)
        if self.source is not None:
            value = "{} * {}".format(ctx.user_field(self.source), value)
        return [ctx.code("field_write(fields, {f}, {pos}, {v})", f=f, v=value)]


@dataclass(frozen=True)
class Sense(Rule):
    """
    Store the field value at the particle position in target.
    """

    field: Any = None
    target: str = ""

    category = "Field Interactions"

    def emit(self, ctx):
        f = ctx.field(self.field)
        if ctx.field_config(self.field).kind == "vector":
            return [ctx.code(
                "{t} = field_read_vec3(fields, {f}, {pos})",
                t=ctx.user_field(self.target, ("vec3",)),
                f=f,
            )]
        return [ctx.code(
            "{t} = field_read(fields, {f}, {pos})",
            t=ctx.user_field(self.target),
            f=f,
        )]


@dataclass(frozen=True)
class Consume(Rule):
    """
    Take up to rate per second out of a scalar field into target.
    """

    field: Any = None
    target: str = ""
    rate: Any = 1.0

    category = "Field Interactions"

    def emit(self, ctx):
        return [ctx.code(
            """
            {l}available = wp.max(field_read(fields, {f}, {pos}), 0.0)
            {l}taken = wp.min({l}available, {rate} * {dt})
            {t} = {t} + {l}taken
            field_write(fields, {f}, {pos}, -{l}taken)
            """,
            f=ctx.field(self.field, "scalar"),
            t=ctx.user_field(self.target),
            rate=ctx.value(self.rate),
        )]


@dataclass(frozen=True)
class Gradient(Rule):
    """
    Accelerate up (ascending) or down the gradient of a scalar field.
    epsilon defaults to one cell of the field.
    """

    field: Any = None
    strength: Any = 1.0
    ascending: bool = True
    epsilon: Optional[float] = None

    category = "Field Interactions"

    def emit(self, ctx):
        f = ctx.field(self.field, "scalar")
        epsilon = self.epsilon
        if epsilon is None:
            config = ctx.field_config(self.field)
            epsilon = 2.0 * config.extent / config.resolution
        sign = "" if self.ascending else "-"
        return [ctx.code(
            """
            {l}grad = field_gradient(fields, {f}, {pos}, {eps})
            {vel} = {vel} + {sign}{l}grad * {s} * {dt}
            """,
            f=f,
            eps=ctx.number(epsilon),
            sign=sign,
            s=ctx.value(self.strength),
        )]


@dataclass(frozen=True)
class Current(Rule):
    """
    Push particles along a vector field.
    """

    field: Any = None
    strength: Any = 1.0

    category = "Field Interactions"

    def emit(self, ctx):
        return [ctx.code(
            "{vel} = {vel} + field_read_vec3(fields, {f}, {pos}) * {s} * {dt}",
            f=ctx.field(self.field, "vector"),
            s=ctx.value(self.strength),
        )]
