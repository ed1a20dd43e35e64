# State shared by rules while they lower to fragments

import math
from dataclasses import dataclass
from typing import Callable

from particle_forge.compiler.fragment import statement, branch, normalize, Statement
from particle_forge.data.schema import ParticleLayout
from particle_forge.data.uniforms import Uniform, UniformRegistry
from particle_forge.data.field import FieldRegistry
from particle_forge.data.spatial import SpatialConfig
from particle_forge.error import ConfigurationError


@dataclass(frozen=True)
class Birth:
    """
    A source of spawn requests. Every request pushed with this source
    spawns up to count particles, each initialized by init(ctx).
    """

    name: str
    count: int
    init: Callable


class GenerationState:
    """
    Mutable bookkeeping for one generator walk
    """

    def __init__(self):
        self.used_fields = set()
        self.uses_all_fields = False
        self.births = []


class EmitContext:
    """
    Handed to Rule.emit. Formats literals, resolves schema members,
    uniforms and fields, and hands out unique local names.

    Templates are written with placeholders filled by ``code``: {pos},
    {vel}, {color}, {type_tag}, {age}, {alive}, {scale} for particle
    members, {dt} and {time} for the clock and {l} for the rule's local
    name prefix.
    """

    def __init__(
        self,
        layout: ParticleLayout,
        uniforms: UniformRegistry,
        fields: FieldRegistry,
        spatial: SpatialConfig = None,
        bounds: float = 1.0,
        path=(),
        state: GenerationState = None,
    ):
        self.layout = layout
        self.uniforms = uniforms
        self.fields = fields
        self.spatial = spatial
        self.bounds = bounds
        self.path = tuple(path)
        self.state = state if state is not None else GenerationState()

    def child(self, key) -> "EmitContext":
        return EmitContext(
            self.layout,
            self.uniforms,
            self.fields,
            self.spatial,
            self.bounds,
            self.path + (str(key),),
            self.state,
        )

    # Names

    @property
    def prefix(self) -> str:
        return "r" + "_".join(self.path) + "_"

    def local(self, name: str) -> str:
        return self.prefix + name

    def member(self, name: str) -> str:
        return "p." + name

    @property
    def pos(self) -> str:
        return self.member(self.layout.position)

    @property
    def vel(self) -> str:
        return self.member(self.layout.velocity)

    @property
    def type_tag(self) -> str:
        return self.member(self.layout.type_tag)

    @property
    def color(self) -> str:
        if self.layout.color is None:
            raise ConfigurationError("This rule needs a color field in the particle schema")
        return self.member(self.layout.color)

    @property
    def color_is_vec4(self) -> bool:
        return self.layout.field_by_role("color").type == "vec4"

    def set_color(self, rgb: str) -> str:
        """
        Assignment of an rgb vec3 expression to the color field, keeping
        alpha for vec4 colors
        """
        color = self.color
        if self.color_is_vec4:
            return "{c} = wp.vec4(({rgb})[0], ({rgb})[1], ({rgb})[2], {c}[3])".format(c=color, rgb=rgb)
        return "{} = {}".format(color, rgb)

    def color4(self) -> str:
        """
        The particle color as a vec4 expression, opaque black without a
        color field
        """
        if self.layout.color is None:
            return "wp.vec4(0.0, 0.0, 0.0, 1.0)"
        if self.color_is_vec4:
            return self.color
        return "wp.vec4({c}[0], {c}[1], {c}[2], 1.0)".format(c=self.color)

    def assign_color4(self, rgba: str) -> str:
        """
        Assignment of a vec4 expression to the color field, alpha dropped
        for vec3 colors
        """
        if self.color_is_vec4:
            return "{} = {}".format(self.color, rgba)
        return "{c} = wp.vec3(({v})[0], ({v})[1], ({v})[2])".format(c=self.color, v=rgba)

    def user_field(self, name: str, types=("f32",)) -> str:
        """
        Particle member of a named schema field, checked against the
        expected types
        """
        if not self.layout.has_field(name):
            raise ConfigurationError("Particle schema has no field '{}'".format(name))
        field_type = self.layout.entry(name).field.type
        if field_type not in types:
            raise ConfigurationError(
                "Field '{}' is {}, expected {}".format(name, field_type, " or ".join(types))
            )
        return self.member(name)

    # Literals

    def number(self, value) -> str:
        value = float(value)
        if not math.isfinite(value):
            raise ConfigurationError("Rule parameters must be finite, got {}".format(value))
        return repr(value)

    def value(self, value, dtype: str = "f32") -> str:
        """
        Literal or uniform reference for a scalar parameter
        """
        if isinstance(value, Uniform):
            return self.uniform(value, dtype)
        return self.number(value)

    def vec3(self, value) -> str:
        if isinstance(value, Uniform):
            return self.uniform(value, "vec3")
        if len(value) != 3:
            raise ConfigurationError("Expected 3 components, got {!r}".format(value))
        return "wp.vec3({}, {}, {})".format(*(self.number(v) for v in value))

    def unit_vec3(self, value) -> str:
        """
        Normalized vec3 literal, uniforms are normalized in the kernel
        """
        if isinstance(value, Uniform):
            return "wp.normalize({})".format(self.uniform(value, "vec3"))
        length = math.sqrt(sum(float(v) ** 2 for v in value))
        if length == 0.0:
            raise ConfigurationError("Direction must not be zero")
        return self.vec3([float(v) / length for v in value])

    def uint(self, value) -> str:
        if isinstance(value, Uniform):
            return self.uniform(value, "u32")
        value = int(value)
        if value < 0:
            raise ConfigurationError("Expected a non negative integer, got {}".format(value))
        return "wp.uint32({})".format(value)

    def uniform(self, ref: Uniform, dtype: str) -> str:
        if ref.name not in self.uniforms:
            raise ConfigurationError("Uniform '{}' was never declared".format(ref.name))
        declared = self.uniforms.type_of(ref.name)
        if declared != dtype:
            raise ConfigurationError(
                "Uniform '{}' is {}, this parameter needs {}".format(ref.name, declared, dtype)
            )
        return "uniforms." + ref.name

    # Fields

    def field(self, handle, kind: str = None):
        """
        Constant name of a registered field, recorded as used
        """
        handle = self.fields.resolve(handle)
        config = self.fields.config(handle)
        if kind is not None and config.kind != kind:
            raise ConfigurationError(
                "Field '{}' is a {} field, this rule needs a {} field".format(
                    handle.name, config.kind, kind
                )
            )
        self.state.used_fields.add(handle.index)
        return handle.constant_name

    def field_config(self, handle):
        return self.fields.config(handle)

    # Fragments

    def placeholders(self) -> dict:
        values = {
            "pos": self.pos,
            "vel": self.vel,
            "type_tag": self.type_tag,
            "age": self.member("age"),
            "alive": self.member("alive"),
            "scale": self.member("scale"),
            "dt": "delta_time",
            "time": "time",
            "l": self.prefix,
        }
        if self.layout.color is not None:
            values["color"] = self.color
        return values

    def code(self, template: str, **params) -> Statement:
        values = self.placeholders()
        values.update(params)
        return statement(normalize(template).format(**values))

    def branch(self, condition: str, body, orelse=(), **params):
        values = self.placeholders()
        values.update(params)
        return branch(condition.format(**values), body, orelse)

    def raw(self, source: str) -> Statement:
        """
        Caller supplied text, spliced verbatim after dedenting
        """
        node = statement(source)
        self._note_fields(node.identifiers)
        return node

    def raw_condition(self, condition: str, body, orelse=()):
        node = branch("({})".format(normalize(condition)), body, orelse)
        self._note_fields(node.identifiers)
        return node

    def _note_fields(self, names):
        # Text naming FIELD_ constants is resolved by the generator, text
        # indexing fields any other way keeps every field alive
        if "fields" in names and not any(n.startswith("FIELD_") for n in names):
            self.state.uses_all_fields = True

    # Spawning

    def register_birth(self, name: str, count: int, init) -> int:
        """
        Declare a spawn source, returns the source index pushed with
        spawn requests
        """
        count = int(count)
        if count < 1:
            raise ConfigurationError("{} must spawn at least one particle, got {}".format(name, count))
        self.state.births.append(Birth(name, count, init))
        return len(self.state.births) - 1

    def push_spawn(self, source: int) -> Statement:
        """
        Queue a spawn request from the current particle
        """
        return self.code(
            "spawn_push(queue, {source}, index, {pos}, {vel}, {c}, {type_tag})",
            source=source,
            c=self.color4(),
        )

    def require_spatial(self, rule_name: str):
        if self.spatial is None:
            raise ConfigurationError(
                "{} queries neighbors and needs a SpatialConfig".format(rule_name)
            )
