# Per-frame uniform values

import logging
from dataclasses import dataclass

import warp as wp

from particle_forge.error import ConfigurationError

logger = logging.getLogger(__name__)

UNIFORM_TYPES = {
    "f32": ("wp.float32", wp.float32, 1),
    "i32": ("wp.int32", wp.int32, 1),
    "u32": ("wp.uint32", wp.uint32, 1),
    "vec2": ("wp.vec2", wp.vec2, 2),
    "vec3": ("wp.vec3", wp.vec3, 3),
    "vec4": ("wp.vec4", wp.vec4, 4),
}

# Members present on every uniform struct
BUILTIN_UNIFORMS = (
    ("time", "f32"),
    ("delta_time", "f32"),
    ("frame", "i32"),
)


@dataclass(frozen=True)
class Uniform:
    """
    Reference to a declared uniform, usable in place of a literal rule
    parameter.
    """

    name: str


def _infer_type(value):
    if isinstance(value, bool):
        raise ConfigurationError("Boolean uniforms are not supported")
    if isinstance(value, int):
        return "i32"
    if isinstance(value, float):
        return "f32"
    if isinstance(value, (tuple, list)) and len(value) in (2, 3, 4):
        return "vec{}".format(len(value))
    raise ConfigurationError("Cannot infer uniform type of {!r}".format(value))


class UniformRegistry:
    """
    Named, typed slots of the uniform buffer uploaded before every step
    """

    def __init__(self):
        self._types = {}
        self._values = {}

    def declare(self, name: str, initial_value, dtype: str = None):
        if not name.isidentifier():
            raise ConfigurationError("Uniform name '{}' is not an identifier".format(name))
        if name in self._types or name in dict(BUILTIN_UNIFORMS):
            raise ConfigurationError("Uniform '{}' is already declared".format(name))
        if dtype is None:
            dtype = _infer_type(initial_value)
        if dtype not in UNIFORM_TYPES:
            raise ConfigurationError("Unsupported uniform type '{}'".format(dtype))
        self._types[name] = dtype
        self._values[name] = self._coerce(name, dtype, initial_value)
        logger.debug("Declared uniform %s: %s", name, dtype)
        return Uniform(name)

    def _coerce(self, name, dtype, value):
        components = UNIFORM_TYPES[dtype][2]
        if components == 1:
            if isinstance(value, (tuple, list)):
                raise ConfigurationError("Uniform '{}' expects a scalar".format(name))
            return float(value) if dtype == "f32" else int(value)
        if not isinstance(value, (tuple, list)) or len(value) != components:
            raise ConfigurationError(
                "Uniform '{}' expects {} components".format(name, components)
            )
        return tuple(float(v) for v in value)

    def set(self, name: str, value):
        if name not in self._types:
            raise ConfigurationError("Uniform '{}' was never declared".format(name))
        self._values[name] = self._coerce(name, self._types[name], value)

    def get(self, name: str):
        return self._values[name]

    def type_of(self, name: str) -> str:
        if name in dict(BUILTIN_UNIFORMS):
            return dict(BUILTIN_UNIFORMS)[name]
        if name not in self._types:
            raise ConfigurationError("Uniform '{}' was never declared".format(name))
        return self._types[name]

    def members(self):
        """
        Struct members as (name, warp type) pairs, built-ins first
        """
        members = [(n, UNIFORM_TYPES[t][0]) for n, t in BUILTIN_UNIFORMS]
        members.extend((n, UNIFORM_TYPES[t][0]) for n, t in self._types.items())
        return members

    def struct_source(self, class_name: str = "Uniforms") -> str:
        lines = ["@wp.struct", "class {}:".format(class_name)]
        for name, warp_type in self.members():
            lines.append("    {}: {}".format(name, warp_type))
        return "\n".join(lines) + "\n"

    def fill(self, uniforms, time: float, delta_time: float, frame: int):
        """
        Copy the current values into an instance of the generated struct
        """
        uniforms.time = wp.float32(time)
        uniforms.delta_time = wp.float32(delta_time)
        uniforms.frame = wp.int32(frame)
        for name, dtype in self._types.items():
            warp_type = UNIFORM_TYPES[dtype][1]
            value = self._values[name]
            if isinstance(value, tuple):
                setattr(uniforms, name, warp_type(*value))
            else:
                setattr(uniforms, name, warp_type(value))
        return uniforms

    def __contains__(self, name):
        return name in self._types or name in dict(BUILTIN_UNIFORMS)

    def __len__(self):
        return len(self._types)
