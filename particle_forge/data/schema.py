# Particle schema resolution and GPU memory layout

import keyword
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from particle_forge.error import (
    MissingRequiredField,
    UnsupportedType,
    DuplicateField,
    InvalidFieldName,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldType:
    name: str
    warp_type: str
    size: int
    align: int
    components: int
    scalar: str  # numpy scalar type of each component


# Vector types follow the 16 byte rule, a vec3 occupies a full 16 bytes
FIELD_TYPES = {
    "f32": FieldType("f32", "wp.float32", 4, 4, 1, "<f4"),
    "i32": FieldType("i32", "wp.int32", 4, 4, 1, "<i4"),
    "u32": FieldType("u32", "wp.uint32", 4, 4, 1, "<u4"),
    "vec2": FieldType("vec2", "wp.vec2", 8, 8, 2, "<f4"),
    "vec3": FieldType("vec3", "wp.vec3", 16, 16, 3, "<f4"),
    "vec4": FieldType("vec4", "wp.vec4", 16, 16, 4, "<f4"),
}

ROLES = ("position", "velocity", "color", "type_tag", "user")

# Lifecycle fields appended to every schema, with their default value
LIFECYCLE_FIELDS = (
    ("type_tag", "u32", "type_tag", 0),
    ("age", "f32", "user", 0.0),
    ("alive", "u32", "user", 1),
    ("scale", "f32", "user", 1.0),
)

STRUCT_ALIGNMENT = 16
PADDING_PREFIX = "padding_"


@dataclass(frozen=True)
class ParticleField:
    """
    One named, typed entry of a particle schema.

    When ``role`` is omitted it is inferred from the name, so a field
    called ``position`` is the position field unless said otherwise.
    """

    name: str
    type: str
    role: Optional[str] = None

    def __post_init__(self):
        if self.role is None:
            inferred = self.name if self.name in ROLES[:4] else "user"
            object.__setattr__(self, "role", inferred)
        if self.role not in ROLES:
            raise InvalidFieldName(
                "Field '{}' has unknown role '{}'".format(self.name, self.role)
            )

    @property
    def field_type(self) -> FieldType:
        return FIELD_TYPES[self.type]


@dataclass(frozen=True)
class LayoutEntry:
    field: ParticleField
    offset: int
    padding_after: int = 0  # bytes of padding emitted after this member


@dataclass(frozen=True)
class ParticleLayout:
    """
    Resolved particle layout, shared read-only by the kernel generator,
    the spawner upload and the read-back helpers.
    """

    entries: tuple
    size: int
    leading_padding: dict = field(default_factory=dict)

    @property
    def fields(self):
        return tuple(e.field for e in self.entries)

    @property
    def names(self):
        return tuple(e.field.name for e in self.entries)

    def offset_of(self, name: str) -> int:
        return self.entry(name).offset

    def entry(self, name: str) -> LayoutEntry:
        for e in self.entries:
            if e.field.name == name:
                return e
        raise KeyError(name)

    def has_field(self, name: str) -> bool:
        return name in self.names

    def field_by_role(self, role: str) -> Optional[ParticleField]:
        for f in self.fields:
            if f.role == role:
                return f
        return None

    @property
    def position(self) -> str:
        return self.field_by_role("position").name

    @property
    def velocity(self) -> str:
        return self.field_by_role("velocity").name

    @property
    def color(self) -> Optional[str]:
        f = self.field_by_role("color")
        return None if f is None else f.name

    @property
    def type_tag(self) -> str:
        return self.field_by_role("type_tag").name

    def members(self):
        """
        Struct members in memory order as (name, warp type) pairs,
        explicit padding scalars included.
        """
        members = []
        pad_count = 0
        for e in self.entries:
            for _ in range(self.leading_padding.get(e.field.name, 0) // 4):
                members.append(("{}{}".format(PADDING_PREFIX, pad_count), "wp.float32"))
                pad_count += 1
            members.append((e.field.name, e.field.field_type.warp_type))
            for _ in range(e.padding_after // 4):
                members.append(("{}{}".format(PADDING_PREFIX, pad_count), "wp.float32"))
                pad_count += 1
        return members

    def struct_source(self, class_name: str = "Particle") -> str:
        lines = ["@wp.struct", "class {}:".format(class_name)]
        for name, warp_type in self.members():
            lines.append("    {}: {}".format(name, warp_type))
        return "\n".join(lines) + "\n"

    def numpy_dtype(self) -> np.dtype:
        """
        Structured dtype with explicit offsets matching the layout.
        """
        names, formats, offsets = [], [], []
        for e in self.entries:
            ft = e.field.field_type
            names.append(e.field.name)
            formats.append(ft.scalar if ft.components == 1 else (ft.scalar, (ft.components,)))
            offsets.append(e.offset)
        return np.dtype(
            {"names": names, "formats": formats, "offsets": offsets, "itemsize": self.size}
        )

    def defaults(self) -> dict:
        values = {}
        for f in self.fields:
            values[f.name] = _lifecycle_default(f.name, f.field_type)
        return values


def _lifecycle_default(name, field_type):
    for lifecycle_name, _, _, default in LIFECYCLE_FIELDS:
        if name == lifecycle_name:
            return default
    if field_type.components == 1:
        return 0
    return (0.0,) * field_type.components


def _round_up(value: int, multiple: int) -> int:
    return (value + multiple - 1) // multiple * multiple


def _as_field(f) -> ParticleField:
    if isinstance(f, ParticleField):
        return f
    if isinstance(f, dict):
        return ParticleField(**f)
    return ParticleField(*f)


def _check_field(f: ParticleField):
    if not f.name.isidentifier() or keyword.iskeyword(f.name):
        raise InvalidFieldName("'{}' is not a valid field name".format(f.name))
    if f.name.startswith(PADDING_PREFIX):
        raise InvalidFieldName(
            "Field names starting with '{}' are reserved".format(PADDING_PREFIX)
        )
    if f.type not in FIELD_TYPES:
        raise UnsupportedType(
            "Field '{}' has unsupported type '{}', expected one of {}".format(
                f.name, f.type, ", ".join(FIELD_TYPES)
            )
        )


def resolve_schema(fields: Sequence) -> ParticleLayout:
    """
    Resolve a user field list into a particle layout.

    Fields keep their declaration order, lifecycle fields that are not
    declared are appended last. Accepts ParticleField instances, dicts or
    (name, type[, role]) tuples.
    """

    # Normalize and validate user fields
    user_fields = [_as_field(f) for f in fields]
    seen = set()
    for f in user_fields:
        _check_field(f)
        if f.name in seen:
            raise DuplicateField("Field '{}' is declared twice".format(f.name))
        seen.add(f.name)

    # A user field taking the lifecycle type tag name becomes the type tag
    if not any(f.role == "type_tag" for f in user_fields):
        user_fields = [
            ParticleField(f.name, f.type, "type_tag") if f.name == "type_tag" else f
            for f in user_fields
        ]

    # Check roles
    for role in ("position", "velocity"):
        matches = [f for f in user_fields if f.role == role]
        if not matches:
            raise MissingRequiredField("Schema has no '{}' field".format(role))
        if len(matches) > 1:
            raise DuplicateField(
                "Schema declares {} '{}' fields".format(len(matches), role)
            )
        if matches[0].type != "vec3":
            raise UnsupportedType(
                "The {} field '{}' must be vec3, got {}".format(
                    role, matches[0].name, matches[0].type
                )
            )
    colors = [f for f in user_fields if f.role == "color"]
    if len(colors) > 1:
        raise DuplicateField("Schema declares more than one color field")
    if colors and colors[0].type not in ("vec3", "vec4"):
        raise UnsupportedType(
            "The color field '{}' must be vec3 or vec4".format(colors[0].name)
        )
    tags = [f for f in user_fields if f.role == "type_tag"]
    if len(tags) > 1:
        raise DuplicateField("Schema declares more than one type tag field")
    if tags and tags[0].type != "u32":
        raise UnsupportedType("The type tag field '{}' must be u32".format(tags[0].name))

    # Append lifecycle fields
    all_fields = list(user_fields)
    for name, type_name, role, _ in LIFECYCLE_FIELDS:
        if role == "type_tag" and tags:
            continue
        if name in seen:
            declared = next(f for f in user_fields if f.name == name)
            if declared.type != type_name:
                raise UnsupportedType(
                    "Lifecycle field '{}' must be {}, got {}".format(
                        name, type_name, declared.type
                    )
                )
            continue
        all_fields.append(ParticleField(name, type_name, role))

    # Compute offsets
    entries = []
    leading_padding = {}
    cursor = 0
    for f in all_fields:
        ft = f.field_type
        offset = _round_up(cursor, ft.align)
        if offset > cursor:
            leading_padding[f.name] = offset - cursor
        padding_after = 4 if f.type == "vec3" else 0
        entries.append(LayoutEntry(f, offset))
        cursor = offset + ft.size
        if padding_after:
            entries[-1] = LayoutEntry(f, offset, padding_after)
    size = _round_up(cursor, STRUCT_ALIGNMENT)
    if size > cursor:
        last = entries[-1]
        entries[-1] = LayoutEntry(last.field, last.offset, last.padding_after + size - cursor)

    layout = ParticleLayout(tuple(entries), size, leading_padding)
    logger.info(
        "Resolved particle schema with %d fields, %d bytes per particle",
        len(entries),
        size,
    )
    return layout
