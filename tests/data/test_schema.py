import pytest

import numpy as np

from particle_forge.data.schema import ParticleField, resolve_schema
from particle_forge.error import (
    SchemaError,
    MissingRequiredField,
    UnsupportedType,
    DuplicateField,
    InvalidFieldName,
)


def _basic_fields(*extra):
    return [("position", "vec3"), ("velocity", "vec3")] + list(extra)


def test_vec3_occupies_16_bytes():

    # Resolve schema
    layout = resolve_schema(_basic_fields(("energy", "f32")))

    # Check offsets
    assert layout.offset_of("position") == 0
    assert layout.offset_of("velocity") == 16
    assert layout.offset_of("energy") == 32
    assert layout.offset_of("type_tag") == 36
    assert layout.offset_of("age") == 40
    assert layout.offset_of("alive") == 44
    assert layout.offset_of("scale") == 48
    assert layout.size == 64


def test_alignment_padding():

    # Scalar before a vec3 forces padding up to 16 bytes
    layout = resolve_schema([("mass", "f32"), ("position", "vec3"), ("velocity", "vec3")])
    assert layout.offset_of("mass") == 0
    assert layout.offset_of("position") == 16
    assert layout.offset_of("velocity") == 32
    assert layout.size % 16 == 0

    # vec2 aligns to 8
    layout = resolve_schema(_basic_fields(("a", "f32"), ("uv", "vec2")))
    assert layout.offset_of("a") == 32
    assert layout.offset_of("uv") == 40


def test_lifecycle_fields_appended_last():
    layout = resolve_schema(_basic_fields(("energy", "f32")))
    assert layout.names == ("position", "velocity", "energy", "type_tag", "age", "alive", "scale")
    assert layout.type_tag == "type_tag"


def test_user_type_tag_replaces_lifecycle_tag():
    layout = resolve_schema(_basic_fields(ParticleField("species", "u32", "type_tag")))
    assert layout.type_tag == "species"
    assert "type_tag" not in layout.names


def test_user_field_named_type_tag_becomes_the_tag():

    # Declared as a plain user field under the lifecycle name
    layout = resolve_schema(_basic_fields(ParticleField("type_tag", "u32", "user")))
    assert layout.type_tag == "type_tag"
    assert layout.names.count("type_tag") == 1
    assert layout.field_by_role("type_tag").name == "type_tag"

    # Still has to be u32
    with pytest.raises(UnsupportedType):
        resolve_schema(_basic_fields(ParticleField("type_tag", "f32", "user")))


def test_role_inference():
    layout = resolve_schema(_basic_fields(("color", "vec4")))
    assert layout.position == "position"
    assert layout.velocity == "velocity"
    assert layout.color == "color"
    assert ParticleField("energy", "f32").role == "user"

    # Roles can be given explicitly
    layout = resolve_schema([
        ParticleField("p", "vec3", "position"),
        ParticleField("v", "vec3", "velocity"),
    ])
    assert layout.position == "p"
    assert layout.velocity == "v"


def test_struct_source_has_explicit_padding():
    layout = resolve_schema(_basic_fields())
    source = layout.struct_source("Particle")
    assert source.startswith("@wp.struct\nclass Particle:")
    assert "    position: wp.vec3" in source
    assert "    padding_0: wp.float32" in source
    names = [name for name, _ in layout.members()]
    assert names.index("padding_0") == names.index("position") + 1


def test_numpy_dtype_matches_layout():
    layout = resolve_schema(_basic_fields(("energy", "f32"), ("uv", "vec2")))
    dtype = layout.numpy_dtype()
    assert dtype.itemsize == layout.size
    for name in layout.names:
        assert dtype.fields[name][1] == layout.offset_of(name)

    # Defaults
    data = np.zeros(1, dtype=dtype)
    for name, value in layout.defaults().items():
        data[name] = value
    assert data["alive"][0] == 1
    assert data["scale"][0] == 1.0


@pytest.mark.parametrize(
    "fields, error",
    [
        ([("velocity", "vec3")], MissingRequiredField),
        ([("position", "vec3")], MissingRequiredField),
        ([("position", "f32"), ("velocity", "vec3")], UnsupportedType),
        (_basic_fields(("energy", "f64")), UnsupportedType),
        (_basic_fields(("color", "f32")), UnsupportedType),
        (_basic_fields(("age", "vec3")), UnsupportedType),
        (_basic_fields(("energy", "f32"), ("energy", "i32")), DuplicateField),
        (_basic_fields(("class", "f32")), InvalidFieldName),
        (_basic_fields(("padding_0", "f32")), InvalidFieldName),
        (_basic_fields(("not a name", "f32")), InvalidFieldName),
    ],
)
def test_schema_errors(fields, error):
    with pytest.raises(error):
        resolve_schema(fields)


def test_schema_errors_are_value_errors():
    with pytest.raises(ValueError):
        resolve_schema([])
    assert issubclass(MissingRequiredField, SchemaError)
