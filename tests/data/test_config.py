import pytest

from particle_forge.data.spatial import SpatialConfig
from particle_forge.data.field import FieldConfig, FieldHandle, FieldRegistry
from particle_forge.data.uniforms import Uniform, UniformRegistry
from particle_forge.data.spawn import SpawnContext
from particle_forge.error import ConfigurationError


def test_spatial_config():
    config = SpatialConfig()
    assert config.cell_size == 0.1
    assert config.grid_resolution == 64
    assert config.max_neighbors == 0
    assert config.half_span == pytest.approx(3.2)
    assert config.num_cells == 64 ** 3


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(grid_resolution=48),
        dict(grid_resolution=2048),
        dict(grid_resolution=0),
        dict(cell_size=0.0),
        dict(max_neighbors=-1),
    ],
)
def test_spatial_config_errors(kwargs):
    with pytest.raises(ConfigurationError):
        SpatialConfig(**kwargs)


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(resolution=4),
        dict(resolution=512),
        dict(extent=0.0),
        dict(decay=1.5),
        dict(blur=-0.1),
        dict(blur_iterations=-1),
        dict(kind="tensor"),
    ],
)
def test_field_config_errors(kwargs):
    with pytest.raises(ConfigurationError):
        FieldConfig(**kwargs)


def test_field_registry():

    # Register fields
    registry = FieldRegistry()
    food = registry.register("food", FieldConfig(resolution=16))
    flow = registry.register("flow", FieldConfig(resolution=8, kind="vector"))

    # Handles are stable and ordered
    assert food.index == 0
    assert flow.index == 1
    assert food.constant_name == "FIELD_FOOD"
    assert registry.resolve("flow") == flow
    assert registry.config(flow).components == 3
    assert len(registry) == 2

    # Offsets into the flat buffer
    offsets, total = registry.offsets()
    assert offsets == [0, 16 ** 3]
    assert total == 16 ** 3 + 3 * 8 ** 3

    # Duplicate names
    with pytest.raises(ConfigurationError):
        registry.register("food")
    with pytest.raises(ConfigurationError):
        registry.register("FOOD")


def test_foreign_field_handle_rejected():
    registry = FieldRegistry()
    other = FieldRegistry()
    handle = other.register("food")
    registry.register("food")

    with pytest.raises(ConfigurationError):
        registry.resolve(handle)
    with pytest.raises(ConfigurationError):
        registry.resolve(FieldHandle(registry.registry_id, 5, "ghost"))
    with pytest.raises(ConfigurationError):
        registry.resolve("ghost")


def test_uniform_registry():
    uniforms = UniformRegistry()

    # Types are inferred from the initial value
    strength = uniforms.declare("strength", 1.0)
    assert strength == Uniform("strength")
    assert uniforms.type_of("strength") == "f32"
    uniforms.declare("count", 3)
    assert uniforms.type_of("count") == "i32"
    uniforms.declare("target", (0.0, 1.0, 0.0))
    assert uniforms.type_of("target") == "vec3"
    uniforms.declare("mask", 7, dtype="u32")
    assert uniforms.type_of("mask") == "u32"

    # Built-ins are always present
    assert "time" in uniforms
    assert uniforms.type_of("frame") == "i32"

    # Set and get
    uniforms.set("strength", 2.5)
    assert uniforms.get("strength") == 2.5
    uniforms.set("target", (1.0, 2.0, 3.0))
    assert uniforms.get("target") == (1.0, 2.0, 3.0)

    # Struct members, built-ins first
    names = [name for name, _ in uniforms.members()]
    assert names[:3] == ["time", "delta_time", "frame"]
    assert "strength" in names


def test_uniform_registry_errors():
    uniforms = UniformRegistry()
    uniforms.declare("strength", 1.0)
    with pytest.raises(ConfigurationError):
        uniforms.declare("strength", 2.0)
    with pytest.raises(ConfigurationError):
        uniforms.declare("time", 0.0)
    with pytest.raises(ConfigurationError):
        uniforms.declare("flag", True)
    with pytest.raises(ConfigurationError):
        uniforms.set("missing", 1.0)
    with pytest.raises(ConfigurationError):
        uniforms.set("strength", (1.0, 2.0))


def test_spawn_context_is_deterministic():
    a = SpawnContext(3, 10, seed=7)
    b = SpawnContext(3, 10, seed=7)
    assert a.in_sphere(0.5) == b.in_sphere(0.5)

    # Distributions stay inside their shapes
    ctx = SpawnContext(0, 1, seed=1)
    for _ in range(100):
        x, y, z = ctx.in_sphere(0.5)
        assert x * x + y * y + z * z <= 0.25 + 1e-9
        x, y, z = ctx.in_disc(1.0)
        assert y == 0.0
        assert x * x + z * z <= 1.0 + 1e-9
        assert all(0.0 <= c <= 1.0 for c in ctx.random_color())


def test_spawn_on_grid():
    positions = {SpawnContext(i, 8).on_grid(spacing=1.0) for i in range(8)}
    assert len(positions) == 8
    assert (-0.5, -0.5, -0.5) in positions
    assert (0.5, 0.5, 0.5) in positions
