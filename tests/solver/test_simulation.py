import pytest

import numpy as np
import warp as wp

from particle_forge.data.field import FieldConfig, FieldRegistry
from particle_forge.data.spatial import SpatialConfig
from particle_forge.data.uniforms import Uniform, UniformRegistry
from particle_forge.error import ConfigurationError, SchemaError
from particle_forge.rule import (
    BounceWalls,
    Custom,
    Deposit,
    Gravity,
    Lifetime,
    Maybe,
    NeighborCustom,
    Sense,
    Separate,
)
from particle_forge.solver import Simulation

wp.init()

DEVICE = "cpu"

BASIC = [("position", "vec3"), ("velocity", "vec3")]


def _simulation(tmp_path, fields, count, rules, **kwargs):
    return Simulation(
        fields,
        count,
        rules,
        device=DEVICE,
        cache_dir=str(tmp_path),
        **kwargs,
    )


def test_particle_struct_matches_layout(tmp_path):
    sim = _simulation(tmp_path, BASIC + [("energy", "f32"), ("uv", "vec2")], 4, [])
    dtype = sim.particle_struct.numpy_dtype()
    assert dtype["itemsize"] == sim.layout.size
    for name in sim.layout.names:
        assert dtype["offsets"][dtype["names"].index(name)] == sim.layout.offset_of(name)


def test_gravity_and_walls_keep_particles_inside(tmp_path):

    # Particles dropped inside the unit cube
    sim = _simulation(
        tmp_path,
        BASIC,
        64,
        [Gravity(9.8), BounceWalls(0.5)],
        spawner=lambda ctx: {"position": ctx.in_cube(0.5)},
    )
    start = sim.particles()["position"].copy()

    # Run
    sim.run(300, 0.01)
    particles = sim.particles()

    # Bounced back in, only the last integration step can leave the cube
    positions = particles["position"]
    assert np.all(np.abs(positions) <= 1.1)
    assert positions[:, 1].mean() < start[:, 1].mean()
    assert np.all(particles["alive"] == 1)
    assert sim.frame == 300
    assert sim.time == pytest.approx(3.0)


def test_particles_settle_on_the_floor(tmp_path):

    # Dropped from inside the cube with default restitution
    sim = _simulation(
        tmp_path,
        BASIC + [("color", "vec3")],
        64,
        [Gravity(9.8), BounceWalls()],
        spawner=lambda ctx: {"position": ctx.in_cube(0.5)},
    )
    sim.run(1500, 0.01)
    particles = sim.particles()

    # Resting on y = -1 instead of bouncing forever
    assert np.all(np.abs(particles["position"][:, 1] + 1.0) < 0.02)
    assert np.all(np.abs(particles["velocity"][:, 1]) <= 0.2)

    # Keeps resting
    sim.run(200, 0.01)
    particles = sim.particles()
    assert np.all(np.abs(particles["position"][:, 1] + 1.0) < 0.02)
    assert np.all(np.abs(particles["velocity"][:, 1]) <= 0.2)


def test_separate_pushes_particles_apart(tmp_path):
    spawn = [(-0.01, 0.0, 0.0), (0.01, 0.0, 0.0)]
    sim = _simulation(
        tmp_path,
        BASIC,
        2,
        [Separate(radius=0.1, strength=10.0)],
        spatial=SpatialConfig(cell_size=0.1, grid_resolution=16),
        spawner=lambda ctx: {"position": spawn[ctx.index]},
    )
    sim.run(10, 0.01)
    positions = sim.particles()["position"]
    assert np.linalg.norm(positions[1] - positions[0]) > 0.05
    assert positions[0][0] < -0.01
    assert positions[1][0] > 0.01


def test_neighbor_counts_match_brute_force(tmp_path):

    # Parameters
    radius = 0.1
    num_particles = 200
    spatial = SpatialConfig(cell_size=radius, grid_resolution=16)

    # Count neighbors within radius, particles do not move
    sim = _simulation(
        tmp_path,
        BASIC + [("count", "f32")],
        num_particles,
        [
            Custom("p.count = 0.0"),
            NeighborCustom(
                """
                if neighbor_dist < 0.1:
                    p.count = p.count + 1.0
                """
            ),
        ],
        spatial=spatial,
        spawner=lambda ctx: {"position": ctx.in_cube(0.5)},
        seed=3,
    )
    positions = sim.particles()["position"].astype(np.float64)
    sim.step(0.01)

    # Brute force
    distances = np.linalg.norm(positions[:, None, :] - positions[None, :, :], axis=-1)
    expected = (distances < radius).sum(axis=1) - 1
    assert np.array_equal(sim.particles()["count"].astype(np.int64), expected)


@pytest.mark.parametrize("max_neighbors, expected", [(0, 26), (4, 4)])
def test_neighbor_cap(tmp_path, max_neighbors, expected):

    # 27 particles packed into one cell
    sim = _simulation(
        tmp_path,
        BASIC + [("count", "f32")],
        27,
        [
            Custom("p.count = 0.0"),
            NeighborCustom("p.count = p.count + 1.0"),
        ],
        spatial=SpatialConfig(cell_size=0.1, grid_resolution=16, max_neighbors=max_neighbors),
        spawner=lambda ctx: {"position": ctx.on_grid(spacing=0.01, center=(0.05, 0.05, 0.05))},
    )
    sim.step(0.01)
    assert np.all(sim.particles()["count"] == expected)


def test_lifetime_kills_particles(tmp_path):
    sim = _simulation(tmp_path, BASIC, 16, [Lifetime(0.05)])
    sim.run(10, 0.01)
    particles = sim.particles()
    assert np.all(particles["alive"] == 0)

    # Dead particles are no longer updated
    assert np.all(particles["age"] < 0.075)


def test_deposit_then_sense(tmp_path):

    # One particle sitting on a cell center
    registry = FieldRegistry()
    food = registry.register("food", FieldConfig(resolution=8, decay=1.0, blur=0.0))
    sim = _simulation(
        tmp_path,
        BASIC + [("sensed", "f32")],
        1,
        [Deposit(food, 1.0), Sense(food, "sensed")],
        field_registry=registry,
        spawner=lambda ctx: {"position": (0.125, 0.125, 0.125)},
    )
    assert sim.active_fields == [food]

    # Deposits show up one step later
    sim.step(0.01)
    assert sim.particles()["sensed"][0] == pytest.approx(0.0)
    sim.run(2, 0.01)
    assert sim.particles()["sensed"][0] == pytest.approx(2.0, abs=1e-4)
    assert sim.field_values(food).sum() == pytest.approx(2.0, abs=1e-4)


def test_uniforms_update_between_steps(tmp_path):
    uniforms = UniformRegistry()
    uniforms.declare("g", 0.0)
    sim = _simulation(tmp_path, BASIC, 1, [Gravity(Uniform("g"))], uniforms=uniforms)

    sim.step(0.1)
    assert sim.particles()["velocity"][0][1] == pytest.approx(0.0)

    sim.set_uniform("g", 10.0)
    assert sim.get_uniform("g") == 10.0
    sim.step(0.1)
    assert sim.particles()["velocity"][0][1] == pytest.approx(-1.0, abs=1e-5)


def test_random_rules_are_deterministic(tmp_path):
    rules = [Maybe(0.5, Custom("p.energy = p.energy + 1.0"))]
    fields = BASIC + [("energy", "f32")]
    results = []
    for _ in range(2):
        sim = _simulation(tmp_path, fields, 128, rules)
        sim.run(20, 0.01)
        results.append(sim.particles()["energy"])
    assert np.array_equal(results[0], results[1])
    assert 0.0 < results[0].mean() < 20.0


def test_invalid_configuration(tmp_path):
    with pytest.raises(ConfigurationError):
        _simulation(tmp_path, BASIC, 0, [])
    with pytest.raises(SchemaError):
        _simulation(tmp_path, [("position", "vec3")], 4, [])
    with pytest.raises(ConfigurationError):
        _simulation(tmp_path, BASIC, 4, [], spawner=lambda ctx: {"mass": 1.0})
