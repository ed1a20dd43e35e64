import pytest

import numpy as np
import warp as wp

from particle_forge.compiler.generator import generate_kernel
from particle_forge.compiler.loader import KernelLoader
from particle_forge.data.schema import resolve_schema
from particle_forge.emitter import (
    EmitterState,
    PointEmitter,
    BurstEmitter,
    ConeEmitter,
    SphereEmitter,
    BoxEmitter,
    SubEmitter,
)
from particle_forge.error import ConfigurationError
from particle_forge.rule import Lifetime, Typed
from particle_forge.solver import Simulation

wp.init()

DEVICE = "cpu"

FIELDS = [("position", "vec3"), ("velocity", "vec3"), ("color", "vec4")]


def _simulation(tmp_path, count, rules, **kwargs):
    return Simulation(
        FIELDS,
        count,
        rules,
        device=DEVICE,
        cache_dir=str(tmp_path),
        **kwargs,
    )


def _all_dead(ctx):
    return {"alive": 0}


def test_rate_schedule_carries_fractions():
    emitter = PointEmitter(rate=30.0)
    state = EmitterState()
    counts = [emitter.schedule(state, 0.0, 0.01) for _ in range(10)]
    assert sum(counts) == 3
    assert all(c in (0, 1) for c in counts)


def test_burst_fires_once():
    emitter = BurstEmitter(count=5, at_time=0.5)
    state = EmitterState()
    assert emitter.schedule(state, 0.25, 0.01) == 0
    assert emitter.schedule(state, 0.5, 0.01) == 5
    assert emitter.schedule(state, 0.75, 0.01) == 0


def test_every_emitter_lowers_to_valid_module():
    emitters = [
        PointEmitter((0.0, 0.5, 0.0), speed=1.0, color=(1.0, 0.0, 0.0)),
        PointEmitter(),
        BurstEmitter(count=8, particle_type=2),
        ConeEmitter(direction=(0.0, 1.0, 0.0), spread=0.2),
        ConeEmitter(direction=(1.0, 0.0, 0.0)),
        SphereEmitter(radius=0.3, speed=-0.5),
        BoxEmitter((-0.2, 0.0, -0.2), (0.2, 0.1, 0.2), velocity=(0.0, 1.0, 0.0)),
    ]
    kernel = generate_kernel(resolve_schema(FIELDS), [], emitters=emitters)
    assert kernel.needs_spawning
    assert not kernel.births
    for i in range(len(emitters)):
        assert "def emit_{}(".format(i) in kernel.source
    assert "def mark_free(" in kernel.source
    assert "def spawn_children(" not in kernel.source
    KernelLoader.check(kernel.source)


def test_sub_emitter_lowers_to_valid_module():
    kernel = generate_kernel(
        resolve_schema(FIELDS),
        [Lifetime(1.0)],
        sub_emitters=[SubEmitter(0, 1, count=4), SubEmitter(None, 2, count=7, child_color=(0.0, 1.0, 0.0))],
    )
    assert kernel.births == (("SubEmitter", 4), ("SubEmitter", 7))
    assert kernel.max_children == 7

    # Deaths are queued after the last rule
    source = kernel.source
    assert source.index("# Lifetime") < source.index("# SubEmitter") < source.index("# Integrate")
    assert "def spawn_children(" in source
    KernelLoader.check(source)


def test_no_spawning_without_sources():
    kernel = generate_kernel(resolve_schema(FIELDS), [Lifetime(1.0)])
    assert not kernel.needs_spawning
    assert "def mark_free(" not in kernel.source


@pytest.mark.parametrize(
    "make",
    [
        lambda: PointEmitter(rate=-1.0),
        lambda: BurstEmitter(count=-1),
        lambda: BoxEmitter((0.5, 0.0, 0.0), (0.0, 1.0, 1.0)),
        lambda: SubEmitter(count=0),
        lambda: SubEmitter(speed=(2.0, 1.0)),
    ],
)
def test_invalid_emitters(make):
    with pytest.raises(ConfigurationError):
        make()


def test_sub_emitter_clamps_inherited_velocity():
    assert SubEmitter(inherit_velocity=2.0).inherit_velocity == 1.0
    assert SubEmitter(inherit_velocity=-1.0).inherit_velocity == 0.0


def test_point_emitter_fills_dead_slots(tmp_path):

    # Every slot starts dead, one particle per step
    sim = _simulation(
        tmp_path,
        16,
        [],
        emitters=[PointEmitter((0.5, 0.5, 0.5), rate=100.0, particle_type=3, color=(0.0, 1.0, 0.0))],
        spawner=_all_dead,
    )
    for step in range(1, 6):
        sim.step(0.01)
        assert np.count_nonzero(sim.particles()["alive"]) == step

    # Emitted at the point, slowly drifting
    particles = sim.particles()
    alive = particles["alive"] == 1
    assert np.all(np.linalg.norm(particles["position"][alive] - 0.5, axis=1) < 0.05)
    assert np.all(particles["type_tag"][alive] == 3)
    assert np.allclose(particles["color"][alive], [0.0, 1.0, 0.0, 1.0])
    assert np.all(particles["age"][alive] < 0.05)


def test_emitters_stop_when_full(tmp_path):
    sim = _simulation(tmp_path, 8, [], emitters=[PointEmitter(rate=1000.0)])
    before = sim.particles()["position"].copy()
    sim.run(3, 0.01)
    particles = sim.particles()
    assert np.all(particles["alive"] == 1)
    assert np.array_equal(particles["position"], before)


def test_burst_emitter(tmp_path):
    sim = _simulation(
        tmp_path,
        32,
        [],
        emitters=[BurstEmitter((0.0, 0.0, 0.0), count=10, speed=1.0, at_time=0.045)],
        spawner=_all_dead,
    )
    sim.run(4, 0.01)
    assert np.count_nonzero(sim.particles()["alive"]) == 0
    sim.run(10, 0.01)
    particles = sim.particles()
    alive = particles["alive"] == 1
    assert np.count_nonzero(alive) == 10
    assert np.allclose(np.linalg.norm(particles["velocity"][alive], axis=1), 1.0, atol=1e-4)


def test_sub_emitter_spawns_children_on_death(tmp_path):

    # Four type 0 parents at rest, the rest of the slots dead
    sim = _simulation(
        tmp_path,
        32,
        [Typed(Lifetime(0.05), self_type=0)],
        sub_emitters=[SubEmitter(parent_type=0, child_type=1, count=3, speed=(0.0, 0.0), inherit_velocity=0.0)],
        spawner=lambda ctx: {
            "position": (0.1 * ctx.index, 0.2, 0.3),
            "alive": 1 if ctx.index < 4 else 0,
        },
    )
    parents = sim.particles()["position"][:4].copy()
    sim.run(10, 0.01)

    # Three children per parent, born where the parent died
    particles = sim.particles()
    alive = particles["alive"] == 1
    assert np.count_nonzero(alive) == 12
    assert np.all(particles["type_tag"][alive] == 1)
    for parent in parents:
        hits = np.linalg.norm(particles["position"][alive] - parent, axis=1) < 1e-5
        assert np.count_nonzero(hits) == 3

    # Each death spawns once
    sim.run(10, 0.01)
    assert np.count_nonzero(sim.particles()["alive"]) == 12


def test_sub_emitter_capacity_drops_requests(tmp_path):
    sim = _simulation(
        tmp_path,
        32,
        [Typed(Lifetime(0.05), self_type=0)],
        sub_emitters=[SubEmitter(parent_type=0, child_type=1, count=2)],
        spawner=lambda ctx: {"alive": 1 if ctx.index < 4 else 0},
        spawn_capacity=1,
    )
    sim.run(10, 0.01)
    assert np.count_nonzero(sim.particles()["alive"]) == 2
