import pytest

import numpy as np
import warp as wp

from particle_forge.compiler.fragment import neighbor_loops
from particle_forge.compiler.generator import generate_kernel
from particle_forge.compiler.loader import KernelLoader
from particle_forge.data.field import FieldConfig, FieldRegistry
from particle_forge.data.schema import resolve_schema
from particle_forge.data.spatial import SpatialConfig
from particle_forge.error import ConfigurationError
from particle_forge.rule import (
    ALL_RULES,
    Falloff,
    Gravity, Drag, Acceleration, BounceWalls, WrapWalls, AttractTo, RepelFrom,
    PointGravity, Orbit, Spring, Radial, Vortex, Pulse, Turbulence, Curl, Wind,
    PositionNoise, Seek, Flee, Arrive, Wander, SpeedLimit, Buoyancy, Friction,
    Shockwave, Oscillate, RespawnBelow, Mass, DensityBuoyancy,
    Lifetime, FadeOut, ShrinkOut, ColorOverLife, ColorBySpeed, ColorByAge,
    ColorByHue, ScaleBySpeed, Grow, Decay, Die,
    Maybe, Trigger, OnCondition, Gate, Switch, OnDeath, OnSpawn, OnInterval,
    Periodic, Lerp, Clamp, Remap, Quantize, Noise, Smooth, Modulo, Copy,
    Threshold, Tween, And, Or, Not, Xor, Hysteresis, Latch, Edge, Select, Blend,
    Refractory, CopyField,
    Separate, Cohere, Align, Flock, Avoid, Collide, NBodyGravity, LennardJones,
    Viscosity, Pressure, SurfaceTension, Magnetism, Chase, Evade, Convert, DLA,
    Diffuse, Accumulate, Signal, Absorb, InteractionMatrix, Sync, Split,
    Deposit, Sense, Consume, Gradient, Current,
    ChainSprings, RadialSprings, BondSprings,
    Custom, NeighborCustom, OnCollision,
    Typed, State, Transition, AgentState, Agent,
)
from particle_forge.solver import Simulation

wp.init()

DEVICE = "cpu"

FIELDS = [
    ("position", "vec3"),
    ("velocity", "vec3"),
    ("color", "vec4"),
    ("energy", "f32"),
    ("charge", "f32"),
    ("signal", "f32"),
    ("prev", "f32"),
    ("out", "f32"),
    ("timer", "f32"),
    ("phase", "f32"),
    ("state", "u32"),
    ("mode", "u32"),
    ("prev_mode", "u32"),
    ("bond_a", "i32"),
    ("bond_b", "i32"),
    ("flow_sample", "vec3"),
    ("mass", "f32"),
    ("density", "f32"),
    ("absorbed", "f32"),
]


def _registry():
    registry = FieldRegistry()
    food = registry.register("food", FieldConfig(resolution=8))
    flow = registry.register("flow", FieldConfig(resolution=8, kind="vector"))
    return registry, food, flow


def _catalog(food, flow):
    return [

        # Forces
        Gravity(),
        Drag(0.1),
        Acceleration(),
        BounceWalls(),
        WrapWalls(),
        AttractTo(),
        RepelFrom(),
        PointGravity(),
        Orbit(),
        Spring(),
        Radial(falloff=Falloff.INVERSE_SQUARE),
        Vortex(),
        Pulse(),
        Turbulence(),
        Curl(),
        Wind(turbulence=0.5),
        PositionNoise(),
        Seek(),
        Flee(),
        Arrive(),
        Wander(),
        SpeedLimit(0.1, 2.0),
        Buoyancy(),
        Friction(),
        Shockwave(repeat=1.0),
        Oscillate(spatial_scale=1.0),
        RespawnBelow(),
        Mass(),
        DensityBuoyancy(),

        # Lifecycle
        Lifetime(100.0),
        FadeOut(),
        ShrinkOut(),
        ColorOverLife(),
        ColorBySpeed(),
        ColorByAge(),
        ColorByHue(),
        ScaleBySpeed(),
        Grow(),
        Decay("charge"),
        Die("p.energy < -100.0"),

        # Conditionals and events
        Maybe(0.5, Custom("p.energy = p.energy + 0.1")),
        Trigger("p.energy > 1.0", "p.energy = 0.0"),
        OnCondition("p.energy > 2.0", [Drag()]),
        Gate("True", [Gravity(1.0)]),
        Switch("p.energy > 0.5", "p.out = 1.0", "p.out = 0.0"),
        OnDeath("p.energy = 0.0"),
        OnSpawn("p.energy = 1.0"),
        OnInterval(0.5, "p.energy = p.energy + 1.0"),
        Periodic(0.5, "p.energy = p.energy + 1.0", phase_field="phase"),

        # Math and logic
        Lerp("energy", 1.0, 0.5),
        Clamp("energy", 0.0, 10.0),
        Remap("signal", 0.0, 10.0, 0.0, 1.0),
        Quantize("out", 0.25),
        Noise("charge"),
        Smooth("charge", 1.0),
        Modulo("phase", 0.0, 1.0),
        Copy("energy", "signal"),
        Threshold("energy", "out"),
        Tween("charge", timer_field="timer"),
        And("energy", "charge", "out"),
        Or("energy", "charge", "out"),
        Not("energy", "out"),
        Xor("energy", "charge", "out"),
        Hysteresis("energy", "out"),
        Latch("out", "p.energy > 1.0", "p.energy < 0.0"),
        Edge("energy", "prev", "out", falling=True),
        Select("p.energy > 0.5", "charge", "signal", "out"),
        Blend("energy", "charge", "signal", "out"),
        Refractory("out", "charge"),
        CopyField("energy", "signal"),
        CopyField("flow_sample", "flow_sample"),

        # Neighbors
        Separate(),
        Cohere(),
        Align(),
        Flock(),
        Avoid(),
        Collide(),
        NBodyGravity(),
        LennardJones(),
        Viscosity(),
        Pressure(),
        SurfaceTension(),
        Magnetism(),
        Chase(),
        Evade(),
        Convert(),
        DLA(),
        Diffuse("energy"),
        Accumulate("energy", "charge", operation="max", falloff=Falloff.LINEAR),
        Signal("energy", "signal", falloff=Falloff.SMOOTH),
        Absorb(radius=0.01),
        Absorb(target_type=1, radius=0.01),
        InteractionMatrix(2).attract(0, 1, 1.0, 0.2).repel(1, 0, 0.5, 0.1),

        # Synchronization and reproduction
        Sync("phase", 2.0, field=food, on_fire=[Custom("p.out = 1.0")]),
        Sync("timer", 1.0),
        Split("p.energy > 5.0", resource_field="energy", resource_cost=2.0),

        # Fields
        Deposit(food),
        Deposit(flow, 0.1),
        Sense(food, "energy"),
        Sense(flow, "flow_sample"),
        Consume(food, "energy"),
        Gradient(food),
        Current(flow),

        # Springs
        ChainSprings(max_stretch=1.5),
        RadialSprings(),
        BondSprings(("bond_a", "bond_b")),

        # Caller text
        Custom("p.energy = p.energy * 1.0"),
        NeighborCustom("p.signal = p.signal + 0.0"),
        OnCollision(0.05, "p.charge = p.charge + 1.0"),

        # Wrappers and state machines
        Typed(Separate(), self_type=0, other_type=1),
        State("state", [(0, 1, "p.energy > 1.0"), (1, 0, "p.energy < 0.5")]),
        Agent(
            "mode",
            "prev_mode",
            states=[
                AgentState(0, "idle", on_update=[Wander()], transitions=[Transition(1, "p.energy > 1.0")]),
                AgentState(1, "busy", on_enter="p.timer = 0.0", on_exit=[Drag()], transitions=[
                    Transition(0, "p.energy < 0.5"),
                ]),
            ],
            timer_field="timer",
        ),
    ]


def test_catalog_covers_every_rule():
    _, food, flow = _registry()
    covered = {type(r).__name__ for rule in _catalog(food, flow) for r in rule.walk()}
    assert covered == set(ALL_RULES)


def test_every_rule_lowers_to_valid_module():
    registry, food, flow = _registry()
    kernel = generate_kernel(
        resolve_schema(FIELDS),
        _catalog(food, flow),
        field_registry=registry,
        spatial=SpatialConfig(cell_size=0.1, grid_resolution=32),
    )
    assert kernel.needs_spatial_hash
    assert kernel.needs_field_pipeline(food)
    assert kernel.needs_field_pipeline(flow)
    KernelLoader.check(kernel.source)


def test_every_rule_compiles_and_runs(tmp_path):
    registry, food, flow = _registry()
    sim = Simulation(
        FIELDS,
        64,
        _catalog(food, flow),
        field_registry=registry,
        spatial=SpatialConfig(cell_size=0.1, grid_resolution=32, max_neighbors=32),
        spawner=lambda ctx: {
            "position": ctx.in_sphere(0.5),
            "type_tag": ctx.index % 2,
            "bond_a": ctx.index - 1,
            "bond_b": -1,
            "mass": 1.0,
            "density": 1.0,
        },
        device=DEVICE,
        cache_dir=str(tmp_path),
    )
    sim.run(5, 0.01)
    particles = sim.particles()
    alive = particles["alive"] == 1
    assert np.all(np.isfinite(particles["position"][alive]))
    assert np.all(np.isfinite(particles["velocity"][alive]))


@pytest.mark.parametrize(
    "rule",
    [
        Remap("energy", 1.0, 1.0),
        Quantize("energy", 0.0),
        Modulo("energy", 1.0, 1.0),
        ChainSprings(max_stretch=0.5),
        BondSprings(()),
        Decay("missing"),
        Decay("state"),
        Typed(Drag(), other_type=1),
        Periodic(1.0, "pass", phase_field="mode"),
        Split("True", offspring_count=0),
        Split("True", speed_min=1.0, speed_max=0.5),
        Split("True", resource_field="state"),
        DensityBuoyancy("energy", medium_density=0.0),
        CopyField("energy", "state"),
        CopyField("missing", "energy"),
        Sync("mode"),
        Mass("bond_a"),
    ],
)
def test_invalid_rules(rule):
    with pytest.raises(ConfigurationError):
        generate_kernel(resolve_schema(FIELDS), [rule])


def test_invalid_neighbor_rules():
    spatial = SpatialConfig(grid_resolution=16)
    with pytest.raises(ConfigurationError):
        generate_kernel(resolve_schema(FIELDS), [Accumulate("energy", "charge", operation="median")], spatial=spatial)


def test_field_kind_mismatch():
    registry, food, flow = _registry()
    layout = resolve_schema(FIELDS)
    for rule in (
        Current(food),
        Gradient(flow),
        Consume(flow, "energy"),
        Sense(flow, "energy"),
        Deposit(flow, 1.0, source="energy"),
    ):
        with pytest.raises(ConfigurationError):
            generate_kernel(layout, [rule], field_registry=registry)

    # Scalar fields take a source
    source = generate_kernel(layout, [Deposit(food, 2.0, source="energy")], field_registry=registry).source
    assert "p.energy * 2.0" in source


def test_colors_keep_alpha():
    source = generate_kernel(resolve_schema(FIELDS), [ColorOverLife()]).source
    assert "p.color[3]" in source


def test_nested_actions_get_their_own_locals():
    spatial = SpatialConfig(grid_resolution=16)
    rule = Switch("p.energy > 0.5", [Separate()], [Separate()])
    kernel = generate_kernel(resolve_schema(FIELDS), [rule], spatial=spatial)
    prefixes = [loop.prefix for loop in neighbor_loops(kernel.nodes)]
    assert len(prefixes) == 2
    assert len(set(prefixes)) == 2


BASIC = [("position", "vec3"), ("velocity", "vec3")]
SPATIAL = SpatialConfig(cell_size=0.1, grid_resolution=32)


def _simulation(tmp_path, fields, count, rules, **kwargs):
    return Simulation(
        fields,
        count,
        rules,
        device=DEVICE,
        cache_dir=str(tmp_path),
        **kwargs,
    )


def test_mass_scales_velocity_change(tmp_path):
    sim = _simulation(
        tmp_path,
        BASIC + [("mass", "f32")],
        2,
        [Gravity(10.0), Mass("mass")],
        spawner=lambda ctx: {"mass": 1.0 + ctx.index},
    )
    sim.step(0.01)
    velocity = sim.particles()["velocity"]
    assert velocity[0][1] == pytest.approx(-0.1, abs=1e-6)
    assert velocity[1][1] == pytest.approx(-0.05, abs=1e-6)


def test_density_buoyancy(tmp_path):
    sim = _simulation(
        tmp_path,
        BASIC + [("density", "f32")],
        2,
        [DensityBuoyancy("density", medium_density=1.0, strength=4.0)],
        spawner=lambda ctx: {"density": (0.5, 2.0)[ctx.index]},
    )
    sim.step(0.01)
    velocity = sim.particles()["velocity"]
    assert velocity[0][1] == pytest.approx(0.02, abs=1e-6)
    assert velocity[1][1] == pytest.approx(-0.04, abs=1e-6)


def test_copy_field(tmp_path):
    sim = _simulation(
        tmp_path,
        BASIC + [("energy", "f32"), ("copy", "f32"), ("start", "vec3")],
        4,
        [CopyField("energy", "copy"), CopyField("velocity", "start")],
        spawner=lambda ctx: {"energy": float(ctx.index), "velocity": (1.0, 2.0, 3.0)},
    )
    sim.step(0.01)
    particles = sim.particles()
    assert np.array_equal(particles["copy"], particles["energy"])
    assert np.allclose(particles["start"], [1.0, 2.0, 3.0])


def test_sync_fires_on_phase_wrap(tmp_path):
    sim = _simulation(
        tmp_path,
        BASIC + [("phase", "f32"), ("flashes", "f32")],
        1,
        [Sync("phase", 10.0, on_fire=Custom("p.flashes = p.flashes + 1.0"))],
    )
    sim.run(25, 0.01)
    particles = sim.particles()
    assert particles["flashes"][0] == 2.0
    assert 0.0 <= particles["phase"][0] < 1.0


def test_sync_couples_through_field(tmp_path):
    registry = FieldRegistry()
    light = registry.register("light", FieldConfig(resolution=8))
    kernel = generate_kernel(
        resolve_schema(BASIC + [("phase", "f32")]),
        [Sync("phase", 1.0, field=light, emit_amount=2.0, coupling=0.5, detection_threshold=0.1)],
        field_registry=registry,
    )
    assert kernel.needs_field_pipeline(light)
    assert "field_read(fields, FIELD_LIGHT" in kernel.source
    assert "field_write(fields, FIELD_LIGHT" in kernel.source
    KernelLoader.check(kernel.source)


def test_split_conserves_resource(tmp_path):

    # One parent holding exactly one split's worth
    sim = _simulation(
        tmp_path,
        BASIC + [("energy", "f32")],
        8,
        [Split("p.energy >= 1.0", offspring_count=2, resource_field="energy", resource_cost=1.0, spread=0.1)],
        spawner=lambda ctx: {"energy": 1.0 if ctx.index == 0 else 0.0, "alive": 1 if ctx.index == 0 else 0},
    )
    sim.step(0.01)
    particles = sim.particles()
    alive = particles["alive"] == 1
    assert np.count_nonzero(alive) == 3
    assert particles["energy"][alive].sum() == pytest.approx(1.0)
    assert particles["energy"][0] == pytest.approx(0.0)

    # Children sit spread away from the parent
    offsets = np.linalg.norm(particles["position"][alive][1:] - particles["position"][0], axis=1)
    assert np.allclose(offsets, 0.1, atol=1e-4)

    # Children hold half each, nobody splits again
    sim.run(5, 0.01)
    assert np.count_nonzero(sim.particles()["alive"]) == 3


def test_interaction_matrix_table():
    matrix = InteractionMatrix(3).attract(0, 1, 2.0, 0.3).repel(1, 0, 1.0, 0.2).set_symmetric(2, 2, 0.5, 0.1)
    assert matrix.get(0, 1) == (2.0, 0.3)
    assert matrix.get(1, 0) == (-1.0, 0.2)
    assert matrix.get(2, 2) == (0.5, 0.1)
    assert matrix.get(0, 0) == (0.0, 0.0)
    assert matrix.table[0 * 3 + 1] == (2.0, 0.3)

    # Instances are immutable
    assert InteractionMatrix(3).get(0, 1) == (0.0, 0.0)

    with pytest.raises(ConfigurationError):
        matrix.set(3, 0, 1.0, 1.0)
    with pytest.raises(ConfigurationError):
        InteractionMatrix(2, table=((1.0, 1.0),))
    with pytest.raises(ConfigurationError):
        InteractionMatrix(0)

    # Only non zero entries are emitted
    source = generate_kernel(resolve_schema(BASIC), [matrix], spatial=SPATIAL).source
    assert source.count("_key == ") == 3
    KernelLoader.check(source)


def test_interaction_matrix_attraction(tmp_path):

    # Type 0 is pulled toward type 1, not the other way around
    sim = _simulation(
        tmp_path,
        BASIC,
        2,
        [InteractionMatrix(2).attract(0, 1, 1.0, 0.3)],
        spatial=SPATIAL,
        spawner=lambda ctx: {"position": (-0.05 + 0.1 * ctx.index, 0.0, 0.0), "type_tag": ctx.index},
    )
    sim.step(0.01)
    velocity = sim.particles()["velocity"]
    assert velocity[0][0] > 0.0
    assert np.allclose(velocity[1], 0.0)


def test_absorb_by_type(tmp_path):
    sim = _simulation(
        tmp_path,
        BASIC + [("energy", "f32"), ("absorbed", "f32")],
        3,
        [Absorb(target_type=1, radius=0.05, source_field="energy", target_field="absorbed")],
        spatial=SPATIAL,
        spawner=lambda ctx: [
            {"position": (0.0, 0.0, 0.0), "type_tag": 0},
            {"position": (0.02, 0.0, 0.0), "type_tag": 1, "energy": 2.0},
            {"position": (0.5, 0.5, 0.5), "type_tag": 1, "energy": 3.0},
        ][ctx.index],
    )
    sim.step(0.01)
    particles = sim.particles()
    assert list(particles["alive"]) == [1, 0, 1]
    assert particles["absorbed"][0] == pytest.approx(2.0)
    assert particles["absorbed"][2] == 0.0


def test_absorb_larger_wins(tmp_path):
    sim = _simulation(
        tmp_path,
        BASIC + [("energy", "f32"), ("absorbed", "f32")],
        2,
        [Absorb(radius=0.05, source_field="energy", target_field="absorbed")],
        spatial=SPATIAL,
        spawner=lambda ctx: {"position": (0.02 * ctx.index, 0.0, 0.0), "energy": 1.0 + ctx.index},
    )
    sim.step(0.01)
    particles = sim.particles()
    assert list(particles["alive"]) == [0, 1]
    assert particles["absorbed"][1] == pytest.approx(1.0)
