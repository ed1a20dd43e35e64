# Assemble a Warp module from a particle layout and a rule list

import logging
from dataclasses import dataclass

from particle_forge.compiler.context import EmitContext, GenerationState
from particle_forge.compiler.fragment import (
    Comment,
    branch,
    identifiers,
    neighbor_loops,
    render,
)
from particle_forge.compiler.neighbor import render_neighbor_loop
from particle_forge.data.field import FieldRegistry
from particle_forge.data.schema import ParticleLayout
from particle_forge.data.spatial import SpatialConfig
from particle_forge.data.uniforms import UniformRegistry
from particle_forge.error import ConfigurationError

logger = logging.getLogger(__name__)

MODULE_HEADER = '''\
# Generated by particle_forge, do not edit

import warp as wp

from particle_forge.struct.spatial_grid import SpatialGrid
from particle_forge.struct.field_bank import FieldBank
from particle_forge.struct.spawn_queue import SpawnQueue, FreeSlots
from particle_forge.functional.morton import morton_encode, pos_to_cell
from particle_forge.functional.noise import (
    hash_u32,
    hash_float,
    hash2,
    hash3,
    noise3,
    fbm3,
    noise_vec3,
    curl_noise3,
    random_unit_vec3,
)
from particle_forge.functional.color import hsv_to_rgb, rgb_to_hsv, mix_vec3, palette
from particle_forge.functional.field_sampling import (
    field_write,
    field_write_vec3,
    field_read,
    field_read_vec3,
    field_gradient,
)
from particle_forge.functional.spawning import spawn_push, claim_slot, spawn_seed
'''

GATHER_KERNEL = '''\
@wp.kernel
def gather_positions(
    particles: wp.array(dtype=Particle),
    positions: wp.array(dtype=wp.vec3),
):
    tid = wp.tid()
    positions[tid] = particles[tid].{position}
'''

SIMULATE_PROLOGUE = '''\
@wp.kernel
def simulate(
    particles_in: wp.array(dtype=Particle),
    particles_out: wp.array(dtype=Particle),
    uniforms: Uniforms,
    grid: SpatialGrid,
    fields: FieldBank,
    queue: SpawnQueue,
):
    # Get particle
    tid = wp.tid()
    index = tid
    p = particles_in[tid]

    # Dead particles are copied through unchanged
    if p.alive == wp.uint32(0):
        particles_out[tid] = p
        return

    # Get frame information
    time = uniforms.time
    delta_time = uniforms.delta_time
    rng = wp.rand_init(uniforms.frame, tid)
'''

SIMULATE_EPILOGUE = '''\

    # Integrate
    p.{position} = p.{position} + p.{velocity} * delta_time
    p.age = p.age + delta_time
    particles_out[tid] = p
'''

MARK_FREE_KERNEL = '''\
@wp.kernel
def mark_free(
    particles: wp.array(dtype=Particle),
    flags: wp.array(dtype=wp.int32),
):
    tid = wp.tid()
    flags[tid] = 0
    if particles[tid].alive == wp.uint32(0):
        flags[tid] = 1
'''

SPAWN_CHILDREN_PROLOGUE = '''\
@wp.kernel
def spawn_children(
    particles: wp.array(dtype=Particle),
    queue: SpawnQueue,
    free: FreeSlots,
    uniforms: Uniforms,
):
    # One thread per request and child
    event, child = wp.tid()
    if event >= wp.min(queue.count[0], queue.capacity):
        return
    source = queue.source[event]
    limit = int(0)
{limits}
    if child >= limit:
        return

    # Take a free slot
    index = claim_slot(free)
    if index < 0:
        return

    # Request data
    time = uniforms.time
    delta_time = uniforms.delta_time
    rng = wp.rand_init(spawn_seed(uniforms.frame, 0), event * {max_children} + child)
    parent = queue.parent[event]
    parent_pos = queue.position[event]
    parent_vel = queue.velocity[event]
    parent_color = queue.color[event]
    parent_type = queue.type_tag[event]
    p = particles[index]
'''

EMIT_PROLOGUE = '''\
@wp.kernel
def emit_{number}(
    particles: wp.array(dtype=Particle),
    free: FreeSlots,
    uniforms: Uniforms,
):
    # Take a free slot, particles without one are not emitted
    tid = wp.tid()
    index = claim_slot(free)
    if index < 0:
        return

    time = uniforms.time
    delta_time = uniforms.delta_time
    rng = wp.rand_init(spawn_seed(uniforms.frame, {salt}), tid)
    p = particles[index]
'''

SPAWN_EPILOGUE = '''\

    particles[index] = p
'''


@dataclass(frozen=True)
class GeneratedKernel:
    """
    Output of the generator: module source plus what it needs each step
    """

    source: str
    nodes: tuple
    needs_spatial_hash: bool
    used_fields: frozenset
    uses_all_fields: bool = False
    emitters: tuple = ()
    births: tuple = ()  # (name, count) per spawn source

    def needs_field_pipeline(self, handle) -> bool:
        if self.uses_all_fields:
            return True
        return handle.index in self.used_fields

    @property
    def needs_spawning(self) -> bool:
        return bool(self.emitters) or bool(self.births)

    @property
    def max_children(self) -> int:
        return max((count for _, count in self.births), default=1)


def default_literal(f, value) -> str:
    """
    Kernel literal of a schema default value
    """
    ft = f.field_type
    if ft.components == 1:
        if ft.name == "f32":
            return repr(float(value))
        return "{}({})".format(ft.warp_type, int(value))
    return "{}({})".format(ft.warp_type, ", ".join(repr(float(v)) for v in value))


def _no_neighbor_loop(loop, depth):
    raise ConfigurationError("Spawned particles cannot query neighbors while they are initialized")


class KernelGenerator:
    """
    Lower rules to fragments in a single walk and assemble the module.
    Rules run in declaration order, sub emitters queue dead parents after
    the last rule.
    """

    def __init__(
        self,
        layout: ParticleLayout,
        rules,
        uniforms: UniformRegistry = None,
        field_registry: FieldRegistry = None,
        spatial: SpatialConfig = None,
        bounds: float = 1.0,
        emitters=(),
        sub_emitters=(),
    ):
        self.layout = layout
        self.rules = list(rules)
        self.uniforms = uniforms if uniforms is not None else UniformRegistry()
        self.field_registry = field_registry if field_registry is not None else FieldRegistry()
        self.spatial = spatial
        self.bounds = bounds
        self.emitters = list(emitters)
        self.sub_emitters = list(sub_emitters)

    def _root(self, state):
        return EmitContext(
            self.layout,
            self.uniforms,
            self.field_registry,
            self.spatial,
            self.bounds,
            state=state,
        )

    def lower(self):
        """
        Lower every rule to fragment nodes, returns (nodes, state)
        """
        state = GenerationState()
        root = self._root(state)

        # Sub emitters take the first spawn sources
        triggers = []
        for i, sub in enumerate(self.sub_emitters):
            if not hasattr(sub, "trigger"):
                raise ConfigurationError("Expected a sub emitter, got {!r}".format(sub))
            ctx = root.child("sub{}".format(i))
            source = ctx.register_birth(sub.name, sub.count, sub.spawn)
            triggers.append(Comment(sub.name))
            triggers.extend(sub.trigger(ctx, source))

        nodes = []
        for i, rule in enumerate(self.rules):
            if not hasattr(rule, "emit"):
                raise ConfigurationError("Expected a rule, got {!r}".format(rule))
            nodes.append(Comment(rule.name))
            nodes.extend(rule.emit(root.child(i)))
        nodes.extend(triggers)
        return tuple(nodes), state

    def lower_births(self, state):
        """
        Initialization nodes of every spawn source, one branch per source
        """
        root = self._root(state)
        nodes = []
        for k, birth in enumerate(state.births):
            ctx = root.child("spawn{}".format(k))
            nodes.append(Comment(birth.name))
            nodes.append(branch("source == {}".format(k), birth.init(ctx)))
        return nodes

    def lower_emitters(self, state):
        root = self._root(state)
        lowered = []
        for i, emitter in enumerate(self.emitters):
            if not (hasattr(emitter, "spawn") and hasattr(emitter, "schedule")):
                raise ConfigurationError("Expected an emitter, got {!r}".format(emitter))
            lowered.append([Comment(emitter.name)] + list(emitter.spawn(root.child("emit{}".format(i)))))
        return lowered

    def reset_source(self) -> str:
        """
        Statements returning the particle p to the schema defaults
        """
        defaults = self.layout.defaults()
        return "\n".join(
            "    p.{} = {}".format(f.name, default_literal(f, defaults[f.name]))
            for f in self.layout.fields
        ) + "\n"

    def generate(self) -> GeneratedKernel:
        nodes, state = self.lower()
        birth_nodes = self.lower_births(state)
        emitter_nodes = self.lower_emitters(state)
        all_nodes = list(nodes) + birth_nodes + [n for e in emitter_nodes for n in e]

        # Fields named directly in kernel text count as used
        names = identifiers(all_nodes)
        used_fields = set(state.used_fields)
        for handle in self.field_registry.handles():
            if handle.constant_name in names:
                used_fields.add(handle.index)

        needs_spatial_hash = any(True for _ in neighbor_loops(nodes))
        births = tuple((b.name, b.count) for b in state.births)
        source = self.assemble(nodes, birth_nodes, emitter_nodes, births)

        logger.info(
            "Generated kernel for %d rules (%d nodes), spatial hash: %s, fields: %s, spawn sources: %d, emitters: %d",
            len(self.rules),
            len(nodes),
            "yes" if needs_spatial_hash else "no",
            "all" if state.uses_all_fields else sorted(used_fields),
            len(births),
            len(self.emitters),
        )
        return GeneratedKernel(
            source=source,
            nodes=nodes,
            needs_spatial_hash=needs_spatial_hash,
            used_fields=frozenset(used_fields),
            uses_all_fields=state.uses_all_fields,
            emitters=tuple(self.emitters),
            births=births,
        )

    def assemble(self, nodes, birth_nodes=(), emitter_nodes=(), births=()) -> str:
        position = self.layout.position
        velocity = self.layout.velocity

        parts = [MODULE_HEADER]

        # Field constants
        handles = self.field_registry.handles()
        if handles:
            parts.append("\n".join(
                "{} = wp.constant({})".format(h.constant_name, h.index) for h in handles
            ) + "\n")

        # Structs
        parts.append("\n" + self.layout.struct_source("Particle"))
        parts.append("\n" + self.uniforms.struct_source("Uniforms"))

        # Kernels
        parts.append("\n" + GATHER_KERNEL.format(position=position))
        body = render(
            nodes,
            1,
            lambda loop, depth: render_neighbor_loop(loop, depth, position, velocity),
        )
        parts.append(
            "\n"
            + SIMULATE_PROLOGUE
            + "\n".join(body)
            + "\n"
            + SIMULATE_EPILOGUE.format(position=position, velocity=velocity)
        )

        # Spawn kernels
        if births or emitter_nodes:
            parts.append("\n" + MARK_FREE_KERNEL)
        reset = self.reset_source()
        if births:
            limits = "\n".join(
                "    if source == {}:\n        limit = {}".format(k, count)
                for k, (_, count) in enumerate(births)
            )
            max_children = max(count for _, count in births)
            parts.append(
                "\n"
                + SPAWN_CHILDREN_PROLOGUE.format(limits=limits, max_children=max_children)
                + reset
                + "\n".join(render(birth_nodes, 1, _no_neighbor_loop))
                + "\n"
                + SPAWN_EPILOGUE
            )
        for i, emitter in enumerate(emitter_nodes):
            parts.append(
                "\n"
                + EMIT_PROLOGUE.format(number=i, salt=i + 1)
                + reset
                + "\n".join(render(emitter, 1, _no_neighbor_loop))
                + "\n"
                + SPAWN_EPILOGUE
            )
        return "\n".join(parts)


def generate_kernel(layout, rules, **kwargs) -> GeneratedKernel:
    return KernelGenerator(layout, rules, **kwargs).generate()
