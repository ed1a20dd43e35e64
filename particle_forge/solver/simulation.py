# Simulation driver: owns the buffers and runs the per step passes

import logging

import numpy as np
import warp as wp
from tqdm import tqdm

from particle_forge.compiler.generator import KernelGenerator
from particle_forge.compiler.loader import KernelLoader
from particle_forge.data.field import FieldRegistry
from particle_forge.data.schema import resolve_schema
from particle_forge.data.spatial import SpatialConfig
from particle_forge.data.uniforms import UniformRegistry
from particle_forge.error import ConfigurationError
from particle_forge.operator.allocator.field_allocator import FieldAllocator
from particle_forge.operator.allocator.particle_allocator import ParticleAllocator
from particle_forge.operator.allocator.spatial_grid_allocator import SpatialGridAllocator
from particle_forge.operator.field.field_processor import FieldProcessor
from particle_forge.operator.particle_injector.particle_injector import ParticleInjector
from particle_forge.operator.spatial_hash.spatial_hash import SpatialHashBuilder

logger = logging.getLogger(__name__)


class Simulation:
    """
    A particle system compiled from a schema and an ordered rule list.

    Every step runs, in order: the spatial hash (when a rule queries
    neighbors), merge, blur and decay of the fields the kernel uses, the
    generated simulate kernel, the spawn pass refilling dead slots from
    queued requests and emitters, and the particle buffer swap.
    """

    def __init__(
        self,
        fields,
        particle_count: int,
        rules,
        spawner=None,
        spatial: SpatialConfig = None,
        field_registry: FieldRegistry = None,
        uniforms: UniformRegistry = None,
        bounds: float = 1.0,
        device=None,
        seed: int = 0,
        cache_dir: str = None,
        emitters=(),
        sub_emitters=(),
        spawn_capacity: int = 4096,
    ):

        # Resolve the schema before anything is allocated
        self.layout = resolve_schema(fields)
        if particle_count <= 0:
            raise ConfigurationError(
                "particle_count must be positive, got {}".format(particle_count)
            )
        self.particle_count = particle_count
        self.spatial = spatial
        self.field_registry = field_registry if field_registry is not None else FieldRegistry()
        self.uniforms = uniforms if uniforms is not None else UniformRegistry()
        self.device = wp.get_device(device)

        # Generate and compile the kernel
        self.kernel = KernelGenerator(
            self.layout,
            rules,
            uniforms=self.uniforms,
            field_registry=self.field_registry,
            spatial=spatial,
            bounds=bounds,
            emitters=emitters,
            sub_emitters=sub_emitters,
        ).generate()
        self.module = KernelLoader(cache_dir).load(self.kernel.source, device=self.device)
        self.particle_struct = self.module.Particle
        self.uniform_struct = self.module.Uniforms()

        # Allocate particles
        self.particles_current, self.particles_next = ParticleAllocator()(
            self.layout,
            self.particle_struct,
            particle_count,
            spawner=spawner,
            seed=seed,
            device=self.device,
        )

        # Allocate the spatial grid
        if self.kernel.needs_spatial_hash:
            self.grid = SpatialGridAllocator()(particle_count, spatial, device=self.device)
            self.positions = wp.zeros(particle_count, dtype=wp.vec3, device=self.device)
            self.spatial_hash = SpatialHashBuilder(spatial)
        else:
            self.grid = SpatialGridAllocator()(particle_count, None, device=self.device)
            self.positions = None
            self.spatial_hash = None

        # Allocate fields
        self.fields = FieldAllocator()(self.field_registry, device=self.device)
        self.field_processor = FieldProcessor(self.field_registry)
        self.active_fields = [
            handle
            for handle in self.field_registry.handles()
            if self.kernel.needs_field_pipeline(handle)
        ]

        # Spawn queue and emitter schedules
        self.injector = ParticleInjector(
            self.module,
            self.kernel,
            particle_count,
            capacity=spawn_capacity,
            device=self.device,
        )

        self.time = 0.0
        self.frame = 0
        logger.info(
            "Simulation ready on %s: %d particles, %d fields active, spatial hash %s",
            self.device,
            particle_count,
            len(self.active_fields),
            "on" if self.spatial_hash is not None else "off",
        )

    def set_uniform(self, name: str, value):
        self.uniforms.set(name, value)

    def get_uniform(self, name: str):
        return self.uniforms.get(name)

    def step(self, delta_time: float):
        """
        Advance the simulation by delta_time seconds
        """

        # Upload uniforms, time is the elapsed time at the end of the step
        self.time += delta_time
        self.uniforms.fill(self.uniform_struct, self.time, delta_time, self.frame)

        # Spatial hash
        if self.spatial_hash is not None:
            logger.debug("Frame %d: building spatial hash", self.frame)
            wp.launch(
                self.module.gather_positions,
                inputs=[
                    self.particles_current,
                    self.positions,
                ],
                dim=self.particle_count,
                device=self.device,
            )
            self.spatial_hash(self.positions, self.grid)

        # Field passes, deposits from the previous step become visible here
        if self.active_fields:
            logger.debug("Frame %d: processing %d fields", self.frame, len(self.active_fields))
            self.field_processor(self.fields, self.active_fields)

        # Main kernel
        self.injector.reset_queue()
        wp.launch(
            self.module.simulate,
            inputs=[
                self.particles_current,
                self.particles_next,
                self.uniform_struct,
                self.grid,
                self.fields,
                self.injector.queue,
            ],
            dim=self.particle_count,
            device=self.device,
        )

        # Refill dead slots
        if self.kernel.needs_spawning:
            logger.debug("Frame %d: spawning", self.frame)
            self.injector(self.particles_next, self.uniform_struct, self.time, delta_time)

        # Swap buffers
        self.particles_current, self.particles_next = self.particles_next, self.particles_current
        self.frame += 1

    def run(self, steps: int, delta_time: float, progress: bool = False):
        for _ in tqdm(range(steps), disable=not progress):
            self.step(delta_time)

    def particles(self) -> np.ndarray:
        """
        Copy the current particle state to the host. Returns a structured
        array with one named column per schema field.
        """
        raw = self.particles_current.numpy()
        data = np.zeros(self.particle_count, dtype=self.layout.numpy_dtype())
        for name in self.layout.names:
            data[name] = raw[name]
        return data

    def field_values(self, handle) -> np.ndarray:
        return self.field_processor.field_values(self.fields, handle)
