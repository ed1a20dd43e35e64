import logging

import numpy as np
import warp as wp

from particle_forge.data.schema import ParticleLayout
from particle_forge.data.spawn import SpawnContext
from particle_forge.error import ConfigurationError
from particle_forge.operator.operator import Operator

logger = logging.getLogger(__name__)


class ParticleAllocator(Operator):
    """
    Run the spawner for every particle and upload the result into the
    double buffered particle arrays.
    """

    def host_particles(
        self,
        layout: ParticleLayout,
        particle_dtype: np.dtype,
        nr_particles: int,
        spawner=None,
        seed: int = 0,
    ):
        # Start from the lifecycle defaults
        data = np.zeros(nr_particles, dtype=particle_dtype)
        for name, value in layout.defaults().items():
            data[name] = value

        if spawner is None:
            return data

        # Fill in spawned values
        for i in range(nr_particles):
            values = spawner(SpawnContext(i, nr_particles, seed))
            if values is None:
                continue
            for name, value in values.items():
                if not layout.has_field(name):
                    raise ConfigurationError(
                        "Spawner returned unknown field '{}'".format(name)
                    )
                data[name][i] = value
        return data

    def __call__(
        self,
        layout: ParticleLayout,
        particle_struct,
        nr_particles: int,
        spawner=None,
        seed: int = 0,
        device=None,
    ):

        # Build particles on the host
        data = self.host_particles(
            layout,
            particle_struct.numpy_dtype(),
            nr_particles,
            spawner=spawner,
            seed=seed,
        )

        # Allocate the primary particle data
        particles = wp.array(data, dtype=particle_struct, device=device)

        # Allocate the buffer for particle data
        particles_buffer = wp.array(data, dtype=particle_struct, device=device)

        logger.info(
            "Allocated %d particles (%d bytes each) on %s",
            nr_particles,
            layout.size,
            particles.device,
        )
        return particles, particles_buffer
