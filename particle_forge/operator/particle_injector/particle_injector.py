import logging

import warp as wp

from particle_forge.compiler.generator import GeneratedKernel
from particle_forge.emitter.emitter import EmitterState
from particle_forge.struct.spawn_queue import FreeSlots
from particle_forge.operator.operator import Operator
from particle_forge.operator.allocator.spawn_queue_allocator import (
    SpawnQueueAllocator,
    FreeSlotsAllocator,
)

logger = logging.getLogger(__name__)


class ParticleInjector(Operator):
    """
    Bring dead particle slots back to life after the main kernel. Dead
    slots are compacted in index order with an exclusive scan, then the
    queued spawn requests and the emitters claim them through an atomic
    cursor. Requests or emissions finding no free slot are dropped.
    """

    def __init__(
        self,
        module,
        kernel: GeneratedKernel,
        nr_particles: int,
        capacity: int = 4096,
        device=None,
    ):
        self.module = module
        self.kernel = kernel
        self.nr_particles = nr_particles
        self.device = device

        # Spawn requests written by the main kernel
        self.queue = SpawnQueueAllocator()(capacity if kernel.births else 0, device=device)

        # Free slot compaction buffers
        self.flags = wp.zeros(nr_particles, dtype=wp.int32, device=device)
        self.offsets = wp.zeros(nr_particles, dtype=wp.int32, device=device)
        self.free = FreeSlotsAllocator()(nr_particles, device=device)

        # Host side emitter schedules
        self.states = [EmitterState() for _ in kernel.emitters]

    @wp.kernel
    def _compact(
        flags: wp.array(dtype=wp.int32),
        offsets: wp.array(dtype=wp.int32),
        free: FreeSlots,
        nr_particles: wp.int32,
    ):
        # Get particle index
        i = wp.tid()

        # Store free slot
        if flags[i] == 1:
            free.slots[offsets[i]] = i

        # Total number of free slots
        if i == nr_particles - 1:
            free.count[0] = offsets[i] + flags[i]

    def reset_queue(self):
        """
        Clear the requests, called before the main kernel
        """
        self.queue.count.zero_()

    def __call__(
        self,
        particles: wp.array,
        uniforms,
        time: float,
        delta_time: float,
    ):

        # Number of particles each emitter asks for this step
        counts = [
            emitter.schedule(state, time, delta_time)
            for emitter, state in zip(self.kernel.emitters, self.states)
        ]
        if not self.kernel.births and not any(counts):
            return particles

        # Mark dead particles
        wp.launch(
            self.module.mark_free,
            inputs=[
                particles,
                self.flags,
            ],
            dim=self.nr_particles,
            device=self.device,
        )

        # Compact free slots
        wp.utils.array_scan(
            self.flags,
            self.offsets,
            inclusive=False,
        )
        wp.launch(
            self._compact,
            inputs=[
                self.flags,
                self.offsets,
                self.free,
                self.nr_particles,
            ],
            dim=self.nr_particles,
            device=self.device,
        )
        self.free.cursor.zero_()

        # Children of queued requests take slots first
        if self.kernel.births:
            wp.launch(
                self.module.spawn_children,
                inputs=[
                    particles,
                    self.queue,
                    self.free,
                    uniforms,
                ],
                dim=(self.queue.capacity, self.kernel.max_children),
                device=self.device,
            )

        # Emitters in declaration order
        for i, count in enumerate(counts):
            if count <= 0:
                continue
            logger.debug("Emitter %d: spawning %d particles", i, count)
            wp.launch(
                getattr(self.module, "emit_{}".format(i)),
                inputs=[
                    particles,
                    self.free,
                    uniforms,
                ],
                dim=count,
                device=self.device,
            )

        return particles
