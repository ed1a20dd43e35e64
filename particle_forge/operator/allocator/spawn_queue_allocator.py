import warp as wp

from particle_forge.struct.spawn_queue import SpawnQueue, FreeSlots
from particle_forge.operator.operator import Operator

class SpawnQueueAllocator(Operator):

    def __call__(
        self,
        capacity: int,
        device=None,
    ):

        # Simulations without spawn sources still bind a (tiny) queue
        size = max(capacity, 1)

        # Allocate the requests
        queue = SpawnQueue()
        queue.source = wp.zeros(size, dtype=wp.int32, device=device)
        queue.parent = wp.zeros(size, dtype=wp.int32, device=device)
        queue.position = wp.zeros(size, dtype=wp.vec3, device=device)
        queue.velocity = wp.zeros(size, dtype=wp.vec3, device=device)
        queue.color = wp.zeros(size, dtype=wp.vec4, device=device)
        queue.type_tag = wp.zeros(size, dtype=wp.uint32, device=device)

        # Request counter
        queue.count = wp.zeros(1, dtype=wp.int32, device=device)
        queue.capacity = wp.int32(capacity)

        return queue


class FreeSlotsAllocator(Operator):

    def __call__(
        self,
        nr_particles: int,
        device=None,
    ):

        free = FreeSlots()
        free.slots = wp.zeros(nr_particles, dtype=wp.int32, device=device)
        free.count = wp.zeros(1, dtype=wp.int32, device=device)
        free.cursor = wp.zeros(1, dtype=wp.int32, device=device)

        return free
