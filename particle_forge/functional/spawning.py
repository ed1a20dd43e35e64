import warp as wp

from particle_forge.functional.noise import hash_u32
from particle_forge.struct.spawn_queue import SpawnQueue, FreeSlots

@wp.func
def spawn_push(
    queue: SpawnQueue,
    source: wp.int32,
    parent: wp.int32,
    position: wp.vec3,
    velocity: wp.vec3,
    color: wp.vec4,
    type_tag: wp.uint32,
):
    """
    Append a spawn request. Requests past the queue capacity are dropped.
    """
    slot = wp.atomic_add(queue.count, 0, 1)
    if slot < queue.capacity:
        queue.source[slot] = source
        queue.parent[slot] = parent
        queue.position[slot] = position
        queue.velocity[slot] = velocity
        queue.color[slot] = color
        queue.type_tag[slot] = type_tag

@wp.func
def claim_slot(
    free: FreeSlots,
):
    """
    Take the next free particle slot, -1 once every free slot is taken.
    """
    k = wp.atomic_add(free.cursor, 0, 1)
    if k < free.count[0]:
        return free.slots[k]
    return wp.int32(-1)

@wp.func
def spawn_seed(
    frame: wp.int32,
    salt: wp.int32,
):
    """
    Random seed for a spawn pass, distinct per frame and per pass.
    """
    h = hash_u32(wp.uint32(frame) * wp.uint32(747796405) + wp.uint32(salt))
    return wp.int32(h >> wp.uint32(1))
