import warp as wp

@wp.struct
class SpawnQueue:
    # One entry per spawn request, written by the main kernel
    source: wp.array(dtype=wp.int32)
    parent: wp.array(dtype=wp.int32)
    position: wp.array(dtype=wp.vec3)
    velocity: wp.array(dtype=wp.vec3)
    color: wp.array(dtype=wp.vec4)
    type_tag: wp.array(dtype=wp.uint32)

    # count[0] is the number of pushes this step, it may exceed capacity
    count: wp.array(dtype=wp.int32)
    capacity: wp.int32

@wp.struct
class FreeSlots:
    # Indices of dead particles after the main kernel, in index order
    slots: wp.array(dtype=wp.int32)

    # count[0] free slots, cursor[0] slots handed out so far
    count: wp.array(dtype=wp.int32)
    cursor: wp.array(dtype=wp.int32)
