import warp as wp

@wp.struct
class FieldBank:
    # Flat storage for all fields, each field starts at offset[i]
    values: wp.array(dtype=wp.float32)
    accum: wp.array(dtype=wp.int32)
    scratch: wp.array(dtype=wp.float32)

    # Per field grid information
    offset: wp.array(dtype=wp.int32)
    resolution: wp.array(dtype=wp.int32)
    components: wp.array(dtype=wp.int32)
    extent: wp.array(dtype=wp.float32)

    # Number of fields
    num_fields: wp.int32
