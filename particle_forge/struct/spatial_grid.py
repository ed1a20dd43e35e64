import warp as wp

@wp.struct
class SpatialGrid:
    # Particle order after the Morton sort
    sorted_indices: wp.array(dtype=wp.int32)
    sorted_codes: wp.array(dtype=wp.int32)

    # Range of sorted indices for every cell, indexed by Morton code
    cell_start: wp.array(dtype=wp.int32)
    cell_end: wp.array(dtype=wp.int32)

    # Grid information
    cell_size: wp.float32
    grid_resolution: wp.int32
    max_neighbors: wp.int32
