import warp as wp

@wp.func
def expand_bits(v: wp.int32):
    """
    Spread the low 10 bits of v so there are two zero bits between each.
    """
    v = v & 0x3FF
    v = (v | (v << 16)) & 0x030000FF
    v = (v | (v << 8)) & 0x0300F00F
    v = (v | (v << 4)) & 0x030C30C3
    v = (v | (v << 2)) & 0x09249249
    return v

@wp.func
def compact_bits(v: wp.int32):
    """
    Inverse of expand_bits.
    """
    v = v & 0x09249249
    v = (v | (v >> 2)) & 0x030C30C3
    v = (v | (v >> 4)) & 0x0300F00F
    v = (v | (v >> 8)) & 0x030000FF
    v = (v | (v >> 16)) & 0x3FF
    return v

@wp.func
def morton_encode(x: wp.int32, y: wp.int32, z: wp.int32):
    """
    Interleave three 10 bit coordinates into a 30 bit Morton code.
    """
    return expand_bits(x) | (expand_bits(y) << 1) | (expand_bits(z) << 2)

@wp.func
def morton_decode(code: wp.int32):
    return wp.vec3i(
        compact_bits(code),
        compact_bits(code >> 1),
        compact_bits(code >> 2),
    )

@wp.func
def pos_to_cell(
    pos: wp.vec3,
    cell_size: wp.float32,
    grid_resolution: wp.int32,
):
    """
    Convert a position to its grid cell, clamped into the grid.
    """

    # Shift so the grid is centered on the origin
    half_span = 0.5 * cell_size * wp.float32(grid_resolution)
    ijk = wp.vec3i(
        wp.int32(wp.floor((pos[0] + half_span) / cell_size)),
        wp.int32(wp.floor((pos[1] + half_span) / cell_size)),
        wp.int32(wp.floor((pos[2] + half_span) / cell_size)),
    )

    # Clamp to boundary cells
    return wp.vec3i(
        wp.clamp(ijk[0], 0, grid_resolution - 1),
        wp.clamp(ijk[1], 0, grid_resolution - 1),
        wp.clamp(ijk[2], 0, grid_resolution - 1),
    )

@wp.func
def pos_to_morton(
    pos: wp.vec3,
    cell_size: wp.float32,
    grid_resolution: wp.int32,
):
    ijk = pos_to_cell(pos, cell_size, grid_resolution)
    return morton_encode(ijk[0], ijk[1], ijk[2])
