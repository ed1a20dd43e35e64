import warp as wp

from particle_forge.struct.field_bank import FieldBank

# Deposits are accumulated as 16.16 fixed point integers
FIELD_SCALE = wp.constant(65536.0)
FIELD_MAX_VALUE = wp.constant(32767.0)

@wp.func
def field_index_valid(
    fields: FieldBank,
    index: wp.int32,
):
    return index >= 0 and index < fields.num_fields

@wp.func
def field_linear_index(
    fields: FieldBank,
    index: wp.int32,
    i: wp.int32,
    j: wp.int32,
    k: wp.int32,
    c: wp.int32,
):
    """
    Index into the flat value buffer for cell (i, j, k), component c.
    """
    res = fields.resolution[index]
    cell = i + j * res + k * res * res
    return fields.offset[index] + cell * fields.components[index] + c

@wp.func
def field_cell(
    fields: FieldBank,
    index: wp.int32,
    pos: wp.vec3,
):
    """
    Nearest cell to a world position, clamped into the field.
    """
    res = fields.resolution[index]
    extent = fields.extent[index]
    fres = wp.float32(res)
    nx = wp.clamp((pos[0] + extent) / (2.0 * extent), 0.0, 0.999)
    ny = wp.clamp((pos[1] + extent) / (2.0 * extent), 0.0, 0.999)
    nz = wp.clamp((pos[2] + extent) / (2.0 * extent), 0.0, 0.999)
    return wp.vec3i(
        wp.min(wp.int32(nx * fres), res - 1),
        wp.min(wp.int32(ny * fres), res - 1),
        wp.min(wp.int32(nz * fres), res - 1),
    )

@wp.func
def field_deposit_component(
    fields: FieldBank,
    index: wp.int32,
    ijk: wp.vec3i,
    c: wp.int32,
    value: wp.float32,
):
    v = wp.clamp(value, -FIELD_MAX_VALUE, FIELD_MAX_VALUE)
    wp.atomic_add(
        fields.accum,
        field_linear_index(fields, index, ijk[0], ijk[1], ijk[2], c),
        wp.int32(v * FIELD_SCALE),
    )

@wp.func
def field_write(
    fields: FieldBank,
    index: wp.int32,
    pos: wp.vec3,
    value: wp.float32,
):
    """
    Atomically add value to the cell nearest to pos. The value becomes
    visible to reads after the next merge pass.
    """
    if not field_index_valid(fields, index):
        return
    ijk = field_cell(fields, index, pos)
    field_deposit_component(fields, index, ijk, 0, value)

@wp.func
def field_write_vec3(
    fields: FieldBank,
    index: wp.int32,
    pos: wp.vec3,
    value: wp.vec3,
):
    if not field_index_valid(fields, index):
        return
    if fields.components[index] != 3:
        return
    ijk = field_cell(fields, index, pos)
    field_deposit_component(fields, index, ijk, 0, value[0])
    field_deposit_component(fields, index, ijk, 1, value[1])
    field_deposit_component(fields, index, ijk, 2, value[2])

@wp.func
def field_sample(
    fields: FieldBank,
    index: wp.int32,
    pos: wp.vec3,
    c: wp.int32,
):
    """
    Trilinear interpolation between the 8 cell centers around pos.
    """

    # Continuous cell coordinate, cell centers sit on integers
    res = fields.resolution[index]
    extent = fields.extent[index]
    fres = wp.float32(res)
    g = (pos + wp.vec3(extent, extent, extent)) / (2.0 * extent) * fres - wp.vec3(0.5, 0.5, 0.5)
    gx = wp.clamp(g[0], 0.0, fres - 1.0)
    gy = wp.clamp(g[1], 0.0, fres - 1.0)
    gz = wp.clamp(g[2], 0.0, fres - 1.0)

    # Lower and upper cells
    i0 = wp.int32(wp.floor(gx))
    j0 = wp.int32(wp.floor(gy))
    k0 = wp.int32(wp.floor(gz))
    i1 = wp.min(i0 + 1, res - 1)
    j1 = wp.min(j0 + 1, res - 1)
    k1 = wp.min(k0 + 1, res - 1)
    fx = gx - wp.float32(i0)
    fy = gy - wp.float32(j0)
    fz = gz - wp.float32(k0)

    # Get corner values
    f_000 = fields.values[field_linear_index(fields, index, i0, j0, k0, c)]
    f_100 = fields.values[field_linear_index(fields, index, i1, j0, k0, c)]
    f_010 = fields.values[field_linear_index(fields, index, i0, j1, k0, c)]
    f_110 = fields.values[field_linear_index(fields, index, i1, j1, k0, c)]
    f_001 = fields.values[field_linear_index(fields, index, i0, j0, k1, c)]
    f_101 = fields.values[field_linear_index(fields, index, i1, j0, k1, c)]
    f_011 = fields.values[field_linear_index(fields, index, i0, j1, k1, c)]
    f_111 = fields.values[field_linear_index(fields, index, i1, j1, k1, c)]

    # Interpolate
    f_00 = f_000 * (1.0 - fx) + f_100 * fx
    f_10 = f_010 * (1.0 - fx) + f_110 * fx
    f_01 = f_001 * (1.0 - fx) + f_101 * fx
    f_11 = f_011 * (1.0 - fx) + f_111 * fx
    f_0 = f_00 * (1.0 - fy) + f_10 * fy
    f_1 = f_01 * (1.0 - fy) + f_11 * fy
    return f_0 * (1.0 - fz) + f_1 * fz

@wp.func
def field_read(
    fields: FieldBank,
    index: wp.int32,
    pos: wp.vec3,
):
    if not field_index_valid(fields, index):
        return 0.0
    return field_sample(fields, index, pos, 0)

@wp.func
def field_read_vec3(
    fields: FieldBank,
    index: wp.int32,
    pos: wp.vec3,
):
    if not field_index_valid(fields, index):
        return wp.vec3(0.0, 0.0, 0.0)
    if fields.components[index] != 3:
        return wp.vec3(0.0, 0.0, 0.0)
    return wp.vec3(
        field_sample(fields, index, pos, 0),
        field_sample(fields, index, pos, 1),
        field_sample(fields, index, pos, 2),
    )

@wp.func
def field_gradient(
    fields: FieldBank,
    index: wp.int32,
    pos: wp.vec3,
    epsilon: wp.float32,
):
    """
    Central difference gradient of a scalar field.
    """
    ex = wp.vec3(epsilon, 0.0, 0.0)
    ey = wp.vec3(0.0, epsilon, 0.0)
    ez = wp.vec3(0.0, 0.0, epsilon)
    gx = field_read(fields, index, pos + ex) - field_read(fields, index, pos - ex)
    gy = field_read(fields, index, pos + ey) - field_read(fields, index, pos - ey)
    gz = field_read(fields, index, pos + ez) - field_read(fields, index, pos - ez)
    return wp.vec3(gx, gy, gz) / (2.0 * epsilon)
