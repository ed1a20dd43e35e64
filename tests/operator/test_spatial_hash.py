import pytest

import numpy as np
import warp as wp

from particle_forge.data.spatial import SpatialConfig
from particle_forge.functional.morton import morton_encode, morton_decode, pos_to_cell
from particle_forge.operator.allocator import SpatialGridAllocator
from particle_forge.operator.sort import RadixSort
from particle_forge.operator.spatial_hash import MortonEncoder, SpatialHashBuilder

wp.init()

DEVICE = "cpu"


@wp.kernel
def _morton_round_trip(
    cells: wp.array(dtype=wp.vec3i),
    codes: wp.array(dtype=wp.int32),
    decoded: wp.array(dtype=wp.vec3i),
):
    i = wp.tid()
    c = cells[i]
    code = morton_encode(c[0], c[1], c[2])
    codes[i] = code
    decoded[i] = morton_decode(code)


@wp.kernel
def _cells(
    positions: wp.array(dtype=wp.vec3),
    cells: wp.array(dtype=wp.vec3i),
    cell_size: wp.float32,
    grid_resolution: wp.int32,
):
    i = wp.tid()
    cells[i] = pos_to_cell(positions[i], cell_size, grid_resolution)


def test_morton_round_trip():

    # Random cells over the full 10 bit range
    rng = np.random.default_rng(0)
    cells_np = rng.integers(0, 1024, size=(1000, 3)).astype(np.int32)
    cells_np[0] = (0, 0, 0)
    cells_np[1] = (1023, 1023, 1023)
    cells = wp.array(cells_np, dtype=wp.vec3i, device=DEVICE)
    codes = wp.zeros(1000, dtype=wp.int32, device=DEVICE)
    decoded = wp.zeros(1000, dtype=wp.vec3i, device=DEVICE)

    wp.launch(_morton_round_trip, inputs=[cells, codes, decoded], dim=1000, device=DEVICE)

    assert np.array_equal(decoded.numpy(), cells_np)
    assert codes.numpy()[0] == 0
    assert codes.numpy()[1] == 2 ** 30 - 1
    assert codes.numpy().min() >= 0


def test_morton_bit_order():
    cells = wp.array(np.array([[1, 0, 0], [0, 1, 0], [0, 0, 1]], dtype=np.int32), dtype=wp.vec3i, device=DEVICE)
    codes = wp.zeros(3, dtype=wp.int32, device=DEVICE)
    decoded = wp.zeros(3, dtype=wp.vec3i, device=DEVICE)
    wp.launch(_morton_round_trip, inputs=[cells, codes, decoded], dim=3, device=DEVICE)
    assert list(codes.numpy()) == [1, 2, 4]


def test_positions_outside_grid_clamp():
    positions = wp.array(
        np.array([[-100.0, 0.01, 100.0], [0.05, -0.05, 0.02]], dtype=np.float32),
        dtype=wp.vec3,
        device=DEVICE,
    )
    cells = wp.zeros(2, dtype=wp.vec3i, device=DEVICE)
    wp.launch(_cells, inputs=[positions, cells, 0.1, 16], dim=2, device=DEVICE)
    cells = cells.numpy()
    assert list(cells[0]) == [0, 8, 15]
    assert list(cells[1]) == [8, 7, 8]


@pytest.mark.parametrize("num_keys", [1, 100, 1000])
def test_radix_sort_is_sorted_and_stable(num_keys):

    # Many duplicate keys so stability matters
    rng = np.random.default_rng(num_keys)
    keys_np = rng.integers(0, 50, size=num_keys).astype(np.int32)
    keys_np[: num_keys // 2] *= 1 << 20
    keys = wp.array(keys_np, dtype=wp.int32, device=DEVICE)
    values = wp.array(np.arange(num_keys, dtype=np.int32), dtype=wp.int32, device=DEVICE)

    radix_sort = RadixSort(tile_size=64)
    keys, values = radix_sort(keys, values)

    expected = np.argsort(keys_np, kind="stable")
    assert np.array_equal(values.numpy(), expected)
    assert np.array_equal(keys.numpy(), keys_np[expected])


def test_cell_table_covers_every_particle():

    # Parameters
    config = SpatialConfig(cell_size=0.1, grid_resolution=16)
    num_particles = 500
    rng = np.random.default_rng(1)
    positions_np = rng.uniform(-1.0, 1.0, size=(num_particles, 3)).astype(np.float32)
    positions = wp.array(positions_np, dtype=wp.vec3, device=DEVICE)

    # Build the hash
    grid = SpatialGridAllocator()(num_particles, config, device=DEVICE)
    SpatialHashBuilder(config)(positions, grid)

    # Codes are sorted and every particle appears once
    codes = grid.sorted_codes.numpy()
    indices = grid.sorted_indices.numpy()
    assert np.all(np.diff(codes) >= 0)
    assert np.array_equal(np.sort(indices), np.arange(num_particles))

    # Cell ranges cover the sorted array exactly
    cell_start = grid.cell_start.numpy()
    cell_end = grid.cell_end.numpy()
    covered = 0
    for code in np.unique(codes):
        start, end = cell_start[code], cell_end[code]
        assert np.all(codes[start:end] == code)
        covered += end - start
    assert covered == num_particles

    # Empty cells have an empty range
    empty = np.setdiff1d(np.arange(config.num_cells), codes)
    assert np.all(cell_start[empty] == cell_end[empty])

    # Codes match the encoder
    codes_check = wp.zeros(num_particles, dtype=wp.int32, device=DEVICE)
    indices_check = wp.zeros(num_particles, dtype=wp.int32, device=DEVICE)
    MortonEncoder()(positions, codes_check, indices_check, config.cell_size, config.grid_resolution)
    assert np.array_equal(codes_check.numpy()[indices], codes)
