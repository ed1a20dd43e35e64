import logging

import warp as wp

from particle_forge.data.spatial import SpatialConfig
from particle_forge.struct.spatial_grid import SpatialGrid
from particle_forge.functional.morton import pos_to_morton
from particle_forge.operator.operator import Operator
from particle_forge.operator.sort.radix_sort import RadixSort

logger = logging.getLogger(__name__)


class MortonEncoder(Operator):
    """
    Compute the Morton code of the grid cell holding every position, and
    reset the particle index permutation.
    """

    @wp.kernel
    def _compute_morton_codes(
        positions: wp.array(dtype=wp.vec3),
        codes: wp.array(dtype=wp.int32),
        indices: wp.array(dtype=wp.int32),
        cell_size: wp.float32,
        grid_resolution: wp.int32,
    ):
        # Get particle index
        i = wp.tid()

        # Positions outside the grid land in the boundary cells
        codes[i] = pos_to_morton(positions[i], cell_size, grid_resolution)
        indices[i] = i

    def __call__(
        self,
        positions: wp.array,
        codes: wp.array,
        indices: wp.array,
        cell_size: float,
        grid_resolution: int,
    ):
        wp.launch(
            self._compute_morton_codes,
            inputs=[
                positions,
                codes,
                indices,
                wp.float32(cell_size),
                wp.int32(grid_resolution),
            ],
            dim=positions.shape[0],
            device=positions.device,
        )
        return codes, indices


class SpatialHashBuilder(Operator):
    """
    Sort particles by the Morton code of their cell and build the cell
    range table used by the neighbor loop.
    """

    def __init__(self, config: SpatialConfig, tile_size: int = 256):
        self.config = config
        self.morton_encoder = MortonEncoder()
        self.radix_sort = RadixSort(tile_size=tile_size)

    @wp.kernel
    def _build_cell_table(
        sorted_codes: wp.array(dtype=wp.int32),
        cell_start: wp.array(dtype=wp.int32),
        cell_end: wp.array(dtype=wp.int32),
        num_particles: wp.int32,
    ):
        # Get sorted position
        i = wp.tid()
        code = sorted_codes[i]

        # First particle of a cell
        if i == 0:
            cell_start[code] = i
        elif sorted_codes[i - 1] != code:
            cell_start[code] = i

        # Last particle of a cell
        if i == num_particles - 1:
            cell_end[code] = i + 1
        elif sorted_codes[i + 1] != code:
            cell_end[code] = i + 1

    def __call__(
        self,
        positions: wp.array,
        grid: SpatialGrid,
    ):
        num_particles = positions.shape[0]

        # Compute Morton codes
        self.morton_encoder(
            positions,
            grid.sorted_codes,
            grid.sorted_indices,
            self.config.cell_size,
            self.config.grid_resolution,
        )

        # Sort (code, index) pairs, the result is written back in place
        self.radix_sort(grid.sorted_codes, grid.sorted_indices, num_particles)

        # Empty cells keep start == end == 0
        grid.cell_start.zero_()
        grid.cell_end.zero_()
        wp.launch(
            self._build_cell_table,
            inputs=[
                grid.sorted_codes,
                grid.cell_start,
                grid.cell_end,
                num_particles,
            ],
            dim=num_particles,
            device=positions.device,
        )

        return grid
