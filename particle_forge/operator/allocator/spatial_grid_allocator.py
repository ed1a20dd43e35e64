import warp as wp

from particle_forge.data.spatial import SpatialConfig
from particle_forge.struct.spatial_grid import SpatialGrid
from particle_forge.operator.operator import Operator

class SpatialGridAllocator(Operator):

    def __call__(
        self,
        nr_particles: int,
        config: SpatialConfig = None,
        device=None,
    ):

        # Allocate the spatial grid
        grid = SpatialGrid()

        # Simulations without neighbor rules still bind a (tiny) grid
        if config is None:
            grid.sorted_indices = wp.zeros(1, dtype=wp.int32, device=device)
            grid.sorted_codes = wp.zeros(1, dtype=wp.int32, device=device)
            grid.cell_start = wp.zeros(1, dtype=wp.int32, device=device)
            grid.cell_end = wp.zeros(1, dtype=wp.int32, device=device)
            grid.cell_size = wp.float32(1.0)
            grid.grid_resolution = wp.int32(1)
            grid.max_neighbors = wp.int32(0)
            return grid

        # Allocate the sorted particle order
        grid.sorted_indices = wp.zeros(nr_particles, dtype=wp.int32, device=device)
        grid.sorted_codes = wp.zeros(nr_particles, dtype=wp.int32, device=device)

        # Allocate the cell table
        grid.cell_start = wp.zeros(config.num_cells, dtype=wp.int32, device=device)
        grid.cell_end = wp.zeros(config.num_cells, dtype=wp.int32, device=device)

        # Grid information
        grid.cell_size = wp.float32(config.cell_size)
        grid.grid_resolution = wp.int32(config.grid_resolution)
        grid.max_neighbors = wp.int32(config.max_neighbors)

        return grid
