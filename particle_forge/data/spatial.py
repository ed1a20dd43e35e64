from dataclasses import dataclass

from particle_forge.error import ConfigurationError

# Morton codes interleave 10 bits per axis
MAX_GRID_RESOLUTION = 1024


@dataclass(frozen=True)
class SpatialConfig:
    """
    Uniform grid used for neighbor queries.

    The grid spans [-grid_resolution * cell_size / 2, +grid_resolution * cell_size / 2]
    on every axis, particles outside of it are clamped into the boundary cells.
    A max_neighbors of 0 means every neighbor is visited.
    """

    cell_size: float = 0.1
    grid_resolution: int = 64
    max_neighbors: int = 0

    def __post_init__(self):
        if not self.cell_size > 0.0:
            raise ConfigurationError("cell_size must be positive, got {}".format(self.cell_size))
        res = self.grid_resolution
        if not isinstance(res, int) or res <= 0 or res & (res - 1) != 0:
            raise ConfigurationError(
                "grid_resolution must be a power of two, got {}".format(res)
            )
        if res > MAX_GRID_RESOLUTION:
            raise ConfigurationError(
                "grid_resolution must be at most {}, got {}".format(MAX_GRID_RESOLUTION, res)
            )
        if self.max_neighbors < 0:
            raise ConfigurationError("max_neighbors must be >= 0")

    @property
    def half_span(self) -> float:
        return 0.5 * self.cell_size * self.grid_resolution

    @property
    def num_cells(self) -> int:
        return self.grid_resolution ** 3
