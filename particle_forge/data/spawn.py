# Spawner helpers handed to the user spawn callback

import math

import numpy as np


class SpawnContext:
    """
    Passed to the spawner once per particle. The random generator is
    seeded from (seed, index) only, so a spawner that uses it has no shared
    state and gives the same particle regardless of call order.
    """

    def __init__(self, index: int, count: int, seed: int = 0):
        self.index = index
        self.count = count
        self.rng = np.random.default_rng((seed, index))

    @property
    def fraction(self) -> float:
        """
        Index mapped to [0, 1)
        """
        return self.index / max(self.count, 1)

    def uniform(self, low=0.0, high=1.0):
        return float(self.rng.uniform(low, high))

    def in_cube(self, half_size=1.0, center=(0.0, 0.0, 0.0)):
        p = self.rng.uniform(-half_size, half_size, size=3)
        return tuple(float(c + o) for c, o in zip(p, center))

    def on_sphere(self, radius=1.0, center=(0.0, 0.0, 0.0)):
        z = self.rng.uniform(-1.0, 1.0)
        phi = self.rng.uniform(0.0, 2.0 * math.pi)
        r = math.sqrt(max(1.0 - z * z, 0.0))
        d = (r * math.cos(phi), r * math.sin(phi), z)
        return tuple(float(c + radius * x) for c, x in zip(center, d))

    def in_sphere(self, radius=1.0, center=(0.0, 0.0, 0.0)):
        # Cube root keeps the density uniform in volume
        r = radius * self.rng.uniform(0.0, 1.0) ** (1.0 / 3.0)
        return self.on_sphere(r, center)

    def in_disc(self, radius=1.0, center=(0.0, 0.0, 0.0)):
        """
        Uniform point in a disc in the xz plane
        """
        r = radius * math.sqrt(self.rng.uniform(0.0, 1.0))
        theta = self.rng.uniform(0.0, 2.0 * math.pi)
        return (
            float(center[0] + r * math.cos(theta)),
            float(center[1]),
            float(center[2] + r * math.sin(theta)),
        )

    def on_grid(self, spacing=0.1, center=(0.0, 0.0, 0.0)):
        """
        Position of this index on the smallest cube lattice holding count points
        """
        side = max(int(math.ceil(self.count ** (1.0 / 3.0))), 1)
        i = self.index % side
        j = (self.index // side) % side
        k = self.index // (side * side)
        offset = 0.5 * (side - 1) * spacing
        return (
            float(center[0] + i * spacing - offset),
            float(center[1] + j * spacing - offset),
            float(center[2] + k * spacing - offset),
        )

    def random_direction(self, speed=1.0):
        return self.on_sphere(speed)

    def random_color(self, saturation=0.8, value=1.0):
        h = self.rng.uniform(0.0, 1.0) * 6.0
        c = value * saturation
        x = c * (1.0 - abs(h % 2.0 - 1.0))
        rgb = [(c, x, 0.0), (x, c, 0.0), (0.0, c, x), (0.0, x, c), (x, 0.0, c), (c, 0.0, x)][int(h) % 6]
        m = value - c
        return tuple(float(v + m) for v in rgb)
