import logging

import warp as wp

from particle_forge.operator.operator import Operator

logger = logging.getLogger(__name__)


class RadixSort(Operator):
    """
    Stable least significant digit radix sort of non negative int32 keys
    carrying int32 values. Every pass sorts one 4 bit digit: a per tile
    histogram over 16 buckets, an exclusive prefix sum over the digit major
    histogram and a scatter into the ping-pong buffers. Eight passes cover
    all 32 bits, so the sorted result ends up back in the input arrays.
    """

    radix_bits = 4
    num_buckets = 16
    num_passes = 8

    def __init__(self, tile_size: int = 256):
        self.tile_size = tile_size
        self._scratch = {}

    @wp.kernel
    def _histogram(
        keys: wp.array(dtype=wp.int32),
        histogram: wp.array(dtype=wp.int32),
        shift: wp.int32,
        num_keys: wp.int32,
        tile_size: wp.int32,
        num_tiles: wp.int32,
    ):
        # Get tile index
        t = wp.tid()

        # Count digits of this tile
        start = t * tile_size
        end = wp.min(start + tile_size, num_keys)
        for i in range(start, end):
            digit = (keys[i] >> shift) & 15
            histogram[digit * num_tiles + t] += 1

    @wp.kernel
    def _scatter(
        keys_in: wp.array(dtype=wp.int32),
        values_in: wp.array(dtype=wp.int32),
        keys_out: wp.array(dtype=wp.int32),
        values_out: wp.array(dtype=wp.int32),
        offsets: wp.array(dtype=wp.int32),
        shift: wp.int32,
        num_keys: wp.int32,
        tile_size: wp.int32,
        num_tiles: wp.int32,
    ):
        # Get tile index
        t = wp.tid()

        # Scatter in input order to keep the sort stable
        start = t * tile_size
        end = wp.min(start + tile_size, num_keys)
        for i in range(start, end):
            key = keys_in[i]
            slot = ((key >> shift) & 15) * num_tiles + t
            dst = offsets[slot]
            offsets[slot] = dst + 1
            keys_out[dst] = key
            values_out[dst] = values_in[i]

    def _get_scratch(self, num_keys, device):
        key = (num_keys, str(device))
        if key not in self._scratch:
            num_tiles = (num_keys + self.tile_size - 1) // self.tile_size
            self._scratch[key] = (
                wp.zeros(num_keys, dtype=wp.int32, device=device),
                wp.zeros(num_keys, dtype=wp.int32, device=device),
                wp.zeros(self.num_buckets * num_tiles, dtype=wp.int32, device=device),
                wp.zeros(self.num_buckets * num_tiles, dtype=wp.int32, device=device),
            )
            logger.debug("Allocated radix sort scratch for %d keys on %s", num_keys, device)
        return self._scratch[key]

    def __call__(
        self,
        keys: wp.array,
        values: wp.array,
        num_keys: int = None,
    ):
        # Get sizes
        if num_keys is None:
            num_keys = keys.shape[0]
        if num_keys == 0:
            return keys, values
        num_tiles = (num_keys + self.tile_size - 1) // self.tile_size

        # Get ping-pong buffers
        keys_buffer, values_buffer, histogram, offsets = self._get_scratch(num_keys, keys.device)

        for p in range(self.num_passes):
            shift = p * self.radix_bits

            # Count digits per tile
            histogram.zero_()
            wp.launch(
                self._histogram,
                inputs=[
                    keys,
                    histogram,
                    shift,
                    num_keys,
                    self.tile_size,
                    num_tiles,
                ],
                dim=num_tiles,
                device=keys.device,
            )

            # Start of every (digit, tile) run in the output
            wp.utils.array_scan(histogram, offsets, inclusive=False)

            # Scatter to the other buffer
            wp.launch(
                self._scatter,
                inputs=[
                    keys,
                    values,
                    keys_buffer,
                    values_buffer,
                    offsets,
                    shift,
                    num_keys,
                    self.tile_size,
                    num_tiles,
                ],
                dim=num_tiles,
                device=keys.device,
            )

            # Rotate buffers
            keys, keys_buffer = keys_buffer, keys
            values, values_buffer = values_buffer, values

        return keys, values
