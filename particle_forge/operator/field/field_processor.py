import logging

import numpy as np
import warp as wp

from particle_forge.data.field import FieldRegistry
from particle_forge.struct.field_bank import FieldBank
from particle_forge.functional.field_sampling import FIELD_SCALE
from particle_forge.operator.operator import Operator

logger = logging.getLogger(__name__)


class FieldProcessor(Operator):
    """
    Per frame field passes: merge the fixed point deposits, blur and decay.
    Blur is a face neighbor diffusion with no flux through the borders, so
    it only moves mass between cells.
    """

    def __init__(self, registry: FieldRegistry):
        self.registry = registry

    @wp.kernel
    def _merge(
        values: wp.array(dtype=wp.float32),
        accum: wp.array(dtype=wp.int32),
        offset: wp.int32,
    ):
        # Get value index
        i = offset + wp.tid()

        # Convert deposits to float and reset the accumulator
        values[i] = values[i] + wp.float32(accum[i]) / FIELD_SCALE
        accum[i] = 0

    @wp.kernel
    def _blur(
        src: wp.array(dtype=wp.float32),
        dst: wp.array(dtype=wp.float32),
        offset: wp.int32,
        resolution: wp.int32,
        components: wp.int32,
        strength: wp.float32,
    ):
        # Get value index
        i = wp.tid()

        # Get cell coordinates
        cell = i // components
        x = cell % resolution
        y = (cell // resolution) % resolution
        z = cell // (resolution * resolution)

        # Strides in the flat buffer
        sx = components
        sy = components * resolution
        sz = components * resolution * resolution

        # Sum of differences with face neighbors
        center = src[offset + i]
        flux = float(0.0)
        if x > 0:
            flux += src[offset + i - sx] - center
        if x < resolution - 1:
            flux += src[offset + i + sx] - center
        if y > 0:
            flux += src[offset + i - sy] - center
        if y < resolution - 1:
            flux += src[offset + i + sy] - center
        if z > 0:
            flux += src[offset + i - sz] - center
        if z < resolution - 1:
            flux += src[offset + i + sz] - center

        dst[offset + i] = center + strength / 6.0 * flux

    @wp.kernel
    def _decay(
        values: wp.array(dtype=wp.float32),
        offset: wp.int32,
        decay: wp.float32,
    ):
        i = offset + wp.tid()
        values[i] = values[i] * decay

    def process(
        self,
        fields: FieldBank,
        handle,
    ):
        """
        Merge, blur and decay one field
        """

        # Get field information
        handle = self.registry.resolve(handle)
        config = self.registry.config(handle)
        offsets, _ = self.registry.offsets()
        offset = offsets[handle.index]
        num_values = config.num_values
        device = fields.values.device

        # Merge deposits
        wp.launch(
            self._merge,
            inputs=[
                fields.values,
                fields.accum,
                offset,
            ],
            dim=num_values,
            device=device,
        )

        # Blur
        if config.blur > 0.0 and config.blur_iterations > 0:
            src, dst = fields.values, fields.scratch
            for _ in range(config.blur_iterations):
                wp.launch(
                    self._blur,
                    inputs=[
                        src,
                        dst,
                        offset,
                        config.resolution,
                        config.components,
                        config.blur,
                    ],
                    dim=num_values,
                    device=device,
                )
                src, dst = dst, src

            # Odd number of passes leaves the result in the scratch buffer
            if config.blur_iterations % 2 == 1:
                wp.copy(fields.values, fields.scratch, offset, offset, num_values)

        # Decay
        if config.decay < 1.0:
            wp.launch(
                self._decay,
                inputs=[
                    fields.values,
                    offset,
                    config.decay,
                ],
                dim=num_values,
                device=device,
            )

        return fields

    def __call__(
        self,
        fields: FieldBank,
        handles=None,
    ):
        if handles is None:
            handles = self.registry.handles()
        for handle in handles:
            self.process(fields, handle)
        return fields

    def clear(self, fields: FieldBank):
        fields.values.zero_()
        fields.accum.zero_()
        fields.scratch.zero_()
        return fields

    def field_values(self, fields: FieldBank, handle) -> np.ndarray:
        """
        Copy one field to the host as a (z, y, x[, 3]) array
        """
        handle = self.registry.resolve(handle)
        config = self.registry.config(handle)
        offsets, _ = self.registry.offsets()
        offset = offsets[handle.index]
        values = fields.values.numpy()[offset:offset + config.num_values].copy()
        res = config.resolution
        if config.components == 1:
            return values.reshape(res, res, res)
        return values.reshape(res, res, res, config.components)
