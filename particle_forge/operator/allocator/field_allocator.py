import numpy as np
import warp as wp

from particle_forge.data.field import FieldRegistry
from particle_forge.struct.field_bank import FieldBank
from particle_forge.operator.operator import Operator

class FieldAllocator(Operator):

    def __call__(
        self,
        registry: FieldRegistry,
        device=None,
    ):

        # Get the offset of every field in the flat buffers
        offsets, total = registry.offsets()
        configs = [config for _, config in registry]

        # Allocate the field bank
        fields = FieldBank()

        # Allocate the values, deposit accumulator and blur scratch
        fields.values = wp.zeros(max(total, 1), dtype=wp.float32, device=device)
        fields.accum = wp.zeros(max(total, 1), dtype=wp.int32, device=device)
        fields.scratch = wp.zeros(max(total, 1), dtype=wp.float32, device=device)

        # Per field grid information
        if configs:
            fields.offset = wp.array(np.array(offsets, dtype=np.int32), dtype=wp.int32, device=device)
            fields.resolution = wp.array(
                np.array([c.resolution for c in configs], dtype=np.int32), dtype=wp.int32, device=device
            )
            fields.components = wp.array(
                np.array([c.components for c in configs], dtype=np.int32), dtype=wp.int32, device=device
            )
            fields.extent = wp.array(
                np.array([c.extent for c in configs], dtype=np.float32), dtype=wp.float32, device=device
            )
        else:
            fields.offset = wp.zeros(1, dtype=wp.int32, device=device)
            fields.resolution = wp.ones(1, dtype=wp.int32, device=device)
            fields.components = wp.ones(1, dtype=wp.int32, device=device)
            fields.extent = wp.ones(1, dtype=wp.float32, device=device)

        # Number of fields
        fields.num_fields = wp.int32(len(configs))

        return fields
