import pytest

import numpy as np
import warp as wp

from particle_forge.data.field import FieldConfig, FieldRegistry
from particle_forge.functional.field_sampling import (
    field_write,
    field_write_vec3,
    field_read,
    field_gradient,
)
from particle_forge.operator.allocator import FieldAllocator
from particle_forge.operator.field import FieldProcessor
from particle_forge.struct.field_bank import FieldBank

wp.init()

DEVICE = "cpu"


@wp.kernel
def _deposit(
    fields: FieldBank,
    index: wp.int32,
    positions: wp.array(dtype=wp.vec3),
    value: wp.float32,
):
    i = wp.tid()
    field_write(fields, index, positions[i], value)


@wp.kernel
def _deposit_vec3(
    fields: FieldBank,
    index: wp.int32,
    positions: wp.array(dtype=wp.vec3),
    value: wp.vec3,
):
    i = wp.tid()
    field_write_vec3(fields, index, positions[i], value)


@wp.kernel
def _read(
    fields: FieldBank,
    index: wp.int32,
    positions: wp.array(dtype=wp.vec3),
    values: wp.array(dtype=wp.float32),
    gradients: wp.array(dtype=wp.vec3),
    epsilon: wp.float32,
):
    i = wp.tid()
    values[i] = field_read(fields, index, positions[i])
    gradients[i] = field_gradient(fields, index, positions[i], epsilon)


def _make(config, *more):
    registry = FieldRegistry()
    handles = [registry.register("f{}".format(i), c) for i, c in enumerate((config,) + more)]
    fields = FieldAllocator()(registry, device=DEVICE)
    return registry, handles, fields, FieldProcessor(registry)


def _deposit_at(fields, handle, points, value):
    positions = wp.array(np.array(points, dtype=np.float32), dtype=wp.vec3, device=DEVICE)
    wp.launch(_deposit, inputs=[fields, handle.index, positions, value], dim=len(points), device=DEVICE)


def test_deposit_then_decay():

    # Field with decay only
    registry, (handle,), fields, processor = _make(FieldConfig(resolution=8, decay=0.5, blur=0.0))

    # Deposits are invisible until merged
    _deposit_at(fields, handle, [(0.1, 0.1, 0.1)], 1.0)
    assert processor.field_values(fields, handle).sum() == 0.0

    # Merge, then halve
    processor.process(fields, handle)
    values = processor.field_values(fields, handle)
    assert values.max() == pytest.approx(0.5, abs=1e-4)
    assert np.count_nonzero(values) == 1

    # Halve again
    processor.process(fields, handle)
    assert processor.field_values(fields, handle).max() == pytest.approx(0.25, abs=1e-4)


def test_concurrent_deposits_accumulate():
    registry, (handle,), fields, processor = _make(FieldConfig(resolution=8, decay=1.0, blur=0.0))
    _deposit_at(fields, handle, [(0.0, 0.0, 0.0)] * 100, 0.25)
    processor(fields)
    assert processor.field_values(fields, handle).sum() == pytest.approx(25.0, abs=1e-3)


def test_deposit_clamped():
    registry, (handle,), fields, processor = _make(FieldConfig(resolution=8, decay=1.0, blur=0.0))
    _deposit_at(fields, handle, [(0.0, 0.0, 0.0)], 1.0e6)
    processor(fields)
    assert processor.field_values(fields, handle).max() == pytest.approx(32767.0, rel=1e-4)


@pytest.mark.parametrize("iterations", [1, 2, 5])
def test_blur_conserves_mass(iterations):

    # Field with blur only
    config = FieldConfig(resolution=8, decay=1.0, blur=0.5, blur_iterations=iterations)
    registry, (handle,), fields, processor = _make(config)

    # Deposit in a corner to exercise the borders
    _deposit_at(fields, handle, [(-0.99, -0.99, -0.99), (0.3, 0.2, -0.1)], 1.0)
    for _ in range(4):
        processor(fields)
        values = processor.field_values(fields, handle)
        assert values.sum() == pytest.approx(2.0, abs=1e-4)
        assert values.min() >= 0.0

    # Mass spread out
    assert values.max() < 1.0


def test_decay_is_monotone():

    # Several cells, positive and negative, no blur
    registry, (handle,), fields, processor = _make(FieldConfig(resolution=8, decay=0.9, blur=0.0))
    _deposit_at(fields, handle, [(0.0, 0.0, 0.0), (0.5, 0.5, 0.5), (-0.7, 0.2, 0.9)], 1.0)
    _deposit_at(fields, handle, [(0.3, -0.6, -0.3)], -2.0)
    processor(fields)
    previous = processor.field_values(fields, handle)
    assert np.count_nonzero(previous) == 4

    # No cell magnitude ever grows
    for _ in range(10):
        processor(fields)
        values = processor.field_values(fields, handle)
        assert np.all(np.abs(values) <= np.abs(previous) + 1e-6)
        assert np.abs(values).sum() < np.abs(previous).sum()
        previous = values


def test_fields_are_independent():

    # Scalar and vector field sharing the bank
    registry, (scalar, vector), fields, processor = _make(
        FieldConfig(resolution=8, decay=1.0, blur=0.0),
        FieldConfig(resolution=16, decay=1.0, blur=0.0, kind="vector"),
    )
    _deposit_at(fields, scalar, [(0.0, 0.0, 0.0)], 2.0)
    positions = wp.array(np.array([[0.0, 0.0, 0.0]], dtype=np.float32), dtype=wp.vec3, device=DEVICE)
    wp.launch(
        _deposit_vec3,
        inputs=[fields, vector.index, positions, wp.vec3(1.0, 2.0, 3.0)],
        dim=1,
        device=DEVICE,
    )

    # Only process the vector field
    processor(fields, [vector])
    assert processor.field_values(fields, scalar).sum() == 0.0
    values = processor.field_values(fields, vector)
    assert values.shape == (16, 16, 16, 3)
    assert values.reshape(-1, 3).sum(axis=0) == pytest.approx([1.0, 2.0, 3.0], abs=1e-4)

    # Clear
    processor.clear(fields)
    processor(fields)
    assert processor.field_values(fields, scalar).sum() == 0.0


def test_read_and_gradient():

    # Linear ramp along x in a 16^3 field
    registry, (handle,), fields, processor = _make(FieldConfig(resolution=16, decay=1.0, blur=0.0))
    ramp = np.zeros((16, 16, 16), dtype=np.float32)
    ramp[:, :, :] = np.arange(16, dtype=np.float32)[None, None, :]
    fields.values.assign(ramp.reshape(-1))

    # Read at a cell center and between two centers
    cell = 2.0 / 16
    points = np.array([
        [-1.0 + 4.5 * cell, 0.0, 0.0],
        [-1.0 + 5.0 * cell, 0.0, 0.0],
    ], dtype=np.float32)
    positions = wp.array(points, dtype=wp.vec3, device=DEVICE)
    values = wp.zeros(2, dtype=wp.float32, device=DEVICE)
    gradients = wp.zeros(2, dtype=wp.vec3, device=DEVICE)
    wp.launch(_read, inputs=[fields, handle.index, positions, values, gradients, cell], dim=2, device=DEVICE)

    assert values.numpy() == pytest.approx([4.0, 4.5], abs=1e-4)
    gradient = gradients.numpy()[0]
    assert gradient[0] == pytest.approx(1.0 / cell, rel=1e-3)
    assert gradient[1] == pytest.approx(0.0, abs=1e-3)
    assert gradient[2] == pytest.approx(0.0, abs=1e-3)


def test_invalid_index_is_ignored():
    registry, (handle,), fields, processor = _make(FieldConfig(resolution=8, decay=1.0, blur=0.0))
    positions = wp.array(np.zeros((1, 3), dtype=np.float32), dtype=wp.vec3, device=DEVICE)
    wp.launch(_deposit, inputs=[fields, 3, positions, 1.0], dim=1, device=DEVICE)
    processor(fields)
    assert processor.field_values(fields, handle).sum() == 0.0
