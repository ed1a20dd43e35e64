from particle_forge.data.schema import (
    ParticleField,
    ParticleLayout,
    LayoutEntry,
    FIELD_TYPES,
    resolve_schema,
)
from particle_forge.data.spatial import SpatialConfig
from particle_forge.data.field import FieldConfig, FieldHandle, FieldRegistry
from particle_forge.data.uniforms import Uniform, UniformRegistry
from particle_forge.data.spawn import SpawnContext
