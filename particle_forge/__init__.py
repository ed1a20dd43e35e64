from particle_forge.error import (
    ParticleForgeError,
    SchemaError,
    MissingRequiredField,
    UnsupportedType,
    DuplicateField,
    InvalidFieldName,
    ConfigurationError,
    KernelCompileError,
)
from particle_forge.data import (
    ParticleField,
    ParticleLayout,
    resolve_schema,
    SpatialConfig,
    FieldConfig,
    FieldHandle,
    FieldRegistry,
    Uniform,
    UniformRegistry,
    SpawnContext,
)
from particle_forge.compiler import KernelGenerator, KernelLoader
from particle_forge.solver import Simulation
from particle_forge.emitter import (
    PointEmitter,
    BurstEmitter,
    ConeEmitter,
    SphereEmitter,
    BoxEmitter,
    SubEmitter,
)
