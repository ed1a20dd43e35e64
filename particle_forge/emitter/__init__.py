from particle_forge.emitter.emitter import (
    Emitter,
    EmitterState,
    PointEmitter,
    BurstEmitter,
    ConeEmitter,
    SphereEmitter,
    BoxEmitter,
)
from particle_forge.emitter.sub_emitter import SubEmitter
