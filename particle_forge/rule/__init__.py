from particle_forge.rule.rule import (
    Falloff,
    Rule,
    NeighborRule,
    emit_actions,
)
from particle_forge.rule.forces import (
    Gravity,
    Drag,
    Acceleration,
    BounceWalls,
    WrapWalls,
    AttractTo,
    RepelFrom,
    PointGravity,
    Orbit,
    Spring,
    Radial,
    Vortex,
    Pulse,
    Turbulence,
    Curl,
    Wind,
    PositionNoise,
    Seek,
    Flee,
    Arrive,
    Wander,
    SpeedLimit,
    Buoyancy,
    Friction,
    Shockwave,
    Oscillate,
    RespawnBelow,
    Mass,
    DensityBuoyancy,
)
from particle_forge.rule.lifecycle import (
    Lifetime,
    FadeOut,
    ShrinkOut,
    ColorOverLife,
    ColorBySpeed,
    ColorByAge,
    ColorByHue,
    ScaleBySpeed,
    Grow,
    Decay,
    Die,
)
from particle_forge.rule.logic import (
    Maybe,
    Trigger,
    OnCondition,
    Gate,
    Switch,
    OnDeath,
    OnSpawn,
    OnInterval,
    Periodic,
    Lerp,
    Clamp,
    Remap,
    Quantize,
    Noise,
    Smooth,
    Modulo,
    Copy,
    CopyField,
    Threshold,
    Tween,
    And,
    Or,
    Not,
    Xor,
    Hysteresis,
    Latch,
    Edge,
    Select,
    Blend,
    Refractory,
)
from particle_forge.rule.neighbor import (
    Separate,
    Cohere,
    Align,
    Flock,
    Avoid,
    Collide,
    NBodyGravity,
    LennardJones,
    Viscosity,
    Pressure,
    SurfaceTension,
    Magnetism,
    Chase,
    Evade,
    Convert,
    DLA,
    Diffuse,
    Accumulate,
    Signal,
    Absorb,
)
from particle_forge.rule.field import (
    Deposit,
    Sense,
    Consume,
    Gradient,
    Current,
)
from particle_forge.rule.springs import (
    ChainSprings,
    RadialSprings,
    BondSprings,
)
from particle_forge.rule.custom import (
    Custom,
    NeighborCustom,
    OnCollision,
)
from particle_forge.rule.interactions import InteractionMatrix
from particle_forge.rule.reproduction import Sync, Split
from particle_forge.rule.typed import Typed
from particle_forge.rule.state import (
    State,
    Transition,
    AgentState,
    Agent,
)


def _all_subclasses(cls):
    for sub in cls.__subclasses__():
        yield sub
        yield from _all_subclasses(sub)


# Every concrete rule by name
ALL_RULES = {cls.__name__: cls for cls in _all_subclasses(Rule) if cls is not NeighborRule}
