from particle_forge.compiler.fragment import (
    Statement,
    Comment,
    Branch,
    NeighborLoop,
    free_identifiers,
    identifiers,
    neighbor_loops,
)
from particle_forge.compiler.context import EmitContext
from particle_forge.compiler.generator import KernelGenerator, GeneratedKernel, generate_kernel
from particle_forge.compiler.loader import KernelLoader
