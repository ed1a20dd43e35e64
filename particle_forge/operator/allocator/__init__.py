from particle_forge.operator.allocator.particle_allocator import ParticleAllocator
from particle_forge.operator.allocator.spatial_grid_allocator import SpatialGridAllocator
from particle_forge.operator.allocator.field_allocator import FieldAllocator
from particle_forge.operator.allocator.spawn_queue_allocator import SpawnQueueAllocator, FreeSlotsAllocator
