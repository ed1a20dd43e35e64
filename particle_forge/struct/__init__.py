from particle_forge.struct.spatial_grid import SpatialGrid
from particle_forge.struct.field_bank import FieldBank
from particle_forge.struct.spawn_queue import SpawnQueue, FreeSlots
