from particle_forge.operator.spatial_hash.spatial_hash import MortonEncoder, SpatialHashBuilder
