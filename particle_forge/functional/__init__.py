from particle_forge.functional.morton import (
    expand_bits,
    compact_bits,
    morton_encode,
    morton_decode,
    pos_to_cell,
    pos_to_morton,
)
from particle_forge.functional.noise import (
    hash_u32,
    hash_float,
    hash2,
    hash3,
    noise3,
    fbm3,
    noise_vec3,
    curl_noise3,
    random_unit_vec3,
)
from particle_forge.functional.color import hsv_to_rgb, rgb_to_hsv, mix_vec3, palette
from particle_forge.functional.field_sampling import (
    field_write,
    field_write_vec3,
    field_read,
    field_read_vec3,
    field_gradient,
)
from particle_forge.functional.spawning import spawn_push, claim_slot, spawn_seed
