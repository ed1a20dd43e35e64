import warp as wp

NOISE_SEED = wp.constant(1337)

@wp.func
def hash_u32(x: wp.uint32):
    """
    Wang hash.
    """
    x = (x ^ wp.uint32(61)) ^ (x >> wp.uint32(16))
    x = x * wp.uint32(9)
    x = x ^ (x >> wp.uint32(4))
    x = x * wp.uint32(668265261)
    x = x ^ (x >> wp.uint32(15))
    return x

@wp.func
def hash_float(x: wp.uint32):
    """
    Hash to a float in [0, 1).
    """
    return wp.float32(hash_u32(x) & wp.uint32(0xFFFFFF)) / 16777216.0

@wp.func
def hash2(x: wp.uint32, y: wp.uint32):
    return hash_float(x ^ hash_u32(y))

@wp.func
def hash3(p: wp.vec3):
    """
    Hash a position to a float in [0, 1).
    """
    hx = hash_u32(wp.uint32(wp.int32(wp.floor(p[0] * 1000.0))))
    hy = hash_u32(hx ^ wp.uint32(wp.int32(wp.floor(p[1] * 1000.0))))
    return hash_float(hy ^ wp.uint32(wp.int32(wp.floor(p[2] * 1000.0))))

@wp.func
def noise3(p: wp.vec3):
    """
    Perlin noise in [-1, 1].
    """
    state = wp.rand_init(NOISE_SEED)
    return wp.noise(state, p)

@wp.func
def fbm3(p: wp.vec3, octaves: wp.int32):
    """
    Fractal sum of noise3, halving amplitude every octave.
    """
    value = float(0.0)
    amplitude = float(0.5)
    frequency = float(1.0)
    for o in range(octaves):
        value = value + amplitude * noise3(p * frequency)
        amplitude = amplitude * 0.5
        frequency = frequency * 2.0
    return value

@wp.func
def noise_vec3(p: wp.vec3):
    """
    Three decorrelated noise channels.
    """
    return wp.vec3(
        noise3(p),
        noise3(p + wp.vec3(31.416, 47.853, 12.679)),
        noise3(p + wp.vec3(-23.719, 71.193, -52.371)),
    )

@wp.func
def curl_noise3(p: wp.vec3):
    """
    Divergence free flow from the curl of a noise potential.
    """
    e = 0.01
    dx = wp.vec3(e, 0.0, 0.0)
    dy = wp.vec3(0.0, e, 0.0)
    dz = wp.vec3(0.0, 0.0, e)

    # Partial derivatives of the potential
    p_x0 = noise_vec3(p - dx)
    p_x1 = noise_vec3(p + dx)
    p_y0 = noise_vec3(p - dy)
    p_y1 = noise_vec3(p + dy)
    p_z0 = noise_vec3(p - dz)
    p_z1 = noise_vec3(p + dz)

    x = (p_y1[2] - p_y0[2]) - (p_z1[1] - p_z0[1])
    y = (p_z1[0] - p_z0[0]) - (p_x1[2] - p_x0[2])
    z = (p_x1[1] - p_x0[1]) - (p_y1[0] - p_y0[0])
    return wp.vec3(x, y, z) / (2.0 * e)

@wp.func
def random_unit_vec3(seed: wp.uint32):
    """
    Uniformly distributed direction hashed from a seed.
    """
    z = 2.0 * hash_float(seed) - 1.0
    phi = 2.0 * wp.pi * hash_float(hash_u32(seed + wp.uint32(1)))
    r = wp.sqrt(wp.max(1.0 - z * z, 0.0))
    return wp.vec3(r * wp.cos(phi), r * wp.sin(phi), z)
