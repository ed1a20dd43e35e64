import warp as wp

@wp.func
def hsv_to_rgb(h: wp.float32, s: wp.float32, v: wp.float32):
    """
    Hue in [0, 1), saturation and value in [0, 1].
    """
    hh = (h - wp.floor(h)) * 6.0
    c = v * s
    x = c * (1.0 - wp.abs(wp.mod(hh, 2.0) - 1.0))
    m = v - c
    rgb = wp.vec3(0.0, 0.0, 0.0)
    if hh < 1.0:
        rgb = wp.vec3(c, x, 0.0)
    elif hh < 2.0:
        rgb = wp.vec3(x, c, 0.0)
    elif hh < 3.0:
        rgb = wp.vec3(0.0, c, x)
    elif hh < 4.0:
        rgb = wp.vec3(0.0, x, c)
    elif hh < 5.0:
        rgb = wp.vec3(x, 0.0, c)
    else:
        rgb = wp.vec3(c, 0.0, x)
    return rgb + wp.vec3(m, m, m)

@wp.func
def rgb_to_hsv(rgb: wp.vec3):
    r = rgb[0]
    g = rgb[1]
    b = rgb[2]
    c_max = wp.max(r, wp.max(g, b))
    c_min = wp.min(r, wp.min(g, b))
    delta = c_max - c_min

    # Hue
    h = float(0.0)
    if delta > 1.0e-6:
        if c_max == r:
            h = wp.mod((g - b) / delta, 6.0)
        elif c_max == g:
            h = (b - r) / delta + 2.0
        else:
            h = (r - g) / delta + 4.0
        h = h / 6.0
        if h < 0.0:
            h = h + 1.0

    # Saturation
    s = float(0.0)
    if c_max > 1.0e-6:
        s = delta / c_max
    return wp.vec3(h, s, c_max)

@wp.func
def mix_vec3(a: wp.vec3, b: wp.vec3, t: wp.float32):
    return a * (1.0 - t) + b * t

@wp.func
def palette(t: wp.float32, a: wp.vec3, b: wp.vec3, c: wp.vec3, d: wp.vec3):
    """
    Cosine palette a + b * cos(2 pi (c t + d)).
    """
    return wp.vec3(
        a[0] + b[0] * wp.cos(2.0 * wp.pi * (c[0] * t + d[0])),
        a[1] + b[1] * wp.cos(2.0 * wp.pi * (c[1] * t + d[1])),
        a[2] + b[2] * wp.cos(2.0 * wp.pi * (c[2] * t + d[2])),
    )
