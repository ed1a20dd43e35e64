# Neighbor iteration protocol
#
# Walks the 3x3x3 block of cells around the particle in Morton sorted
# order. Offsets leaving the grid are skipped, never wrapped. A shared
# counter caps the number of neighbors visited at grid.max_neighbors
# (0 means no cap), once reached both loops stop.

from particle_forge.compiler.fragment import INDENT, render

# Identifiers bound inside the loop body
NEIGHBOR_IDENTIFIERS = (
    "other",
    "other_index",
    "neighbor_pos",
    "neighbor_vel",
    "neighbor_dist",
    "neighbor_dir",
)

# Distances below this give a zero neighbor_dir
DIRECTION_EPSILON = "0.0001"

NEIGHBOR_STENCIL_SIZE = 27


def neighbor_offset(o: int):
    """
    Cell offset visited at step o of the stencil
    """
    return (o % 3 - 1, (o // 3) % 3 - 1, o // 9 - 1)


def render_neighbor_loop(loop, depth: int, position: str, velocity: str) -> list:
    """
    Render a NeighborLoop node. position and velocity are the particle
    member names of the schema's position and velocity fields.
    """
    l = loop.prefix
    pad = INDENT * depth
    pad1 = pad + INDENT
    pad2 = pad1 + INDENT
    pad3 = pad2 + INDENT

    lines = []
    lines.extend(render(loop.setup, depth, lambda n, d: render_neighbor_loop(n, d, position, velocity)))

    cap = "grid.max_neighbors > 0 and {l}seen >= grid.max_neighbors".format(l=l)
    lines.extend([
        pad + "{l}cell = pos_to_cell(p.{pos}, grid.cell_size, grid.grid_resolution)".format(l=l, pos=position),
        pad + "{l}seen = int(0)".format(l=l),
        pad + "for {l}o in range({n}):".format(l=l, n=NEIGHBOR_STENCIL_SIZE),
        pad1 + "if {}:".format(cap),
        pad2 + "break",
        pad1 + "{l}x = {l}cell[0] + {l}o % 3 - 1".format(l=l),
        pad1 + "{l}y = {l}cell[1] + ({l}o // 3) % 3 - 1".format(l=l),
        pad1 + "{l}z = {l}cell[2] + {l}o // 9 - 1".format(l=l),
        pad1 + "if {l}x < 0 or {l}x >= grid.grid_resolution:".format(l=l),
        pad2 + "continue",
        pad1 + "if {l}y < 0 or {l}y >= grid.grid_resolution:".format(l=l),
        pad2 + "continue",
        pad1 + "if {l}z < 0 or {l}z >= grid.grid_resolution:".format(l=l),
        pad2 + "continue",
        pad1 + "{l}code = morton_encode({l}x, {l}y, {l}z)".format(l=l),
        pad1 + "for {l}j in range(grid.cell_start[{l}code], grid.cell_end[{l}code]):".format(l=l),
        pad2 + "if {}:".format(cap),
        pad3 + "break",
        pad2 + "other_index = grid.sorted_indices[{l}j]".format(l=l),
        pad2 + "if other_index == tid:",
        pad3 + "continue",
        pad2 + "other = particles_in[other_index]",
        pad2 + "if other.alive == wp.uint32(0):",
        pad3 + "continue",
        pad2 + "{l}seen = {l}seen + 1".format(l=l),
        pad2 + "neighbor_pos = other.{}".format(position),
        pad2 + "neighbor_vel = other.{}".format(velocity),
        pad2 + "neighbor_diff = p.{} - neighbor_pos".format(position),
        pad2 + "neighbor_dist = wp.length(neighbor_diff)",
        pad2 + "neighbor_dir = wp.vec3(0.0, 0.0, 0.0)",
        pad2 + "if neighbor_dist > {}:".format(DIRECTION_EPSILON),
        pad3 + "neighbor_dir = neighbor_diff / neighbor_dist",
    ])

    body = render(loop.body, depth + 2, lambda n, d: render_neighbor_loop(n, d, position, velocity))
    lines.extend(body)

    lines.extend(render(loop.finish, depth, lambda n, d: render_neighbor_loop(n, d, position, velocity)))
    return lines
