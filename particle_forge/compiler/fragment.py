# Intermediate representation of the kernel body
#
# Rules lower to a list of nodes instead of raw text so each rule's output
# can be inspected on its own. Every node records the free identifiers it
# reads, which the generator uses to decide which auxiliary passes a kernel
# needs.

import ast
import builtins
import textwrap
from dataclasses import dataclass

INDENT = "    "

# Names resolved by Python or Warp rather than by the kernel scope
_KNOWN_GLOBALS = frozenset(dir(builtins)) | {"wp"}


def free_identifiers(source: str, mode: str = "exec") -> frozenset:
    """
    Names a snippet reads without defining them. Returns an empty set for
    snippets that do not parse, those are reported when the assembled
    kernel is compiled.
    """
    try:
        tree = ast.parse(source, mode=mode)
    except SyntaxError:
        return frozenset()
    loaded = set()
    stored = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Name):
            if isinstance(node.ctx, ast.Load):
                loaded.add(node.id)
            else:
                stored.add(node.id)
    return frozenset(loaded - stored - _KNOWN_GLOBALS)


def normalize(source: str) -> str:
    """
    Dedent a snippet and strip blank lines around it
    """
    return textwrap.dedent(source).strip("\n")


@dataclass(frozen=True)
class Statement:
    lines: tuple
    identifiers: frozenset = frozenset()


@dataclass(frozen=True)
class Comment:
    text: str


@dataclass(frozen=True)
class Branch:
    condition: str
    body: tuple
    orelse: tuple = ()
    identifiers: frozenset = frozenset()


@dataclass(frozen=True)
class NeighborLoop:
    """
    A neighbor query. setup runs before the loop, body once per visited
    neighbor with the neighbor identifiers bound, finish after the loop.
    """

    prefix: str
    setup: tuple = ()
    body: tuple = ()
    finish: tuple = ()


def statement(source: str) -> Statement:
    text = normalize(source)
    return Statement(tuple(text.splitlines()), free_identifiers(text))


def branch(condition: str, body, orelse=()) -> Branch:
    condition = condition.strip()
    return Branch(
        condition,
        tuple(body),
        tuple(orelse),
        free_identifiers(condition, mode="eval"),
    )


def identifiers(nodes) -> frozenset:
    """
    All free identifiers read by a node list, recursively
    """
    names = set()
    for node in nodes:
        if isinstance(node, Statement):
            names |= node.identifiers
        elif isinstance(node, Branch):
            names |= node.identifiers
            names |= identifiers(node.body)
            names |= identifiers(node.orelse)
        elif isinstance(node, NeighborLoop):
            names |= identifiers(node.setup)
            names |= identifiers(node.body)
            names |= identifiers(node.finish)
    return frozenset(names)


def neighbor_loops(nodes):
    """
    Yield every neighbor loop in a node list, recursively
    """
    for node in nodes:
        if isinstance(node, NeighborLoop):
            yield node
            yield from neighbor_loops(node.setup)
            yield from neighbor_loops(node.finish)
        elif isinstance(node, Branch):
            yield from neighbor_loops(node.body)
            yield from neighbor_loops(node.orelse)


def filter_neighbors(nodes, condition: str):
    """
    Wrap the body of every neighbor loop in a guard on the neighbor
    """
    filtered = []
    for node in nodes:
        if isinstance(node, NeighborLoop):
            node = NeighborLoop(
                node.prefix,
                node.setup,
                (branch(condition, node.body),),
                node.finish,
            )
        elif isinstance(node, Branch):
            node = Branch(
                node.condition,
                tuple(filter_neighbors(node.body, condition)),
                tuple(filter_neighbors(node.orelse, condition)),
                node.identifiers,
            )
        filtered.append(node)
    return filtered


def render(nodes, depth: int, render_loop) -> list:
    """
    Render nodes to source lines at the given indentation depth.
    render_loop renders NeighborLoop nodes.
    """
    lines = []
    pad = INDENT * depth
    for node in nodes:
        if isinstance(node, Statement):
            lines.extend(pad + line if line.strip() else "" for line in node.lines)
        elif isinstance(node, Comment):
            lines.append("")
            lines.append(pad + "# " + node.text)
        elif isinstance(node, Branch):
            lines.append("{}if {}:".format(pad, node.condition))
            body = render(node.body, depth + 1, render_loop)
            lines.extend(body if _has_code(body) else [pad + INDENT + "pass"])
            if node.orelse:
                lines.append(pad + "else:")
                orelse = render(node.orelse, depth + 1, render_loop)
                lines.extend(orelse if _has_code(orelse) else [pad + INDENT + "pass"])
        elif isinstance(node, NeighborLoop):
            lines.extend(render_loop(node, depth))
        else:
            raise TypeError("Unknown fragment node {!r}".format(node))
    return lines


def _has_code(lines) -> bool:
    return any(line.strip() and not line.strip().startswith("#") for line in lines)
