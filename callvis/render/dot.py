"""DOT serialization of a grouped call graph.

The output is plain Graphviz DOT text.  Style options are emitted once as
global ``graph``/``node``/``edge`` directives; per-element attributes are
limited to labels, tooltips, the focus marker and dashed dynamic calls.
Every identifier is quoted and escaped, so any node id is safe.
"""

from __future__ import annotations

import re

from callvis.graph.grouper import Group, GroupedGraph, GroupMode
from callvis.graph.model import Edge, Node
from callvis.models.options import Options

_ESCAPE_RE = re.compile(r'[\\"\n]')
_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n"}

FOCUS_FILL = "lightblue"
NODE_FILL = "moccasin"
PACKAGE_FILL = "lightyellow"
STD_PACKAGE_FILL = "#E0FFE1"
TYPE_FILL = "lightsteelblue"

INDENT = "  "


def quote(value: object) -> str:
    """Return *value* as a quoted, escaped DOT string."""
    return '"' + _ESCAPE_RE.sub(lambda m: _ESCAPES[m.group()], str(value)) + '"'


def _attrs(**attrs: object) -> str:
    parts = [f"{name}={quote(value)}" for name, value in attrs.items() if value is not None]
    return "[" + " ".join(parts) + "]" if parts else ""


def _node_label(node: Node, mode: GroupMode) -> str:
    if node.receiver and mode not in (GroupMode.TYPE, GroupMode.PACKAGE_TYPE):
        return f"({node.receiver}).{node.name}"
    return node.name


def _node_line(node: Node, grouped: GroupedGraph, depth: int) -> str:
    focused = node.id in grouped.filtered.focus
    attrs = _attrs(
        label=_node_label(node, grouped.mode),
        tooltip=node.id,
        fillcolor=FOCUS_FILL if focused else None,
        penwidth="2.0" if focused else None,
    )
    return f"{INDENT * depth}{quote(node.id)} {attrs}".rstrip()


def _cluster_lines(group: Group, grouped: GroupedGraph, depth: int) -> list[str]:
    pad = INDENT * depth
    if group.kind == "type":
        fill = TYPE_FILL
    else:
        pkg = grouped.filtered.graph.package(group.key)
        fill = STD_PACKAGE_FILL if pkg is not None and pkg.std else PACKAGE_FILL

    lines = [f"{pad}subgraph {quote('cluster_' + group.key)} {{"]
    lines.append(f"{pad}{INDENT}graph {_attrs(label=group.label, style='filled,rounded', fillcolor=fill, tooltip=group.key)};")
    for node in group.nodes:
        lines.append(_node_line(node, grouped, depth + 1) + ";")
    for child in group.children:
        lines.extend(_cluster_lines(child, grouped, depth + 1))
    lines.append(f"{pad}}}")
    return lines


def _edge_line(edge: Edge) -> str:
    attrs = _attrs(
        style="dashed" if edge.dynamic else None,
        tooltip=f"{edge.sites} call sites" if edge.sites > 1 else None,
    )
    return f"{INDENT}{quote(edge.caller)} -> {quote(edge.callee)} {attrs}".rstrip() + ";"


def render(grouped: GroupedGraph, options: Options) -> str:
    """Serialize *grouped* as a DOT digraph styled by *options*.

    Args:
        grouped: Output of :func:`callvis.graph.grouper.group`.
        options: Snapshot providing ``rankdir``, ``nodesep``, ``minlen``,
            ``nodeshape`` and ``nodestyle``.

    Returns:
        DOT source text ending with a newline.
    """
    graph = grouped.filtered.graph
    lines = ["digraph callvis {"]
    lines.append(
        f"{INDENT}graph "
        + _attrs(
            label=graph.entry_package,
            labeljust="l",
            fontname="Arial",
            fontsize="14",
            rankdir=options.rankdir,
            nodesep=options.nodesep,
            pad="0.0",
        )
        + ";"
    )
    lines.append(
        f"{INDENT}node "
        + _attrs(
            shape=options.nodeshape,
            style=options.nodestyle,
            fillcolor=NODE_FILL,
            fontname="Verdana",
            penwidth="1.0",
            margin="0.05,0.0",
        )
        + ";"
    )
    lines.append(f"{INDENT}edge {_attrs(minlen=options.minlen)};")

    for node in grouped.ungrouped:
        lines.append(_node_line(node, grouped, 1) + ";")
    for group in grouped.groups:
        lines.extend(_cluster_lines(group, grouped, 1))
    for edge in grouped.filtered.edges:
        lines.append(_edge_line(edge))

    lines.append("}")
    return "\n".join(lines) + "\n"
