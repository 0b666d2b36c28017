"""Node and edge filtering driven by :class:`~callvis.models.options.Options`.

Rules are applied per node in a fixed precedence order:

0. test code, unless ``include_tests``
1. ``include`` prefixes (when given, anything outside them is dropped)
2. ``ignore`` prefixes
3. ``limit`` prefixes (when given, anything outside them is dropped)
4. ``nostd``: standard-library packages
5. ``nointer``: unexported functions, except the focus nodes and the
   callees reachable from them within ``focus_depth`` hops; compiler
   generated (synthetic) wrappers are hidden too unless they are in focus

An edge survives only when both of its endpoints do.  The focus itself
never removes anything; it marks the nodes the renderer highlights.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Optional

import structlog

from callvis.errors import FocusNotFound
from callvis.graph.model import Edge, GraphModel, Node
from callvis.models.options import Options

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FilteredGraph:
    """Nodes and edges that survived filtering.

    Attributes:
        graph: The unfiltered graph, for package lookups.
        nodes: Surviving nodes ordered by id.
        edges: Surviving edges ordered by (caller, callee).
        focus: Ids of surviving focus nodes.
    """

    graph: GraphModel
    nodes: tuple[Node, ...]
    edges: tuple[Edge, ...]
    focus: frozenset[str] = frozenset()

    def node_ids(self) -> frozenset[str]:
        return frozenset(node.id for node in self.nodes)


def resolve_focus(graph: GraphModel, focus: str) -> frozenset[str]:
    """Return the ids of the nodes named by *focus*.

    *focus* is tried as an exact node id, then as a package import path,
    then as a package name, then as a function name.  The first kind that
    matches wins.

    Raises:
        FocusNotFound: If *focus* is non-empty and matches nothing.
    """
    if not focus:
        return frozenset()
    if focus in graph:
        return frozenset({focus})

    if graph.package(focus) is not None:
        return frozenset(node.id for node in graph.nodes() if node.package == focus)

    by_name = {pkg.path for pkg in graph.packages() if pkg.name == focus}
    if by_name:
        return frozenset(node.id for node in graph.nodes() if node.package in by_name)

    by_func = frozenset(node.id for node in graph.nodes() if node.name == focus)
    if by_func:
        return by_func

    raise FocusNotFound(focus)


def _has_prefix(path: str, prefixes: tuple[str, ...]) -> bool:
    return any(path.startswith(prefix) for prefix in prefixes)


def _drop_reason(node: Node, graph: GraphModel, options: Options) -> Optional[str]:
    """Return the first rule that removes *node*, or ``None`` if it stays."""
    if node.test and not options.include_tests:
        return "tests"
    if options.include and not _has_prefix(node.package, options.include):
        return "include"
    if options.ignore and _has_prefix(node.package, options.ignore):
        return "ignore"
    if options.limit and not _has_prefix(node.package, options.limit):
        return "limit"
    if options.nostd:
        pkg = graph.package(node.package)
        if pkg is not None and pkg.std:
            return "nostd"
    return None


def _reachable(
    graph: GraphModel,
    roots: frozenset[str],
    allowed: set[str],
    depth: int,
) -> set[str]:
    """Breadth-first walk from *roots* over *allowed* nodes.

    *depth* bounds the number of call hops; a negative depth is unbounded.
    """
    seen = set(roots)
    frontier = sorted(roots)
    hops = 0
    while frontier and (depth < 0 or hops < depth):
        next_frontier = []
        for node_id in frontier:
            for callee in graph.callees(node_id):
                if callee in allowed and callee not in seen:
                    seen.add(callee)
                    next_frontier.append(callee)
        frontier = next_frontier
        hops += 1
    return seen


def apply(graph: GraphModel, options: Options) -> FilteredGraph:
    """Filter *graph* according to *options*.

    Pure: the same graph and options always yield an equal result.

    Raises:
        FocusNotFound: If ``options.focus`` names nothing in *graph*.
    """
    focus = resolve_focus(graph, options.focus)

    dropped: Counter[str] = Counter()
    survivors: dict[str, Node] = {}
    for node in graph.nodes():
        reason = _drop_reason(node, graph, options)
        if reason is None:
            survivors[node.id] = node
        else:
            dropped[reason] += 1

    if options.nointer:
        retained = _reachable(
            graph,
            frozenset(focus & survivors.keys()),
            set(survivors),
            options.focus_depth,
        )
        for node_id, node in list(survivors.items()):
            if node.synthetic and node_id not in focus:
                del survivors[node_id]
                dropped["synthetic"] += 1
            elif not node.exported and node_id not in retained:
                del survivors[node_id]
                dropped["nointer"] += 1

    edges = tuple(
        edge
        for edge in graph.edges()
        if edge.caller in survivors and edge.callee in survivors
    )

    logger.debug(
        "graph_filtered",
        kept_nodes=len(survivors),
        kept_edges=len(edges),
        dropped=dict(dropped),
    )
    return FilteredGraph(
        graph=graph,
        nodes=tuple(survivors[node_id] for node_id in sorted(survivors)),
        edges=edges,
        focus=frozenset(focus & survivors.keys()),
    )
