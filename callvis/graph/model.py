"""In-memory call graph built once per analysis run.

:class:`GraphModel` turns a validated :class:`~callvis.models.graph.RawCallGraph`
into frozen :class:`Node`, :class:`Edge` and :class:`Package` records,
collapsing repeated call sites into a single edge and checking that every
edge endpoint exists.  It is read-only after construction, so pipeline
runs on different threads can share one instance.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Iterator, Optional

import structlog

from callvis.errors import AnalysisUnavailable
from callvis.models.graph import RawCallGraph

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, order=True)
class Package:
    """A package of the analysed program, keyed by import path."""

    path: str
    name: str
    std: bool = False


@dataclass(frozen=True, order=True)
class Node:
    """A function in the call graph.

    Attributes:
        id: Fully-qualified signature.
        name: Short function name.
        package: Import path of the declaring package.
        receiver: Receiver type for methods, ``None`` for plain functions.
        exported: Whether the function is visible outside its package.
        synthetic: Compiler-generated function; hidden under ``nointer``.
        test: Declared in test code.
    """

    id: str
    name: str
    package: str
    receiver: Optional[str] = None
    exported: bool = True
    synthetic: bool = False
    test: bool = False


@dataclass(frozen=True, order=True)
class Edge:
    """A caller → callee relation with its collapsed call sites.

    Attributes:
        caller: Caller node id.
        callee: Callee node id.
        dynamic: At least one call site dispatches dynamically.
        sites: Number of call sites collapsed into this edge.
    """

    caller: str
    callee: str
    dynamic: bool = False
    sites: int = 1


def _default_package_name(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1]


def _is_exported(name: str) -> bool:
    return name[:1].isupper()


class GraphModel:
    """Typed, read-only call graph for one analysis run.

    Use :meth:`build` rather than the constructor; it validates the raw
    document and computes :attr:`run_id`.
    """

    def __init__(
        self,
        packages: dict[str, Package],
        nodes: dict[str, Node],
        edges: dict[tuple[str, str], Edge],
        entry_package: str,
        run_id: str,
    ) -> None:
        self._packages = packages
        self._nodes = nodes
        self._edges = edges
        self.entry_package = entry_package
        self.run_id = run_id

        self._callees: dict[str, list[str]] = {}
        for caller, callee in sorted(edges):
            self._callees.setdefault(caller, []).append(callee)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        raw: RawCallGraph,
        entry_package: str,
        tests: bool = False,
    ) -> GraphModel:
        """Build a graph from the collaborator's raw document.

        Args:
            raw: Validated raw call graph.
            entry_package: Import path of the program's entry package.
            tests: Allow a non-``main`` entry package (test mode).

        Returns:
            A fully indexed :class:`GraphModel`.

        Raises:
            AnalysisUnavailable: If the entry package is missing or not a
                ``main`` package outside test mode, if two functions share
                an id, or if a call references an unknown function.
        """
        packages: dict[str, Package] = {}
        for raw_pkg in raw.packages:
            packages[raw_pkg.path] = Package(
                path=raw_pkg.path,
                name=raw_pkg.name or _default_package_name(raw_pkg.path),
                std=raw_pkg.std,
            )

        nodes: dict[str, Node] = {}
        for fn in raw.functions:
            if fn.id in nodes:
                raise AnalysisUnavailable(f"duplicate function id in call graph: {fn.id}")
            if fn.package not in packages:
                packages[fn.package] = Package(path=fn.package, name=_default_package_name(fn.package))
            nodes[fn.id] = Node(
                id=fn.id,
                name=fn.name,
                package=fn.package,
                receiver=fn.receiver or None,
                exported=_is_exported(fn.name) if fn.exported is None else fn.exported,
                synthetic=fn.synthetic,
                test=fn.test,
            )

        entry = packages.get(entry_package)
        if entry is None:
            raise AnalysisUnavailable(f"package not found in call graph: {entry_package}")
        if entry.name != "main" and not tests:
            raise AnalysisUnavailable(
                f"package {entry_package} is not a main package (use tests mode to analyse it)"
            )

        edges: dict[tuple[str, str], Edge] = {}
        for call in raw.calls:
            for endpoint in (call.caller, call.callee):
                if endpoint not in nodes:
                    raise AnalysisUnavailable(f"call references unknown function: {endpoint}")
            key = (call.caller, call.callee)
            seen = edges.get(key)
            if seen is None:
                edges[key] = Edge(call.caller, call.callee, dynamic=call.dynamic)
            else:
                edges[key] = Edge(
                    call.caller,
                    call.callee,
                    dynamic=seen.dynamic or call.dynamic,
                    sites=seen.sites + 1,
                )

        run_id = cls._fingerprint_raw(raw, entry_package, tests)
        logger.info(
            "graph_built",
            entry=entry_package,
            packages=len(packages),
            nodes=len(nodes),
            edges=len(edges),
            call_sites=len(raw.calls),
        )
        return cls(packages, nodes, edges, entry_package, run_id)

    @staticmethod
    def _fingerprint_raw(raw: RawCallGraph, entry_package: str, tests: bool) -> str:
        payload = {
            "graph": raw.model_dump(mode="json"),
            "entry": entry_package,
            "tests": tests,
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    # ------------------------------------------------------------------
    # Read-only access
    # ------------------------------------------------------------------

    def nodes(self) -> Iterator[Node]:
        """Iterate over all nodes ordered by id."""
        for node_id in sorted(self._nodes):
            yield self._nodes[node_id]

    def edges(self) -> Iterator[Edge]:
        """Iterate over all collapsed edges ordered by (caller, callee)."""
        for key in sorted(self._edges):
            yield self._edges[key]

    def packages(self) -> Iterator[Package]:
        for path in sorted(self._packages):
            yield self._packages[path]

    def package(self, path: str) -> Optional[Package]:
        """Return the package with import path *path*, if any."""
        return self._packages.get(path)

    def node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def callees(self, node_id: str) -> list[str]:
        """Return the ids called by *node_id*, sorted."""
        return list(self._callees.get(node_id, ()))

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes
