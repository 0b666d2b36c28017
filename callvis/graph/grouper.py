"""Partitioning of filtered nodes into visual clusters.

Grouping is a pure function of node attributes: no layout happens here.
Every surviving node ends up in exactly one place, either a (possibly
nested) :class:`Group` or the implicit default group of ungrouped nodes.
Groups and their members are sorted so the rendered text is stable.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterator

from callvis.graph.filter import FilteredGraph
from callvis.graph.model import Node


class GroupMode(str, enum.Enum):
    """Supported grouping modes, valued by their option spelling."""

    PACKAGE = "pkg"
    TYPE = "type"
    PACKAGE_TYPE = "pkg,type"
    NONE = ""

    @classmethod
    def parse(cls, value: str) -> GroupMode:
        """Parse a comma-separated option value such as ``"type,pkg"``."""
        keys = {item.strip() for item in value.split(",") if item.strip()}
        keys.discard("none")
        if keys == {"pkg"}:
            return cls.PACKAGE
        if keys == {"type"}:
            return cls.TYPE
        if keys == {"pkg", "type"}:
            return cls.PACKAGE_TYPE
        if not keys:
            return cls.NONE
        raise ValueError(f"unknown group mode: {value!r}")


@dataclass(frozen=True)
class Group:
    """A visual cluster.

    Attributes:
        key: Grouping key, unique among all groups.
        label: Text shown on the cluster boundary.
        kind: ``"package"`` or ``"type"``.
        nodes: Direct members, ordered by id.
        children: Nested clusters, ordered by key.
    """

    key: str
    label: str
    kind: str
    nodes: tuple[Node, ...] = ()
    children: tuple[Group, ...] = ()

    def walk(self) -> Iterator[Group]:
        """Yield this group and every nested group, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def members(self) -> Iterator[Node]:
        """Yield direct and nested members."""
        for group in self.walk():
            yield from group.nodes


@dataclass(frozen=True)
class GroupedGraph:
    """A filtered graph plus its cluster partition.

    Attributes:
        filtered: The filtered graph the partition was computed from.
        mode: Grouping mode used.
        groups: Top-level clusters ordered by key.
        ungrouped: Members of the implicit default group.
    """

    filtered: FilteredGraph
    mode: GroupMode
    groups: tuple[Group, ...] = ()
    ungrouped: tuple[Node, ...] = field(default=())

    def assignments(self) -> Iterator[tuple[str, Node]]:
        """Yield ``(group key, node)`` for every node; ``""`` is the default group."""
        for node in self.ungrouped:
            yield "", node
        for top in self.groups:
            for group in top.walk():
                for node in group.nodes:
                    yield group.key, node


def _type_key(node: Node) -> str:
    # "#" never occurs in an import path; keeps type keys apart from package keys
    return f"{node.package}#{node.receiver}"


def _bucket(nodes: tuple[Node, ...], key_fn) -> dict[str, list[Node]]:
    buckets: dict[str, list[Node]] = {}
    for node in nodes:
        buckets.setdefault(key_fn(node), []).append(node)
    return buckets


def _package_label(filtered: FilteredGraph, path: str) -> str:
    pkg = filtered.graph.package(path)
    if pkg is None or pkg.name == path.rsplit("/", 1)[-1]:
        return path
    return f"{pkg.name}\n{path}"


def group(filtered: FilteredGraph, mode: GroupMode | str) -> GroupedGraph:
    """Partition the nodes of *filtered* into clusters.

    Args:
        filtered: Output of :func:`callvis.graph.filter.apply`.
        mode: A :class:`GroupMode` or its option string.

    Returns:
        A :class:`GroupedGraph` whose groups partition ``filtered.nodes``.
    """
    if not isinstance(mode, GroupMode):
        mode = GroupMode.parse(mode)

    nodes = filtered.nodes
    if mode is GroupMode.NONE:
        return GroupedGraph(filtered=filtered, mode=mode, ungrouped=nodes)

    groups: list[Group] = []

    if mode is GroupMode.PACKAGE:
        for path, members in sorted(_bucket(nodes, lambda n: n.package).items()):
            groups.append(Group(path, _package_label(filtered, path), "package", tuple(members)))

    elif mode is GroupMode.TYPE:
        buckets = _bucket(nodes, lambda n: _type_key(n) if n.receiver else n.package)
        for key, members in sorted(buckets.items()):
            receiver = members[0].receiver
            if receiver:
                groups.append(Group(key, receiver, "type", tuple(members)))
            else:
                groups.append(Group(key, _package_label(filtered, key), "package", tuple(members)))

    else:
        for path, members in sorted(_bucket(nodes, lambda n: n.package).items()):
            plain = tuple(n for n in members if not n.receiver)
            typed = _bucket(tuple(n for n in members if n.receiver), _type_key)
            children = tuple(
                Group(key, typed_members[0].receiver or key, "type", tuple(typed_members))
                for key, typed_members in sorted(typed.items())
            )
            groups.append(Group(path, _package_label(filtered, path), "package", plain, children))

    return GroupedGraph(filtered=filtered, mode=mode, groups=tuple(groups))
