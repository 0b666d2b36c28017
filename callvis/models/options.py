"""Pipeline options: the flat record of every switch that shapes the output.

An :class:`Options` instance is immutable; it is the snapshot a single
pipeline run works from.  The mutable, process-wide current value lives in
:class:`callvis.core.options_store.OptionsStore`.
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator

GROUP_KEYS: tuple[str, ...] = ("pkg", "type")

_FORMAT_RE = re.compile(r"^[a-z0-9]+(:[a-z0-9]+)*$")


def split_list(value: object) -> object:
    """Turn a comma-separated string into a tuple of non-empty items."""
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(item.strip() for item in value.split(",") if item.strip())
    return value


class Options(BaseModel):
    """Snapshot of all options consumed by Filter, Grouper and Renderer.

    Attributes:
        focus: Node id, package path, package name or function name to
            highlight.  Empty (or ``"all"``) disables focus.
        focus_depth: How many call hops below the focus keep unexported
            callees alive under ``nointer``; negative means unlimited.
        group: Grouping keys, ``"pkg"``, ``"type"``, both (comma separated)
            or empty for no clusters.
        limit: Keep only packages whose path starts with one of these.
        ignore: Drop packages whose path starts with one of these.
        include: Keep only packages whose path starts with one of these
            (checked before ``ignore``).
        nostd: Drop standard-library packages.
        nointer: Drop unexported functions.
        include_tests: Keep functions declared in test code.
        minlen: Minimum edge length.
        nodesep: Minimum space between adjacent nodes of one rank.
        nodeshape: Graphviz node shape.
        nodestyle: Graphviz node style.
        rankdir: Layout direction.
        format: Output format handed to ``dot -T``.
    """

    focus: str = Field("main", description="Focus target.")
    focus_depth: int = Field(1, description="Call hops retained below the focus under nointer.")
    group: str = Field("pkg", description="Grouping keys: pkg, type.")
    limit: tuple[str, ...] = Field((), description="Package path prefixes to limit to.")
    ignore: tuple[str, ...] = Field((), description="Package path prefixes to ignore.")
    include: tuple[str, ...] = Field((), description="Package path prefixes to include.")
    nostd: bool = Field(True, description="Omit standard-library packages.")
    nointer: bool = Field(True, description="Omit unexported functions.")
    include_tests: bool = Field(False, description="Include test code.")

    # Graphviz style
    minlen: int = Field(2, ge=1, description="Minimum edge length.")
    nodesep: float = Field(0.35, ge=0, description="Minimum node separation.")
    nodeshape: str = Field("box", min_length=1, description="Node shape.")
    nodestyle: str = Field("filled,rounded", description="Node style.")
    rankdir: Literal["LR", "RL", "TB", "BT"] = Field("LR", description="Layout direction.")
    format: str = Field("svg", description="Output format.")

    model_config = {"frozen": True, "extra": "ignore"}

    @field_validator("limit", "ignore", "include", mode="before")
    @classmethod
    def _split_prefixes(cls, value: object) -> object:
        return split_list(value)

    @field_validator("focus", mode="before")
    @classmethod
    def _normalize_focus(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip()
            if value == "all":
                return ""
        return value

    @field_validator("group", mode="before")
    @classmethod
    def _normalize_group(cls, value: object) -> object:
        if value is None:
            return ""
        if not isinstance(value, str):
            return value
        keys = set(split_list(value))
        keys.discard("none")
        unknown = keys - set(GROUP_KEYS)
        if unknown:
            raise ValueError(f"unknown group key(s): {', '.join(sorted(unknown))}")
        # canonical order keeps equal groupings equal
        return ",".join(key for key in GROUP_KEYS if key in keys)

    @field_validator("rankdir", mode="before")
    @classmethod
    def _upper_rankdir(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value

    @field_validator("format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        value = value.lower()
        if not _FORMAT_RE.match(value):
            raise ValueError(f"invalid output format: {value!r}")
        return value
