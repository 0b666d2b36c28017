"""Pydantic v2 models for the raw call graph and pipeline options."""

from callvis.models.graph import (
    RawCall,
    RawCallGraph,
    RawFunction,
    RawPackage,
)
from callvis.models.options import Options

__all__ = [
    "RawPackage",
    "RawFunction",
    "RawCall",
    "RawCallGraph",
    "Options",
]
