"""Boundary to the external analysis tool that produces the raw call graph.

Call resolution is not done here.  An analysis tool writes a JSON document
matching :class:`~callvis.models.graph.RawCallGraph`; this module reads and
validates it and builds the :class:`~callvis.graph.model.GraphModel` that
every pipeline run starts from.
"""

from __future__ import annotations

import pathlib
from typing import Protocol

import structlog
from pydantic import ValidationError

from callvis.errors import AnalysisUnavailable
from callvis.graph.model import GraphModel
from callvis.models.graph import RawCallGraph

logger = structlog.get_logger(__name__)


class CallGraphSource(Protocol):
    """Anything that can supply a raw call graph."""

    def load(self) -> RawCallGraph: ...


class JsonCallGraphSource:
    """Reads a raw call graph from a JSON file.

    Args:
        path: Path to the JSON document written by the analysis tool.
    """

    def __init__(self, path: str | pathlib.Path) -> None:
        self.path = pathlib.Path(path)

    def load(self) -> RawCallGraph:
        """Read and validate the document.

        Raises:
            AnalysisUnavailable: If the file is missing, unreadable, or does
                not match the schema.
        """
        path = self.path.resolve()
        if not path.is_file():
            raise AnalysisUnavailable(f"call graph file not found: {path}")
        try:
            raw = RawCallGraph.model_validate_json(path.read_bytes())
        except OSError as exc:
            raise AnalysisUnavailable(f"cannot read call graph {path}: {exc}") from exc
        except ValidationError as exc:
            raise AnalysisUnavailable(f"invalid call graph {path}: {exc}") from exc

        logger.info(
            "call_graph_loaded",
            path=str(path),
            packages=len(raw.packages),
            functions=len(raw.functions),
            calls=len(raw.calls),
        )
        return raw


def load_graph(source: CallGraphSource, entry_package: str, tests: bool = False) -> GraphModel:
    """Load the raw graph from *source* and build the model for *entry_package*.

    Raises:
        AnalysisUnavailable: If the graph cannot be loaded or the entry
            package cannot be resolved.
    """
    logger.info("analysis_started", entry=entry_package, tests=tests)
    return GraphModel.build(source.load(), entry_package, tests=tests)
