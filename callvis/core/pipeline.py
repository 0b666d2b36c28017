"""The build → filter → group → render → convert pipeline.

All stages before conversion are pure functions of the graph and an
options snapshot.  :func:`run_pipeline` wraps the whole chain in the
artifact cache, keyed by :func:`fingerprint`.
"""

from __future__ import annotations

import hashlib
import json
import pathlib
import time

import structlog

from callvis.core.cache import Artifact, ArtifactCache, atomic_write
from callvis.core.options_store import canonical_json
from callvis.graph import filter as graph_filter
from callvis.graph.grouper import group
from callvis.graph.model import GraphModel
from callvis.models.options import Options
from callvis.render.converter import PASSTHROUGH_FORMATS, ImageConverter
from callvis.render.dot import render

logger = structlog.get_logger(__name__)


def fingerprint(graph: GraphModel, options: Options) -> str:
    """Derive the cache key for running *options* against *graph*.

    Identical graph input and options always give the same digest.
    """
    payload = {"analysis": graph.run_id, "options": json.loads(canonical_json(options))}
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def build_description(graph: GraphModel, options: Options) -> str:
    """Filter, group and render *graph*; return the DOT text.

    Raises:
        FocusNotFound: If ``options.focus`` names nothing in *graph*.
    """
    filtered = graph_filter.apply(graph, options)
    grouped = group(filtered, options.group)
    return render(grouped, options)


def run_pipeline(
    graph: GraphModel,
    options: Options,
    cache: ArtifactCache,
    converter: ImageConverter,
    force_refresh: bool = False,
) -> Artifact:
    """Produce the artifact for *options*, reusing a cached one when possible.

    Args:
        graph: The analysed call graph.
        options: Immutable snapshot used for the whole run.
        cache: Artifact cache providing single-flight computation.
        converter: Turns DOT text into the requested image format.
        force_refresh: Ignore any stored artifact and recompute.

    Returns:
        The resulting :class:`Artifact`.

    Raises:
        FocusNotFound: If the focus target does not exist.
        RendererUnavailable: If the layout engine cannot be run.
        RendererFailed: If the layout engine fails or hangs.
    """
    key = fingerprint(graph, options)
    serialized = canonical_json(options)

    def _compute() -> Artifact:
        started = time.perf_counter()
        logger.info("pipeline_started", fingerprint=key, focus=options.focus, group=options.group)
        description = build_description(graph, options)
        image = None
        if options.format not in PASSTHROUGH_FORMATS:
            image = converter.convert(description, options.format)
        logger.info(
            "pipeline_finished",
            fingerprint=key,
            format=options.format,
            dot_bytes=len(description),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return Artifact(
            fingerprint=key,
            description=description.encode("utf-8"),
            image=image,
            format=options.format,
            created_at=time.time(),
            options=serialized,
        )

    return cache.get_or_compute(key, _compute, force_refresh=force_refresh, options=serialized)


def write_artifact(artifact: Artifact, base: str | pathlib.Path) -> list[pathlib.Path]:
    """Write ``<base>.gv`` and, when an image exists, ``<base>.<format>``.

    Returns:
        The paths written.
    """
    base = pathlib.Path(base)
    base.parent.mkdir(parents=True, exist_ok=True)
    dot_path = base.with_name(f"{base.name}.gv")
    atomic_write(dot_path, artifact.description)
    written = [dot_path]
    if artifact.image is not None:
        image_path = base.with_name(f"{base.name}.{artifact.format}")
        atomic_write(image_path, artifact.image)
        written.append(image_path)
    logger.info("artifact_written", paths=[str(p) for p in written])
    return written
