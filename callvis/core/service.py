"""Live re-render control loop shared by the HTTP routes and the CLI.

:class:`ControlService` owns the analysed graph, the options store, the
artifact cache and the converter.  A render is split in two steps so the
HTTP layer can answer before the work is done:

1. :meth:`ControlService.trigger` applies overrides, takes the snapshot,
   checks the focus and records a pending job (fast, on the request).
2. :meth:`ControlService.run` executes the pipeline for that job (slow, on
   a worker thread).  Failures are recorded on the job and logged; they
   never propagate into the control loop.
"""

from __future__ import annotations

import dataclasses
import enum
import pathlib
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import structlog

from callvis.core.cache import Artifact, ArtifactCache
from callvis.core.options_store import OptionsStore, merge
from callvis.core.pipeline import fingerprint, run_pipeline, write_artifact
from callvis.errors import CallvisError
from callvis.graph.filter import resolve_focus
from callvis.graph.model import GraphModel
from callvis.models.options import Options
from callvis.render.converter import ImageConverter

logger = structlog.get_logger(__name__)


class JobState(str, enum.Enum):
    """Lifecycle of a render job."""

    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RenderJob:
    """One triggered render.

    Attributes:
        fingerprint: Cache key of the job's options.
        options: Snapshot the job runs with.
        state: Current lifecycle state.
        artifact: Result once ``DONE``.
        error: Failure message once ``FAILED``.
        error_type: Exception class name of the failure.
        started_at: Unix timestamp of the trigger.
    """

    fingerprint: str
    options: Options
    state: JobState = JobState.PENDING
    artifact: Optional[Artifact] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    started_at: float = field(default_factory=time.time)


class ControlService:
    """Option exchange and render triggering over one analysed graph.

    Args:
        graph: The call graph built at startup.
        store: Mutable current options.
        cache: Artifact cache (single-flight per fingerprint).
        converter: DOT to image converter.
        output: Optional base path; a successful run of the latest job
            also writes ``<output>.gv`` and ``<output>.<format>`` there.
    """

    def __init__(
        self,
        graph: GraphModel,
        store: OptionsStore,
        cache: ArtifactCache,
        converter: ImageConverter,
        output: str | pathlib.Path | None = None,
    ) -> None:
        self.graph = graph
        self.store = store
        self.cache = cache
        self.converter = converter
        self.output = pathlib.Path(output) if output else None
        self._lock = threading.Lock()
        self._output_lock = threading.Lock()
        self._latest: Optional[RenderJob] = None

    # ------------------------------------------------------------------
    # Option exchange
    # ------------------------------------------------------------------

    def exchange_options(self, payload: Optional[str] = None) -> bytes:
        """Merge *payload* (serialized overrides) if given; return the current options.

        Raises:
            OptionsError: If *payload* is malformed or holds invalid values.
        """
        if payload:
            self.store.update(payload)
        return self.store.serialize()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def trigger(self, params: Optional[Mapping[str, Any]] = None) -> RenderJob:
        """Apply *params* as overrides and register a pending job.

        Raises:
            OptionsError: If a recognized parameter is invalid.
            FocusNotFound: If the focus target is not in the graph.
        """
        params = params or {}
        # An unknown focus must not reach the store.
        resolve_focus(self.graph, merge(self.store.snapshot(), params).focus)
        snapshot = self.store.apply_overrides(params)

        job = RenderJob(fingerprint=fingerprint(self.graph, snapshot), options=snapshot)
        with self._lock:
            self._latest = job
        logger.info("render_triggered", fingerprint=job.fingerprint, focus=snapshot.focus)
        return job

    def run(self, job: RenderJob, refresh: bool = False) -> Optional[Artifact]:
        """Execute the pipeline for *job* and record the outcome on it.

        Never raises; a failure is logged and stored on the job.

        Returns:
            The artifact, or ``None`` if the run failed.
        """
        log = logger.bind(fingerprint=job.fingerprint)
        try:
            artifact = run_pipeline(
                self.graph,
                job.options,
                self.cache,
                self.converter,
                force_refresh=refresh,
            )
        except CallvisError as exc:
            log.error("render_failed", error=str(exc), error_type=type(exc).__name__)
            self._finish(job, JobState.FAILED, error=exc)
            return None
        except Exception as exc:
            log.exception("render_crashed")
            self._finish(job, JobState.FAILED, error=exc)
            return None

        if self.output is not None:
            self._export(job, artifact, log)

        self._finish(job, JobState.DONE, artifact=artifact)
        return artifact

    def render_now(self, params: Optional[Mapping[str, Any]] = None, refresh: bool = False) -> RenderJob:
        """Trigger and run a job synchronously; used for the startup render.

        Raises:
            OptionsError: If a recognized parameter is invalid.
            FocusNotFound: If the focus target is not in the graph.
        """
        job = self.trigger(params)
        self.run(job, refresh=refresh)
        return job

    def latest(self) -> Optional[RenderJob]:
        """Return a copy of the most recently triggered job, if any."""
        with self._lock:
            if self._latest is None:
                return None
            return dataclasses.replace(self._latest)

    def _finish(
        self,
        job: RenderJob,
        state: JobState,
        artifact: Optional[Artifact] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        with self._lock:
            job.state = state
            job.artifact = artifact
            if error is not None:
                job.error = str(error)
                job.error_type = type(error).__name__

    def _export(self, job: RenderJob, artifact: Artifact, log) -> None:
        """Write *artifact* to the output path if *job* is still the latest.

        Exports are serialized, so the files on disk always belong to one
        run, and a slow superseded job never overwrites a newer result.
        """
        with self._output_lock:
            with self._lock:
                superseded = self._latest is not job
            if superseded:
                log.debug("artifact_export_skipped", reason="superseded")
                return
            try:
                write_artifact(artifact, self.output)
            except OSError:
                log.warning("artifact_write_failed", output=str(self.output), exc_info=True)
