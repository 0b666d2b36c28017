"""Fingerprint-keyed artifact cache with single-flight computation.

Entries are plain files in one directory::

    <fingerprint>.meta      metadata (format, creation time, options)
    <fingerprint>.gv        DOT description
    <fingerprint>.<format>  rendered image, when one was produced

There is no eviction; the directory grows until :meth:`ArtifactCache.clear`
is called or an operator empties it.  I/O problems never fail a request:
a broken or unreadable entry is logged and treated as a miss.
"""

from __future__ import annotations

import json
import os
import pathlib
import re
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

logger = structlog.get_logger(__name__)

_FINGERPRINT_RE = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$")


@dataclass(frozen=True)
class Artifact:
    """The product of one pipeline run.

    Attributes:
        fingerprint: Cache key the artifact was computed for.
        description: DOT source bytes.
        image: Rendered image bytes, ``None`` when the format is DOT itself.
        format: Output format requested.
        created_at: Unix timestamp of the computation.
        options: Serialized options snapshot used for the run.
    """

    fingerprint: str
    description: bytes
    image: Optional[bytes]
    format: str
    created_at: float
    options: str = ""

    @property
    def content(self) -> bytes:
        """The bytes a viewer should show: the image, or the DOT text."""
        return self.image if self.image is not None else self.description


class ArtifactCache:
    """Directory-backed cache guaranteeing one computation per fingerprint.

    Args:
        directory: Where entries are stored.  ``None`` disables storage;
            single-flight deduplication still applies.
    """

    def __init__(self, directory: str | pathlib.Path | None = None) -> None:
        self.directory = pathlib.Path(directory) if directory else None
        self._lock = threading.Lock()
        self._inflight: dict[str, Future] = {}

    @property
    def enabled(self) -> bool:
        return self.directory is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_or_compute(
        self,
        fingerprint: str,
        compute: Callable[[], Artifact],
        force_refresh: bool = False,
        options: Optional[str] = None,
    ) -> Artifact:
        """Return the artifact for *fingerprint*, computing it if needed.

        Concurrent callers asking for the same fingerprint share a single
        in-flight computation: the first one runs *compute*, the others
        block until it finishes and receive its result or its exception.

        Args:
            fingerprint: Cache key.
            compute: Produces the artifact on a miss.
            force_refresh: Skip the stored entry and recompute.
            options: Serialized options the caller expects; a stored entry
                recorded with different options is treated as a miss.

        Returns:
            The cached or freshly computed :class:`Artifact`.
        """
        if not _FINGERPRINT_RE.match(fingerprint):
            raise ValueError(f"invalid fingerprint: {fingerprint!r}")

        with self._lock:
            flight = self._inflight.get(fingerprint)
            leader = flight is None
            if leader:
                flight = Future()
                self._inflight[fingerprint] = flight

        if not leader:
            logger.debug("cache_wait_inflight", fingerprint=fingerprint)
            return flight.result()

        try:
            artifact = None
            if self.enabled and not force_refresh:
                artifact = self._read(fingerprint, options)
            if artifact is not None:
                logger.info("cache_hit", fingerprint=fingerprint)
            else:
                logger.info("cache_miss", fingerprint=fingerprint, forced=force_refresh)
                artifact = compute()
                if self.enabled:
                    self._write(artifact)
            flight.set_result(artifact)
            return artifact
        except BaseException as exc:
            flight.set_exception(exc)
            raise
        finally:
            with self._lock:
                del self._inflight[fingerprint]

    def clear(self) -> int:
        """Delete every stored entry and return the number of entries removed."""
        if not self.enabled or not self.directory.is_dir():
            return 0
        removed = 0
        for meta_path in sorted(self.directory.glob("*.meta")):
            fingerprint = meta_path.stem
            for path in list(self.directory.glob(f"{fingerprint}.*")):
                try:
                    path.unlink()
                except OSError:
                    logger.warning("cache_unlink_failed", path=str(path))
            removed += 1
        logger.info("cache_cleared", directory=str(self.directory), entries=removed)
        return removed

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _paths(self, fingerprint: str, fmt: str) -> tuple[pathlib.Path, pathlib.Path, pathlib.Path]:
        assert self.directory is not None
        return (
            self.directory / f"{fingerprint}.meta",
            self.directory / f"{fingerprint}.gv",
            self.directory / f"{fingerprint}.{fmt}",
        )

    def _read(self, fingerprint: str, options: Optional[str]) -> Optional[Artifact]:
        assert self.directory is not None
        meta_path = self.directory / f"{fingerprint}.meta"
        try:
            if not meta_path.is_file():
                return None
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
            fmt = meta["format"]
            _, dot_path, image_path = self._paths(fingerprint, fmt)
            description = dot_path.read_bytes()
            image = image_path.read_bytes() if meta.get("image") else None
        except (OSError, ValueError, KeyError, TypeError):
            logger.warning("cache_read_failed", fingerprint=fingerprint, exc_info=True)
            return None

        stored_options = meta.get("options", "")
        if options is not None and stored_options != options:
            logger.warning("cache_options_mismatch", fingerprint=fingerprint)
            return None

        return Artifact(
            fingerprint=fingerprint,
            description=description,
            image=image,
            format=fmt,
            created_at=float(meta.get("created_at", 0.0)),
            options=stored_options,
        )

    def _write(self, artifact: Artifact) -> None:
        assert self.directory is not None
        meta_path, dot_path, image_path = self._paths(artifact.fingerprint, artifact.format)
        meta = {
            "fingerprint": artifact.fingerprint,
            "format": artifact.format,
            "created_at": artifact.created_at,
            "options": artifact.options,
            "image": artifact.image is not None,
        }
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            atomic_write(dot_path, artifact.description)
            if artifact.image is not None:
                atomic_write(image_path, artifact.image)
            # metadata last: an entry only exists once its payload does
            atomic_write(meta_path, json.dumps(meta, sort_keys=True).encode("utf-8"))
        except OSError:
            logger.warning("cache_write_failed", fingerprint=artifact.fingerprint, exc_info=True)
            return
        logger.debug("cache_stored", fingerprint=artifact.fingerprint, directory=str(self.directory))


def atomic_write(path: pathlib.Path, data: bytes) -> None:
    """Write *data* to *path* through a temporary sibling and ``os.replace``.

    Readers see either the old content or the new one, never a partial file.
    """
    tmp = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.{time.monotonic_ns()}")
    tmp.write_bytes(data)
    os.replace(tmp, path)
