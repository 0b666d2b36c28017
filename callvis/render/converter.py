"""Conversion of DOT text to images through the Graphviz ``dot`` program.

This is the only stage that spawns a process.  Every invocation is bounded
by a timeout; a hung ``dot`` counts as a failure.
"""

from __future__ import annotations

import shutil
import subprocess
from typing import Protocol

import structlog

from callvis.errors import RendererFailed, RendererUnavailable

logger = structlog.get_logger(__name__)

# Formats that are the DOT text itself; no process is needed.
PASSTHROUGH_FORMATS: frozenset[str] = frozenset({"dot", "gv", "canon"})


class ImageConverter(Protocol):
    """Anything that turns a DOT description into image bytes."""

    def convert(self, description: str, fmt: str) -> bytes: ...


class DotConverter:
    """Run ``dot -T<fmt>`` on a description.

    Args:
        binary: Name or path of the ``dot`` executable.
        timeout: Seconds to wait before giving up on the process.
    """

    def __init__(self, binary: str = "dot", timeout: float = 30.0) -> None:
        self.binary = binary
        self.timeout = timeout

    def available(self) -> bool:
        """Return ``True`` if the ``dot`` executable can be found."""
        return shutil.which(self.binary) is not None

    def convert(self, description: str, fmt: str) -> bytes:
        """Render *description* into *fmt*.

        Args:
            description: DOT source text.
            fmt: Output format understood by ``dot -T`` (``svg``, ``png``...).

        Returns:
            The rendered image bytes.

        Raises:
            RendererUnavailable: If ``dot`` is not installed or not executable.
            RendererFailed: If ``dot`` exits non-zero or times out.
        """
        data = description.encode("utf-8")
        if fmt in PASSTHROUGH_FORMATS:
            return data

        executable = shutil.which(self.binary)
        if executable is None:
            raise RendererUnavailable(f"Graphviz executable not found: {self.binary}")

        cmd = [executable, f"-T{fmt}"]
        logger.debug("dot_started", cmd=cmd, input_bytes=len(data), timeout=self.timeout)
        try:
            result = subprocess.run(
                cmd,
                input=data,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            logger.error("dot_timeout", cmd=cmd, timeout=self.timeout)
            raise RendererFailed(f"dot timed out after {self.timeout}s") from exc
        except OSError as exc:
            raise RendererUnavailable(f"cannot execute {executable}: {exc}") from exc

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            logger.error("dot_failed", cmd=cmd, returncode=result.returncode, stderr=stderr)
            raise RendererFailed(f"dot exited with status {result.returncode}", stderr=stderr)

        logger.debug("dot_finished", fmt=fmt, output_bytes=len(result.stdout))
        return result.stdout
