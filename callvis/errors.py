"""Exception hierarchy shared by every pipeline stage.

Stage-local, deterministic failures (bad options, unknown focus) are meant
to be reported to the immediate caller.  Infrastructure failures (missing
analysis input, the external ``dot`` process) are logged with full context
and either end a batch run or fail the current request.
"""

from __future__ import annotations


class CallvisError(Exception):
    """Base class for all callvis errors."""


class AnalysisUnavailable(CallvisError):
    """The raw call graph could not be loaded or does not contain the entry package.

    Fatal for the run: without a graph there is nothing to render.
    """


class FocusNotFound(CallvisError):
    """The requested focus target matches no node or package in the graph."""

    def __init__(self, focus: str) -> None:
        super().__init__(f"focus target not found: {focus!r}")
        self.focus = focus


class OptionsError(CallvisError):
    """A recognized option carries a value that fails validation."""


class RendererUnavailable(CallvisError):
    """The external layout engine is not installed or cannot be executed."""


class RendererFailed(CallvisError):
    """The external layout engine exited non-zero or timed out.

    Attributes:
        stderr: Diagnostic output of the engine, verbatim.
    """

    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message if not stderr else f"{message}: {stderr}")
        self.stderr = stderr
