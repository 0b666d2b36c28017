"""Process-wide, request-mutable pipeline options.

The store holds the current :class:`~callvis.models.options.Options` value
behind a lock.  Pipeline runs never read the store directly: they take a
:meth:`OptionsStore.snapshot` at the start and use it for their whole
duration, so later overrides cannot change a run in progress.
"""

from __future__ import annotations

import json
import threading
from typing import Any, Mapping, Optional

import structlog
from pydantic import ValidationError

from callvis.errors import OptionsError
from callvis.models.options import Options

logger = structlog.get_logger(__name__)

# Short query names accepted for compatibility with older viewer links.
ALIASES: dict[str, str] = {
    "f": "focus",
    "tests": "include_tests",
}


def canonical_json(options: Options) -> str:
    """Serialize *options* deterministically (sorted keys, no whitespace)."""
    return json.dumps(options.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))


def recognized_overrides(params: Mapping[str, Any]) -> dict[str, Any]:
    """Keep only the entries of *params* that name an option field."""
    overrides: dict[str, Any] = {}
    for key, value in params.items():
        name = ALIASES.get(key, key)
        if name in Options.model_fields:
            overrides[name] = value
    return overrides


def merge(base: Options, params: Mapping[str, Any]) -> Options:
    """Return *base* with the recognized entries of *params* applied.

    Raises:
        OptionsError: If a recognized value fails validation.
    """
    overrides = recognized_overrides(params)
    if not overrides:
        return base
    try:
        return Options.model_validate({**base.model_dump(), **overrides})
    except ValidationError as exc:
        raise OptionsError(_describe(exc)) from exc


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in exc.errors()
    )


class OptionsStore:
    """Thread-safe holder of the current options.

    Args:
        initial: Starting value, usually built from CLI flags.  It is also
            what :meth:`reset` goes back to.
    """

    def __init__(self, initial: Optional[Options] = None) -> None:
        self._lock = threading.Lock()
        self._defaults = initial or Options()
        self._current = self._defaults

    def snapshot(self) -> Options:
        """Return the current options; the value is immutable."""
        with self._lock:
            return self._current

    def serialize(self) -> bytes:
        """Return the current options as JSON bytes."""
        return self.snapshot().model_dump_json().encode("utf-8")

    @staticmethod
    def deserialize(data: bytes | str) -> Options:
        """Parse a complete options document produced by :meth:`serialize`.

        Unknown keys are ignored; missing keys take their defaults.

        Raises:
            OptionsError: If the document is not valid JSON or a value is invalid.
        """
        try:
            return Options.model_validate_json(data)
        except ValidationError as exc:
            raise OptionsError(_describe(exc)) from exc

    def apply_overrides(self, params: Mapping[str, Any]) -> Options:
        """Merge recognized keys of *params* into the store.

        Unrecognized keys are ignored.  Last writer wins.

        Returns:
            The new current options.

        Raises:
            OptionsError: If a recognized value fails validation; the store
                is left unchanged.
        """
        with self._lock:
            updated = merge(self._current, params)
            changed = updated != self._current
            self._current = updated
        if changed:
            logger.debug("options_updated", keys=sorted(recognized_overrides(params)))
        return updated

    def update(self, payload: bytes | str) -> Options:
        """Merge a serialized (JSON object) override into the store.

        Raises:
            OptionsError: If *payload* is not a JSON object or holds an
                invalid value.
        """
        try:
            params = json.loads(payload)
        except ValueError as exc:
            raise OptionsError(f"options payload is not valid JSON: {exc}") from exc
        if not isinstance(params, dict):
            raise OptionsError("options payload must be a JSON object")
        return self.apply_overrides(params)

    def reset(self, options: Optional[Options] = None) -> Options:
        """Replace the current options with *options* or the initial value."""
        with self._lock:
            self._current = options or self._defaults
            return self._current
