"""
Errors raised by the daylog document layer, and error logging for the CLI.

None of these are retried internally. Each carries enough context (ids,
documents) for the caller to retry, merge by hand, or give up.

log_exception() keeps full stack traces in a file while the CLI shows
clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class DaylogError(Exception):
    """Base class for all daylog errors."""


# -----------------------------------------------------------------------------
# Store errors
# -----------------------------------------------------------------------------

class StoreError(DaylogError):
    """A failure reported by the document store."""

    reason = "error"

    def __init__(self, message: str, *, id: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.id = id
        if reason is not None:
            self.reason = reason


class StoreMissingError(StoreError):
    """No live document at the id. reason is 'missing' or 'deleted'."""

    reason = "missing"


class StoreConflictError(StoreError):
    """The write named a stale revision, or the id is already taken."""

    reason = "conflict"


# -----------------------------------------------------------------------------
# Document control errors
# -----------------------------------------------------------------------------

class IdError(DaylogError):
    """An id cannot be derived from the given content."""


class NoDocToUpdateError(DaylogError):
    def __init__(self, id: str):
        super().__init__(f"doc at id specified to update does not exist: {id}")
        self.id = id


class NoDocToDeleteError(DaylogError):
    def __init__(self, id: str):
        super().__init__(f"doc at id specified to delete does not exist: {id}")
        self.id = id


class UpdateDocError(DaylogError):
    """Stale revision, or a merge strategy the document variant can't use."""


class UpdateStrategyError(UpdateDocError):
    def __init__(self, strategy: str):
        super().__init__(f"unknown update strategy: {strategy!r}")
        self.strategy = strategy


class DocExistsError(DaylogError):
    """
    A write collided with a document that already exists.

    Attributes:
        payload: The document that could not be written
        existing: The document already stored at that id
    """

    def __init__(self, payload: dict[str, Any], existing: dict[str, Any]):
        super().__init__(f"document already exists: {existing.get('_id')}")
        self.payload = payload
        self.existing = existing


class NotFoundError(DaylogError):
    def __init__(self, quick_id: str):
        super().__init__(f"no document found for quick id {quick_id!r}")
        self.quick_id = quick_id


class AmbiguousError(DaylogError):
    """A quick id matched more than one document; type more characters."""

    def __init__(self, quick_id: str, candidates: list[str]):
        listed = ", ".join(candidates)
        super().__init__(f"quick id {quick_id!r} is ambiguous: {listed}")
        self.quick_id = quick_id
        self.candidates = candidates


# -----------------------------------------------------------------------------
# Error log
# -----------------------------------------------------------------------------

def _error_log_path() -> Path:
    """Resolve error log path, respecting DAYLOG_STORE_PATH."""
    store = os.environ.get("DAYLOG_STORE_PATH")
    if store:
        return Path(store) / "daylog-errors.log"
    return Path.home() / ".daylog" / "daylog-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write(f" {type(exc).__name__}")
            f.write("\n")
            f.write(traceback.format_exc())
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
