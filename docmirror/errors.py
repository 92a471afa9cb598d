"""
Exceptions and error logging for docmirror.

Integrity errors stop a refresh; everything else is collected by
``docmirror.diagnostics`` and reported after the operation finishes.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class MirrorError(Exception):
    """Base class for docmirror errors."""


class DuplicateItemError(MirrorError):
    """A store population contained the same id more than once.

    Attributes:
        duplicates: id -> titles of every item that claimed the id
    """

    def __init__(self, duplicates: dict[str, list[str]]):
        self.duplicates = duplicates
        lines = [
            f"  {item_id}: " + ", ".join(repr(t) for t in titles)
            for item_id, titles in duplicates.items()
        ]
        super().__init__(
            f"Duplicate item ids ({len(duplicates)}), refresh aborted:\n"
            + "\n".join(lines)
        )


class RefreshInProgressError(MirrorError):
    """A refresh was requested while another one is still running."""


class ItemNotFoundError(MirrorError, KeyError):
    """The requested id is not in the current item store."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class FetchError(MirrorError):
    """A content fetch collaborator could not produce content."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting DOCMIRROR_STORE_PATH."""
    store = os.environ.get("DOCMIRROR_STORE_PATH")
    if store:
        return Path(store) / "docmirror-errors.log"
    return Path.home() / ".docmirror" / "docmirror-errors.log"


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
            f.write("\n")
            f.write("".join(traceback.format_exception(exc)))
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path
