"""
Collector for non-fatal anomalies.

Structural problems in the relation graph, content fetch failures and cache
I/O errors never interrupt an operation. They are logged as they happen and
recorded here so callers can report them in aggregate afterwards.
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# Diagnostic kinds
SELF_PARENT = "self_parent"
MUTUAL_CYCLE = "mutual_cycle"
DEEP_CYCLE = "deep_cycle"
FETCH_FAILED = "fetch_failed"
CACHE_IO = "cache_io"


@dataclass(frozen=True)
class Diagnostic:
    """A single recorded anomaly."""
    kind: str
    message: str
    item_ids: tuple[str, ...] = field(default_factory=tuple)


class Diagnostics:
    """Thread-safe list of anomalies, grouped by kind on demand."""

    def __init__(self):
        self._entries: list[Diagnostic] = []
        self._lock = threading.Lock()

    def report(self, kind: str, message: str, *item_ids: str) -> Diagnostic:
        entry = Diagnostic(kind=kind, message=message, item_ids=tuple(item_ids))
        with self._lock:
            self._entries.append(entry)
        logger.warning("%s: %s", kind, message)
        return entry

    @property
    def entries(self) -> list[Diagnostic]:
        with self._lock:
            return list(self._entries)

    def of_kind(self, kind: str) -> list[Diagnostic]:
        return [e for e in self.entries if e.kind == kind]

    def counts(self) -> dict[str, int]:
        return dict(Counter(e.kind for e in self.entries))

    def clear(self, *kinds: str) -> None:
        """Drop recorded entries (all of them, or only the given kinds)."""
        with self._lock:
            if kinds:
                self._entries = [e for e in self._entries if e.kind not in kinds]
            else:
                self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
