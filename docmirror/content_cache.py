"""
Two-tier content cache.

PersistentCache keeps one SQLite row per item id with the content, the
source modification time it was fetched for, the time of the write, and the
item's attributes. Rows survive across sessions until cleared or replaced.

MemoryCache is the per-session overlay that spares repeated disk reads. It
also remembers failed fetches (as empty content) so a session does not keep
retrying them; those never reach disk.

Disk problems are never fatal: reads degrade to misses and writes are
skipped, with the failure logged and reported to the diagnostics collector.
"""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .diagnostics import CACHE_IO, Diagnostics
from .types import (
    CacheEntry,
    attributes_from_json,
    attributes_to_json,
    format_utc_timestamp,
    parse_utc_timestamp,
)

logger = logging.getLogger(__name__)

CACHE_FILENAME = "content-cache.db"


class PersistentCache:
    """
    SQLite-backed store of CacheEntry rows keyed by item id.

    Each entry is a discrete row, so inspecting, invalidating or replacing
    one entry never rewrites the others.
    """

    def __init__(self, db_path: Path, diagnostics: Optional[Diagnostics] = None):
        """
        Args:
            db_path: Path to SQLite database file
            diagnostics: Collector for I/O failures (optional)
        """
        self._db_path = Path(db_path)
        self._diagnostics = diagnostics
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        try:
            self._init_db()
        except (sqlite3.Error, OSError) as e:
            self._io_failed("open", "", e)
            self._conn = None

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        # WAL keeps readers unblocked while a writer commits
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA busy_timeout=5000")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS content_cache (
                id TEXT PRIMARY KEY,
                content TEXT NOT NULL,
                last_modified TEXT NOT NULL,
                cached_at TEXT NOT NULL,
                attributes_json TEXT
            )
        """)
        self._conn.commit()

    @property
    def available(self) -> bool:
        """False when the database could not be opened."""
        return self._conn is not None

    @property
    def path(self) -> Path:
        return self._db_path

    def _io_failed(self, operation: str, item_id: str, exc: Exception) -> None:
        message = f"Cache {operation} failed for {item_id or self._db_path}: {exc}"
        if self._diagnostics is not None:
            self._diagnostics.report(CACHE_IO, message, *([item_id] if item_id else []))
        else:
            logger.warning(message)

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> CacheEntry:
        attributes_json = row["attributes_json"]
        attributes = None
        if attributes_json is not None:
            attributes = attributes_from_json(json.loads(attributes_json))
        return CacheEntry(
            content=row["content"],
            source_last_modified=parse_utc_timestamp(row["last_modified"]),
            cached_at=parse_utc_timestamp(row["cached_at"]),
            attributes=attributes,
        )

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, item_id: str) -> Optional[CacheEntry]:
        """
        Load the entry for an id.

        Returns:
            The CacheEntry, or None if absent, unreadable or malformed
        """
        if self._conn is None:
            return None
        try:
            with self._lock:
                row = self._conn.execute("""
                    SELECT content, last_modified, cached_at, attributes_json
                    FROM content_cache
                    WHERE id = ?
                """, (item_id,)).fetchone()
            if row is None:
                return None
            return self._row_to_entry(row)
        except (sqlite3.Error, ValueError, TypeError) as e:
            # json.JSONDecodeError is a ValueError
            self._io_failed("read", item_id, e)
            return None

    def get_many(self, ids: Iterable[str]) -> dict[str, CacheEntry]:
        """
        Load entries for many ids at once.

        Returns:
            Dict mapping id -> CacheEntry (missing or malformed ids omitted)
        """
        ids = list(dict.fromkeys(ids))
        if not ids or self._conn is None:
            return {}

        results: dict[str, CacheEntry] = {}
        # Stay well below SQLite's host-parameter limit
        chunk_size = 500
        for start in range(0, len(ids), chunk_size):
            chunk = ids[start:start + chunk_size]
            placeholders = ",".join("?" * len(chunk))
            try:
                with self._lock:
                    rows = self._conn.execute(f"""
                        SELECT id, content, last_modified, cached_at, attributes_json
                        FROM content_cache
                        WHERE id IN ({placeholders})
                    """, chunk).fetchall()
            except sqlite3.Error as e:
                self._io_failed("read", "", e)
                continue
            for row in rows:
                try:
                    results[row["id"]] = self._row_to_entry(row)
                except (ValueError, TypeError) as e:
                    self._io_failed("read", row["id"], e)
        return results

    def count(self) -> int:
        """Number of persisted entries."""
        if self._conn is None:
            return 0
        try:
            with self._lock:
                return self._conn.execute("SELECT COUNT(*) FROM content_cache").fetchone()[0]
        except sqlite3.Error as e:
            self._io_failed("count", "", e)
            return 0

    def list_ids(self) -> list[str]:
        """Ids with a persisted entry, most recently cached first."""
        if self._conn is None:
            return []
        try:
            with self._lock:
                cursor = self._conn.execute(
                    "SELECT id FROM content_cache ORDER BY cached_at DESC"
                )
                return [row["id"] for row in cursor]
        except sqlite3.Error as e:
            self._io_failed("list", "", e)
            return []

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def put(self, item_id: str, entry: CacheEntry) -> bool:
        """
        Insert or replace the entry for an id.

        Returns:
            True if the row was written
        """
        if self._conn is None:
            return False
        attributes = attributes_to_json(entry.attributes)
        try:
            attributes_json = (
                json.dumps(attributes, ensure_ascii=False)
                if attributes is not None else None
            )
            with self._lock:
                self._conn.execute("""
                    INSERT OR REPLACE INTO content_cache
                    (id, content, last_modified, cached_at, attributes_json)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    item_id,
                    entry.content,
                    format_utc_timestamp(entry.source_last_modified),
                    format_utc_timestamp(entry.cached_at),
                    attributes_json,
                ))
                self._conn.commit()
            return True
        except (sqlite3.Error, TypeError, ValueError) as e:
            self._io_failed("write", item_id, e)
            return False

    def delete(self, item_id: str) -> bool:
        """
        Delete one entry.

        Returns:
            True if an entry existed and was deleted
        """
        if self._conn is None:
            return False
        try:
            with self._lock:
                cursor = self._conn.execute(
                    "DELETE FROM content_cache WHERE id = ?", (item_id,)
                )
                self._conn.commit()
            return cursor.rowcount > 0
        except sqlite3.Error as e:
            self._io_failed("delete", item_id, e)
            return False

    def clear(self) -> int:
        """
        Delete every entry.

        Returns:
            Number of entries deleted
        """
        if self._conn is None:
            return 0
        try:
            with self._lock:
                cursor = self._conn.execute("DELETE FROM content_cache")
                self._conn.commit()
            return cursor.rowcount
        except sqlite3.Error as e:
            self._io_failed("clear", "", e)
            return 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()


@dataclass(frozen=True)
class MemoryEntry:
    """A session-level content record."""
    content: str
    source_last_modified: Optional[datetime] = None
    failed: bool = False

    def is_valid_for(self, last_modified: Optional[datetime]) -> bool:
        if last_modified is None or self.source_last_modified is None:
            return True
        return self.source_last_modified >= last_modified


class MemoryCache:
    """In-process overlay over PersistentCache for one session."""

    def __init__(self):
        self._entries: dict[str, MemoryEntry] = {}
        self._lock = threading.Lock()

    def get(self, item_id: str) -> Optional[MemoryEntry]:
        with self._lock:
            return self._entries.get(item_id)

    def set(
        self,
        item_id: str,
        content: str,
        source_last_modified: Optional[datetime] = None,
        *,
        failed: bool = False,
    ) -> MemoryEntry:
        entry = MemoryEntry(content, source_last_modified, failed)
        with self._lock:
            self._entries[item_id] = entry
        return entry

    def discard(self, item_id: str) -> bool:
        with self._lock:
            return self._entries.pop(item_id, None) is not None

    def clear(self) -> int:
        with self._lock:
            n = len(self._entries)
            self._entries.clear()
            return n

    def contents(self) -> dict[str, str]:
        """Snapshot of id -> content for everything held in memory."""
        with self._lock:
            return {k: v.content for k, v in self._entries.items()}

    def failed_ids(self) -> list[str]:
        with self._lock:
            return [k for k, v in self._entries.items() if v.failed]

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def describe_entry(item_id: str, entry: CacheEntry) -> dict[str, Any]:
    """JSON-ready view of a persisted entry (the on-disk record shape)."""
    return {
        "id": item_id,
        "content": entry.content,
        "lastModified": format_utc_timestamp(entry.source_last_modified),
        "cachedAt": format_utc_timestamp(entry.cached_at),
        "attributes": attributes_to_json(entry.attributes),
    }
