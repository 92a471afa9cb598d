"""
Tests for the persistent and in-memory content caches.
"""

import sqlite3

import pytest

from conftest import ts
from docmirror.content_cache import MemoryCache, PersistentCache, describe_entry
from docmirror.diagnostics import CACHE_IO
from docmirror.types import CacheEntry, ListValue, Scalar


def _entry(content="text", minutes=0, attributes=None):
    return CacheEntry(
        content=content,
        source_last_modified=ts(minutes),
        cached_at=ts(minutes + 1),
        attributes=attributes,
    )


class TestPersistentCache:

    def test_put_then_get(self, persistent):
        attrs = {"Status": Scalar("Done"), "Tags": ListValue(("a", "b"))}
        assert persistent.put("p1", _entry("hello", attributes=attrs))

        entry = persistent.get("p1")
        assert entry.content == "hello"
        assert entry.source_last_modified == ts(0)
        assert entry.cached_at == ts(1)
        assert entry.attributes == attrs

    def test_missing_id_is_none(self, persistent):
        assert persistent.get("nope") is None

    def test_put_replaces(self, persistent):
        persistent.put("p1", _entry("old", minutes=0))
        persistent.put("p1", _entry("new", minutes=5))
        assert persistent.get("p1").content == "new"
        assert persistent.count() == 1

    def test_none_attributes_round_trip(self, persistent):
        persistent.put("p1", _entry(attributes=None))
        assert persistent.get("p1").attributes is None

    def test_get_many(self, persistent):
        for i in range(3):
            persistent.put(f"p{i}", _entry(f"c{i}"))
        entries = persistent.get_many(["p0", "p2", "missing", "p0"])
        assert set(entries) == {"p0", "p2"}
        assert entries["p2"].content == "c2"

    def test_get_many_large_batch(self, persistent):
        for i in range(1200):
            persistent.put(f"id{i}", _entry(str(i)))
        entries = persistent.get_many(f"id{i}" for i in range(1200))
        assert len(entries) == 1200

    def test_delete(self, persistent):
        persistent.put("p1", _entry())
        assert persistent.delete("p1")
        assert not persistent.delete("p1")
        assert persistent.get("p1") is None

    def test_clear_returns_count(self, persistent):
        for i in range(4):
            persistent.put(f"p{i}", _entry())
        assert persistent.clear() == 4
        assert persistent.count() == 0
        assert persistent.list_ids() == []

    def test_entries_survive_reopen(self, cache_path, diagnostics):
        with PersistentCache(cache_path, diagnostics) as cache:
            cache.put("p1", _entry("kept"))
        with PersistentCache(cache_path, diagnostics) as cache:
            assert cache.get("p1").content == "kept"

    def test_validity_is_timestamp_comparison(self, persistent):
        persistent.put("p1", _entry(minutes=10))
        entry = persistent.get("p1")
        assert entry.is_valid_for(ts(10))
        assert entry.is_valid_for(ts(5))
        assert not entry.is_valid_for(ts(11))

    def test_malformed_row_is_a_miss(self, persistent, cache_path, diagnostics):
        persistent.put("p1", _entry())
        conn = sqlite3.connect(str(cache_path))
        conn.execute("UPDATE content_cache SET attributes_json = '{not json' WHERE id = 'p1'")
        conn.commit()
        conn.close()

        assert persistent.get("p1") is None
        assert persistent.get_many(["p1"]) == {}
        assert diagnostics.of_kind(CACHE_IO)

    def test_unopenable_database_degrades(self, tmp_path, diagnostics):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        cache = PersistentCache(blocker / "cache.db", diagnostics)

        assert not cache.available
        assert cache.get("p1") is None
        assert not cache.put("p1", _entry())
        assert cache.count() == 0
        assert cache.clear() == 0
        assert diagnostics.of_kind(CACHE_IO)

    def test_describe_entry(self):
        d = describe_entry("p1", _entry("x", attributes={"Tags": ListValue(("a",))}))
        assert d["id"] == "p1"
        assert d["content"] == "x"
        assert d["attributes"] == {"Tags": ["a"]}
        assert d["lastModified"].startswith("2025-01-01T00:00:00")


class TestMemoryCache:

    @pytest.fixture
    def memory(self):
        return MemoryCache()

    def test_set_get(self, memory):
        memory.set("a", "text", ts(0))
        entry = memory.get("a")
        assert entry.content == "text"
        assert not entry.failed
        assert "a" in memory

    def test_entry_validity(self, memory):
        entry = memory.set("a", "text", ts(5))
        assert entry.is_valid_for(ts(5))
        assert not entry.is_valid_for(ts(6))

    def test_failed_entries(self, memory):
        memory.set("a", "", ts(0), failed=True)
        memory.set("b", "ok", ts(0))
        assert memory.failed_ids() == ["a"]
        assert memory.contents() == {"a": "", "b": "ok"}

    def test_discard_and_clear(self, memory):
        memory.set("a", "x")
        memory.set("b", "y")
        assert memory.discard("a")
        assert not memory.discard("a")
        assert memory.clear() == 1
        assert len(memory) == 0
