"""
Shared pytest fixtures for docmirror tests.

Provides a counting fetcher so no test touches the network.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from docmirror.config import MirrorConfig
from docmirror.content_cache import MemoryCache, PersistentCache
from docmirror.diagnostics import Diagnostics
from docmirror.errors import FetchError
from docmirror.resolver import ContentResolver
from docmirror.types import Item, attributes_from_json

T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)


def ts(minutes: int = 0) -> datetime:
    """A fixed timestamp offset from T0 (minutes may be negative)."""
    return T0 + timedelta(minutes=minutes)


def make_item(id, title=None, parent=None, minutes=0, attributes=None, content=None) -> Item:
    return Item(
        id=id,
        title=title if title is not None else id.upper(),
        last_modified=ts(minutes),
        parent_id=parent,
        content=content,
        attributes=attributes_from_json(attributes),
    )


class MockFetcher:
    """
    Deterministic fetcher that counts calls per id.

    Returns ``texts[id]`` when given, otherwise "Content for <id>".
    Ids in ``failing`` raise FetchError.
    """

    def __init__(self, texts=None, failing=()):
        self.texts = dict(texts or {})
        self.failing = set(failing)
        self.calls: list[str] = []

    def fetch(self, item_id: str) -> str:
        self.calls.append(item_id)
        if item_id in self.failing:
            raise FetchError(f"simulated failure for {item_id}")
        return self.texts.get(item_id, f"Content for {item_id}")

    def count(self, item_id: str) -> int:
        return self.calls.count(item_id)


@pytest.fixture
def fetcher():
    """Create a fresh MockFetcher instance."""
    return MockFetcher()


@pytest.fixture
def diagnostics():
    return Diagnostics()


@pytest.fixture
def cache_path(tmp_path) -> Path:
    return tmp_path / "cache" / "content-cache.db"


@pytest.fixture
def persistent(cache_path, diagnostics):
    with PersistentCache(cache_path, diagnostics) as cache:
        yield cache


@pytest.fixture
def resolver(fetcher, persistent, diagnostics):
    return ContentResolver(fetcher, persistent, MemoryCache(), diagnostics)


@pytest.fixture
def config(tmp_path):
    return MirrorConfig(path=tmp_path / "store", batch_delay=0.0)


@pytest.fixture
def mirror(config, fetcher):
    from docmirror.api import Mirror
    with Mirror(config=config, fetcher=fetcher, ops_log=False) as m:
        yield m
