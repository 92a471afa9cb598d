"""
Core API for the document mirror.

Mirror ties the pieces together for one process:
- refresh(): swap in a new item population (no network I/O)
- search() / get_adjacency() / walk(): views over the current items
- resolve_content() / refresh_all_content(): content through the caches
- clear_cache(): drop every cached entry
"""

import logging
import threading
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Callable, Optional

from .config import MirrorConfig, get_default_store_path, load_or_create_config
from .content_cache import MemoryCache, PersistentCache
from .diagnostics import DEEP_CYCLE, FETCH_FAILED, MUTUAL_CYCLE, SELF_PARENT, Diagnostics
from .errors import ItemNotFoundError
from .hierarchy import Adjacency, HierarchyBuilder, sort_by_recent
from .item_store import ItemStore
from .providers.base import ContentFetcher, get_registry
from .refresher import BatchRefresher, ProgressCallback, RefreshSummary
from .resolver import ContentResolver
from .search import SearchHit, SearchIndex
from .types import Item

logger = logging.getLogger(__name__)

_STRUCTURAL_KINDS = (SELF_PARENT, MUTUAL_CYCLE, DEEP_CYCLE)


class _LazyFetcher:
    """Creates the configured fetcher on first use.

    Read-only operations (tree, search) never need network configuration,
    so a missing URL template only matters once something is fetched.
    """

    def __init__(self, factory: Callable[[], ContentFetcher]):
        self._factory = factory
        self._fetcher: Optional[ContentFetcher] = None
        self._lock = threading.Lock()

    def fetch(self, item_id: str) -> str:
        with self._lock:
            if self._fetcher is None:
                self._fetcher = self._factory()
        return self._fetcher.fetch(item_id)


class Mirror:
    """
    Searchable, browsable mirror of a remote document collection.

    Collaborators are constructed once per Mirror and can be injected for
    tests or custom setups.
    """

    def __init__(
        self,
        store_path: Optional[Path] = None,
        *,
        config: Optional[MirrorConfig] = None,
        fetcher: Optional[ContentFetcher] = None,
        persistent_cache: Optional[PersistentCache] = None,
        ops_log: bool = True,
    ):
        """
        Args:
            store_path: Store directory (default: DOCMIRROR_STORE_PATH or
                ~/.docmirror); ignored when ``config`` is given
            config: Explicit configuration (skips reading the TOML file)
            fetcher: Content fetcher (default: created from config)
            persistent_cache: Cache to use instead of the store's database
            ops_log: Attach the rotating operations log in the store directory
        """
        if config is None:
            store_path = Path(store_path) if store_path is not None else get_default_store_path()
            config = load_or_create_config(store_path)
        config.validate()
        self._config = config
        self._store_path = config.path

        self._diagnostics = Diagnostics()
        self._items = ItemStore()
        self._persistent = persistent_cache or PersistentCache(
            config.cache_path, self._diagnostics
        )
        self._memory = MemoryCache()
        self._resolver = ContentResolver(
            fetcher if fetcher is not None else _LazyFetcher(self._create_fetcher),
            self._persistent,
            self._memory,
            self._diagnostics,
        )
        self._refresher = BatchRefresher(
            self._resolver,
            self._diagnostics,
            concurrency=config.concurrency,
            batch_delay=config.batch_delay,
        )
        self._hierarchy = HierarchyBuilder(self._diagnostics, config.collection_root_id)
        self._search = SearchIndex(config.search_threshold)

        self._ops_log_handler = None
        if ops_log:
            from .logging_config import configure_ops_log
            self._ops_log_handler = configure_ops_log(self._store_path)

    def _create_fetcher(self) -> ContentFetcher:
        params = dict(self._config.fetcher.params)
        if self._config.fetcher.name == "directory":
            # Relative export directories live inside the store
            root = Path(params.get("root", "export")).expanduser()
            if not root.is_absolute():
                root = self._store_path / root
            params["root"] = str(root)
        return get_registry().create_fetcher(self._config.fetcher.name, params)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> MirrorConfig:
        return self._config

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def diagnostics(self) -> Diagnostics:
        return self._diagnostics

    @property
    def items(self) -> list[Item]:
        """Current items in source order."""
        return self._items.snapshot()

    def get_item(self, item_id: str) -> Optional[Item]:
        return self._items.get(item_id)

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    def refresh(self, items: Sequence[Item], *, warm: bool = True) -> None:
        """
        Replace the item population.

        Fetching the item list is the caller's job; this performs no network
        I/O. Valid persisted content is loaded onto the new items unless
        ``warm`` is False.

        Raises:
            DuplicateItemError: If ids repeat; the previous items are kept
            RefreshInProgressError: If another refresh is running
        """
        with self._items.refreshing():
            self._items.replace(items)
            self._diagnostics.clear(*_STRUCTURAL_KINDS)
            if warm:
                self._resolver.warm(self._items.snapshot())

    def warm_cache(self, items: Optional[Sequence[Item]] = None) -> int:
        """Load valid persisted content into memory and onto the items.

        Returns the number of cache hits.
        """
        return self._resolver.warm(list(items) if items is not None else self._items.snapshot())

    async def refresh_all_content(
        self,
        items: Optional[Sequence[Item]] = None,
        on_progress: Optional[ProgressCallback] = None,
        *,
        concurrency: Optional[int] = None,
    ) -> RefreshSummary:
        """
        Resolve content for every item with bounded concurrency.

        Holds the refresh flag for the duration, so item replacement cannot
        interleave with it. Fetch-failure diagnostics from earlier runs are
        cleared first.
        """
        with self._items.refreshing():
            self._diagnostics.clear(FETCH_FAILED)
            targets = list(items) if items is not None else self._items.snapshot()
            return await self._refresher.refresh_all(
                targets, on_progress, concurrency=concurrency,
            )

    # -------------------------------------------------------------------------
    # Content
    # -------------------------------------------------------------------------

    def resolve_content(self, item_id: str) -> str:
        """
        Content for one item, from cache when fresh.

        Raises:
            ItemNotFoundError: If the id is not in the current items
        """
        item = self._items.get(item_id)
        if item is None:
            raise ItemNotFoundError(f"Item not found: {item_id}")
        return self._resolver.resolve_item(item)

    def invalidate(self, item_id: str) -> bool:
        """Forget cached content for one id."""
        item = self._items.get(item_id)
        if item is not None:
            item.content = None
        return self._resolver.invalidate(item_id)

    def clear_cache(self) -> int:
        """Delete every cached entry. Returns the number of persisted entries removed."""
        return self._resolver.clear_cache()

    def cache_stats(self) -> dict[str, int]:
        return self._resolver.stats()

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def search(self, text: str) -> list[Item]:
        """Items matching ``text``, best first; everything for an empty query."""
        return self._search.query(self._items.snapshot(), self._memory.contents(), text)

    def search_hits(self, text: str) -> list[SearchHit]:
        return self._search.hits(self._items.snapshot(), self._memory.contents(), text)

    def get_adjacency(self, filtered_items: Optional[Sequence[Item]] = None) -> Adjacency:
        """Parent -> children over the given items (default: all items)."""
        self._diagnostics.clear(*_STRUCTURAL_KINDS)
        items = filtered_items if filtered_items is not None else self._items.snapshot()
        return self._hierarchy.build(items)

    def get_children(
        self,
        adjacency: Adjacency,
        item_id: str,
        visited: frozenset[str] = frozenset(),
    ) -> list[Item]:
        """Children of ``item_id``; empty when it is already among ``visited``."""
        return self._hierarchy.children(adjacency, item_id, visited)

    def get_roots(
        self,
        filtered_items: Optional[Sequence[Item]] = None,
        adjacency: Optional[Adjacency] = None,
    ) -> list[Item]:
        items = filtered_items if filtered_items is not None else self._items.snapshot()
        if adjacency is None:
            adjacency = self.get_adjacency(items)
        return self._hierarchy.roots(items, adjacency)

    def walk(self, filtered_items: Optional[Sequence[Item]] = None) -> Iterator[tuple[int, Item]]:
        """Depth-first ``(depth, item)`` over the hierarchy of the given items."""
        items = filtered_items if filtered_items is not None else self._items.snapshot()
        adjacency = self.get_adjacency(items)
        roots = self._hierarchy.roots(items, adjacency)
        return self._hierarchy.walk(adjacency, roots)

    def flat_view(self, filtered_items: Optional[Sequence[Item]] = None) -> list[Item]:
        """Items most recently modified first."""
        items = filtered_items if filtered_items is not None else self._items.snapshot()
        return sort_by_recent(items)

    def view(self, query: str = "", mode: Optional[str] = None) -> list[tuple[int, Item]]:
        """
        The presentation list for the current query.

        Tree mode filters by the query and then builds the hierarchy over the
        matches. Flat mode lists matches in rank order, or every item by
        recency when there is no query.
        """
        mode = mode or self._config.view_mode
        if mode not in ("tree", "flat"):
            raise ValueError(f"Unknown view mode: {mode!r}")
        filtered = self.search(query)
        if mode == "flat":
            ordered = filtered if query.strip() else self.flat_view(filtered)
            return [(0, item) for item in ordered]
        return list(self.walk(filtered))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the cache database and detach the operations log."""
        self._persistent.close()
        if self._ops_log_handler is not None:
            logging.getLogger("docmirror").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
