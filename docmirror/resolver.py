"""
Content resolution through the two cache tiers.

Lookup order is memory, then disk (validated against the item's current
modification time), then the fetch collaborator. Fresh content is written
back to both tiers. A failed fetch is remembered in memory only, so the
same session does not hammer the source, but the next session retries.
"""

import logging
from datetime import datetime
from typing import Optional

from .content_cache import MemoryCache, PersistentCache
from .diagnostics import FETCH_FAILED, Diagnostics
from .providers.base import ContentFetcher
from .types import AttributeValue, CacheEntry, Item, as_utc, utc_now

logger = logging.getLogger(__name__)


class ContentResolver:
    """
    Resolves item content with at most one fetch per id and freshness value.

    Caches are injected so tests and separate sessions never share state.
    """

    def __init__(
        self,
        fetcher: ContentFetcher,
        persistent: PersistentCache,
        memory: Optional[MemoryCache] = None,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self._fetcher = fetcher
        self._persistent = persistent
        self._memory = memory if memory is not None else MemoryCache()
        self._diagnostics = diagnostics if diagnostics is not None else Diagnostics()

    @property
    def memory(self) -> MemoryCache:
        return self._memory

    @property
    def persistent(self) -> PersistentCache:
        return self._persistent

    def resolve(
        self,
        item_id: str,
        current_last_modified: datetime,
        current_attributes: Optional[dict[str, AttributeValue]] = None,
    ) -> str:
        """
        Return content for an item, fetching only on a miss.

        Args:
            item_id: Item identifier
            current_last_modified: The item's modification time in the
                current snapshot
            current_attributes: Attributes to persist alongside fresh content

        Returns:
            The content, or "" when the fetch failed
        """
        current_last_modified = as_utc(current_last_modified)

        cached = self._memory.get(item_id)
        if cached is not None and cached.is_valid_for(current_last_modified):
            return cached.content

        entry = self._persistent.get(item_id)
        if entry is not None and entry.is_valid_for(current_last_modified):
            logger.debug("Persistent cache hit for %s", item_id)
            self._memory.set(item_id, entry.content, entry.source_last_modified)
            return entry.content

        try:
            content = self._fetcher.fetch(item_id) or ""
        except Exception as e:
            # Any collaborator failure is isolated to this item
            self._diagnostics.report(
                FETCH_FAILED, f"Failed to fetch content for {item_id}: {e}", item_id
            )
            self._memory.set(item_id, "", current_last_modified, failed=True)
            return ""

        self._persistent.put(item_id, CacheEntry(
            content=content,
            source_last_modified=current_last_modified,
            cached_at=utc_now(),
            attributes=dict(current_attributes) if current_attributes is not None else None,
        ))
        self._memory.set(item_id, content, current_last_modified)
        logger.debug("Fetched content for %s: %d characters", item_id, len(content))
        return content

    def resolve_item(self, item: Item) -> str:
        """Resolve an item and store the content on it."""
        item.content = self.resolve(item.id, item.last_modified, item.attributes)
        return item.content

    def warm(self, items: list[Item]) -> int:
        """
        Load valid persisted entries into memory and onto the items.

        Cached attributes are merged over each item's own attributes.

        Returns:
            Number of items served from the persistent cache
        """
        entries = self._persistent.get_many(item.id for item in items)
        hits = 0
        for item in items:
            entry = entries.get(item.id)
            if entry is None or not entry.is_valid_for(item.last_modified):
                continue
            item.content = entry.content
            if entry.attributes:
                item.attributes = {**item.attributes, **entry.attributes}
            self._memory.set(item.id, entry.content, entry.source_last_modified)
            hits += 1
        logger.info("Loaded %d/%d items from persistent cache", hits, len(items))
        return hits

    def invalidate(self, item_id: str) -> bool:
        """Drop one id from both tiers. Returns True if anything was removed."""
        in_memory = self._memory.discard(item_id)
        on_disk = self._persistent.delete(item_id)
        return in_memory or on_disk

    def clear_cache(self) -> int:
        """
        Delete every persisted entry and empty the memory tier.

        Returns:
            Number of persisted entries removed
        """
        removed = self._persistent.clear()
        self._memory.clear()
        logger.info("Cleared %d cached entries", removed)
        return removed

    def stats(self) -> dict[str, int]:
        return {
            "persisted": self._persistent.count(),
            "memory": len(self._memory),
            "failed": len(self._memory.failed_ids()),
        }
