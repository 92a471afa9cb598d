"""
Session item store.

Holds the flat, deduplicated list of items from the latest refresh. A
refresh replaces the whole population; nothing is merged, so items deleted
upstream disappear on the next refresh.
"""

import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Optional

from .errors import DuplicateItemError, RefreshInProgressError
from .types import Item

logger = logging.getLogger(__name__)


def find_duplicates(items: Iterable[Item]) -> dict[str, list[str]]:
    """Map every id that occurs more than once to the titles claiming it."""
    titles: dict[str, list[str]] = {}
    for item in items:
        titles.setdefault(item.id, []).append(item.title)
    return {item_id: names for item_id, names in titles.items() if len(names) > 1}


class ItemStore:
    """
    Arena of items for one refresh cycle.

    Items are kept in source order and indexed by id. Overlapping refreshes
    are rejected through a refresh-in-progress flag rather than interleaved.
    """

    def __init__(self, items: Optional[Iterable[Item]] = None):
        self._items: list[Item] = []
        self._by_id: dict[str, Item] = {}
        self._refreshing = False
        self._flag_lock = threading.Lock()
        if items is not None:
            self.replace(items)

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    @contextmanager
    def refreshing(self) -> Iterator["ItemStore"]:
        """Hold the refresh flag for the duration of the block.

        Raises:
            RefreshInProgressError: if another refresh holds the flag
        """
        with self._flag_lock:
            if self._refreshing:
                raise RefreshInProgressError("A refresh is already in progress")
            self._refreshing = True
        try:
            yield self
        finally:
            with self._flag_lock:
                self._refreshing = False

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    def replace(self, items: Iterable[Item]) -> None:
        """
        Swap in a new population.

        Raises:
            DuplicateItemError: if any id occurs twice; the previous
                population is left untouched
        """
        new_items = list(items)
        duplicates = find_duplicates(new_items)
        if duplicates:
            logger.error("Refresh rejected: %d duplicate ids", len(duplicates))
            raise DuplicateItemError(duplicates)

        self._items = new_items
        self._by_id = {item.id: item for item in new_items}
        logger.info("Item store refreshed: %d items", len(new_items))

    def refresh(self, items: Iterable[Item]) -> None:
        """Replace the population under the refresh flag."""
        with self.refreshing():
            self.replace(items)

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    def snapshot(self) -> list[Item]:
        """Current items in source order (a new list; items are shared)."""
        return list(self._items)

    def get(self, item_id: str) -> Optional[Item]:
        return self._by_id.get(item_id)

    def ids(self) -> set[str]:
        return set(self._by_id)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._by_id

    def __iter__(self) -> Iterator[Item]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)
