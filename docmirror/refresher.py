"""
Bulk content refresh.

Items are resolved in fixed-size batches. Within a batch every item is
resolved concurrently in a worker thread; between batches the refresher
pauses briefly so the remote API's rate limits are respected. A failure
never stops the run: the item ends up with empty content and still counts
as processed.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Optional

from .diagnostics import FETCH_FAILED, Diagnostics
from .resolver import ContentResolver
from .types import Item

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5
DEFAULT_BATCH_DELAY = 0.1  # seconds

ProgressCallback = Callable[[int, int], None]


@dataclass
class RefreshSummary:
    """Outcome of a bulk refresh."""
    total: int = 0
    processed: int = 0
    failed: int = 0
    already_cached: int = 0

    @property
    def fetched_or_cached(self) -> int:
        return self.processed - self.failed


class BatchRefresher:
    """Drives ContentResolver across a whole item list with bounded concurrency."""

    def __init__(
        self,
        resolver: ContentResolver,
        diagnostics: Optional[Diagnostics] = None,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        batch_delay: float = DEFAULT_BATCH_DELAY,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self._resolver = resolver
        self._diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.concurrency = concurrency
        self.batch_delay = batch_delay

    async def refresh_all(
        self,
        items: Sequence[Item],
        on_progress: Optional[ProgressCallback] = None,
        *,
        concurrency: Optional[int] = None,
    ) -> RefreshSummary:
        """
        Resolve content for every item.

        Args:
            items: Items to populate (their ``content`` is updated in place)
            on_progress: Called as ``on_progress(processed, total)`` after
                each completed item
            concurrency: Batch size override

        Returns:
            RefreshSummary with processed and failed counts
        """
        size = self.concurrency if concurrency is None else concurrency
        if size < 1:
            raise ValueError(f"concurrency must be at least 1, got {size}")

        summary = RefreshSummary(total=len(items))
        logger.info("Refreshing content for %d items (batch size %d)", len(items), size)

        def report() -> None:
            if on_progress is None:
                return
            try:
                on_progress(summary.processed, summary.total)
            except Exception as e:
                logger.warning("Progress callback failed: %s", e)

        async def process(item: Item) -> None:
            cached = self._resolver.memory.get(item.id)
            if cached is not None and cached.is_valid_for(item.last_modified):
                item.content = cached.content
                if cached.failed:
                    summary.failed += 1
                else:
                    summary.already_cached += 1
            else:
                try:
                    await asyncio.to_thread(self._resolver.resolve_item, item)
                except Exception as e:
                    # The resolver isolates fetch errors; this covers anything else
                    self._diagnostics.report(
                        FETCH_FAILED, f"Failed to refresh {item.id}: {e}", item.id
                    )
                    item.content = ""
                    summary.failed += 1
                else:
                    cached = self._resolver.memory.get(item.id)
                    if cached is not None and cached.failed:
                        summary.failed += 1
            summary.processed += 1
            report()

        for start in range(0, len(items), size):
            batch = items[start:start + size]
            await asyncio.gather(*(process(item) for item in batch))
            if start + size < len(items) and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        if summary.failed:
            logger.warning(
                "Content refresh finished with %d/%d failures", summary.failed, summary.total
            )
        else:
            logger.info("Content refresh finished: %d items", summary.processed)
        return summary
