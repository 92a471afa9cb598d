"""
docmirror

A local, searchable mirror of a remote hierarchical document collection.

Quick Start:
    from docmirror import Mirror
    from docmirror.records import load_snapshot

    mirror = Mirror()  # uses ~/.docmirror/ by default
    mirror.refresh(load_snapshot("pages.json"))
    for depth, item in mirror.view("release notes"):
        print("  " * depth + item.title)

CLI Usage:
    docmirror tree pages.json
    docmirror search pages.json "release notes"
    docmirror precache pages.json
    docmirror clear-cache

Environment Variables:
    DOCMIRROR_STORE_PATH  - Override default store location
    DOCMIRROR_VERBOSE     - Set to 1 for debug logging
"""

from .api import Mirror
from .errors import (
    DuplicateItemError,
    FetchError,
    ItemNotFoundError,
    MirrorError,
    RefreshInProgressError,
)
from .types import CacheEntry, Item, ListValue, Scalar

__version__ = "0.1.0"
__all__ = [
    "Mirror",
    "Item",
    "CacheEntry",
    "Scalar",
    "ListValue",
    "MirrorError",
    "DuplicateItemError",
    "RefreshInProgressError",
    "ItemNotFoundError",
    "FetchError",
]
