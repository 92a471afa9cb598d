"""
Content fetch providers.

Fetchers are looked up by name through the registry so the store
configuration can choose one.
"""

from .base import ContentFetcher, ProviderRegistry, get_registry

__all__ = [
    "ContentFetcher",
    "ProviderRegistry",
    "get_registry",
]
