"""
Base provider protocols.

These define the interfaces that concrete providers must implement.
Using Protocol for structural subtyping - no explicit inheritance required.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ContentFetcher(Protocol):
    """
    Fetches the full text content of one item from the remote source.

    The mirror only calls this on a cache miss. Implementations are free to
    block; the batch refresher runs them in worker threads.

    Example implementation:
        class StaticFetcher:
            def fetch(self, item_id: str) -> str:
                return TEXTS[item_id]
    """

    def fetch(self, item_id: str) -> str:
        """
        Fetch and return the item's content as text.

        Args:
            item_id: Opaque item identifier

        Returns:
            Text content (markdown or plain text)

        Raises:
            FetchError: If the content cannot be obtained
        """
        ...


class ProviderRegistry:
    """
    Registry for discovering and instantiating fetchers.

    Fetchers are registered by name so the store configuration (TOML) can
    select one without code changes.

    Example:
        registry = ProviderRegistry()
        registry.register_fetcher("http", HttpContentFetcher)

        # Later, from config:
        fetcher = registry.create_fetcher("http", {"url_template": "..."})
    """

    def __init__(self):
        self._fetchers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Import fetcher modules so they register themselves."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        from . import fetchers  # noqa: F401

    def register_fetcher(self, name: str, cls: type) -> None:
        self._fetchers[name] = cls

    def list_fetchers(self) -> list[str]:
        self._ensure_providers_loaded()
        return sorted(self._fetchers)

    def create_fetcher(self, name: str, params: dict[str, Any] | None = None) -> ContentFetcher:
        """
        Instantiate a registered fetcher.

        Raises:
            ValueError: If no fetcher is registered under the name
        """
        self._ensure_providers_loaded()
        if name not in self._fetchers:
            available = ", ".join(sorted(self._fetchers)) or "none"
            raise ValueError(f"Unknown content fetcher: {name!r} (available: {available})")
        return self._fetchers[name](**(params or {}))


_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry
