"""
Content fetchers for the remote source and for local exports.
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from ..errors import FetchError
from .base import get_registry

logger = logging.getLogger(__name__)


class HttpContentFetcher:
    """
    Fetches item content over HTTP.

    The URL is built from a template containing ``{id}``, e.g.
    ``https://export.example.com/pages/{id}.md``. An optional bearer token
    is read from the environment variable named by ``token_env`` so that
    secrets never land in the TOML config.
    """

    def __init__(
        self,
        url_template: str,
        token_env: str | None = None,
        timeout: int = 30,
        max_size: int = 10_000_000,
    ):
        """
        Args:
            url_template: URL with an ``{id}`` placeholder
            token_env: Environment variable holding a bearer token
            timeout: Request timeout in seconds
            max_size: Maximum content size in bytes
        """
        if "{id}" not in url_template:
            raise ValueError(f"url_template must contain '{{id}}': {url_template!r}")
        if not url_template.startswith(("http://", "https://")):
            raise ValueError(f"url_template must be an http(s) URL: {url_template!r}")
        self.url_template = url_template
        self.token_env = token_env
        self.timeout = timeout
        self.max_size = max_size

    def _headers(self) -> dict[str, str]:
        from docmirror import __version__

        headers = {"User-Agent": f"docmirror/{__version__}"}
        if self.token_env:
            token = os.environ.get(self.token_env)
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    def fetch(self, item_id: str) -> str:
        """Fetch content for one item, raising FetchError on any failure."""
        import requests

        url = self.url_template.format(id=quote(item_id, safe=""))
        try:
            resp = requests.get(
                url, timeout=self.timeout, headers=self._headers(), stream=True,
            )
        except requests.RequestException as e:
            raise FetchError(f"Request for {item_id} failed: {e}") from e

        with resp:
            if resp.status_code == 429:
                raise FetchError(f"Rate limited fetching {item_id} (HTTP 429)")
            if not resp.ok:
                raise FetchError(f"HTTP {resp.status_code} fetching {item_id}")

            # Check declared size
            content_length = resp.headers.get("content-length")
            if content_length:
                try:
                    declared = int(content_length)
                except ValueError:
                    declared = 0  # Malformed header, enforced while reading
                if declared > self.max_size:
                    raise FetchError(
                        f"Content for {item_id} too large: {declared} bytes "
                        f"(max {self.max_size})"
                    )

            # Read in chunks so an oversized body is never held in full
            chunks: list[bytes] = []
            downloaded = 0
            try:
                for chunk in resp.iter_content(chunk_size=65536):
                    downloaded += len(chunk)
                    if downloaded > self.max_size:
                        raise FetchError(
                            f"Content for {item_id} too large: over {self.max_size} bytes"
                        )
                    chunks.append(chunk)
            except requests.RequestException as e:
                raise FetchError(f"Reading {item_id} failed: {e}") from e

            encoding = resp.encoding or "utf-8"
            content = b"".join(chunks).decode(encoding, errors="replace")

        logger.debug("Fetched %s (%d bytes)", item_id, downloaded)
        return content


class DirectoryContentFetcher:
    """
    Reads item content from a local export directory.

    Each item lives at ``<root>/<id><suffix>``. Ids containing path
    separators are rejected rather than resolved.
    """

    def __init__(self, root: str, suffix: str = ".md", encoding: str = "utf-8"):
        self.root = Path(root).expanduser()
        self.suffix = suffix
        self.encoding = encoding

    def fetch(self, item_id: str) -> str:
        if not item_id or "/" in item_id or "\\" in item_id or item_id in (".", ".."):
            raise FetchError(f"Invalid item id for directory fetch: {item_id!r}")
        path = self.root / f"{item_id}{self.suffix}"
        try:
            return path.read_text(encoding=self.encoding)
        except FileNotFoundError as e:
            raise FetchError(f"No exported content for {item_id} at {path}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise FetchError(f"Could not read {path}: {e}") from e


_registry = get_registry()
_registry.register_fetcher("http", HttpContentFetcher)
_registry.register_fetcher("directory", DirectoryContentFetcher)
