"""
Tests for content fetchers and the fetcher registry.

The HTTP fetcher is exercised against a stubbed ``requests.get``; no test
touches the network.
"""

import pytest

from docmirror.errors import FetchError
from docmirror.providers import ContentFetcher, get_registry
from docmirror.providers.fetchers import DirectoryContentFetcher, HttpContentFetcher


class FakeResponse:
    """Streaming stand-in for requests.Response."""

    def __init__(self, status_code=200, text="body", headers=None, chunk_size=4):
        self.status_code = status_code
        self.encoding = "utf-8"
        self.headers = dict(headers or {})
        self._body = text.encode("utf-8")
        self._chunk_size = chunk_size
        self.bytes_read = 0
        self.closed = False

    @property
    def ok(self):
        return self.status_code < 400

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self._body), self._chunk_size):
            chunk = self._body[start:start + self._chunk_size]
            self.bytes_read += len(chunk)
            yield chunk

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class TestDirectoryFetcher:

    def test_reads_exported_file(self, tmp_path):
        (tmp_path / "p1.md").write_text("# Hello", encoding="utf-8")
        assert DirectoryContentFetcher(str(tmp_path)).fetch("p1") == "# Hello"

    def test_custom_suffix(self, tmp_path):
        (tmp_path / "p1.txt").write_text("plain")
        assert DirectoryContentFetcher(str(tmp_path), suffix=".txt").fetch("p1") == "plain"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FetchError):
            DirectoryContentFetcher(str(tmp_path)).fetch("nope")

    @pytest.mark.parametrize("bad_id", ["../secret", "a/b", "..", ""])
    def test_path_like_ids_rejected(self, tmp_path, bad_id):
        with pytest.raises(FetchError):
            DirectoryContentFetcher(str(tmp_path)).fetch(bad_id)

    def test_satisfies_protocol(self, tmp_path):
        assert isinstance(DirectoryContentFetcher(str(tmp_path)), ContentFetcher)


class TestHttpFetcher:

    def test_template_must_contain_id(self):
        with pytest.raises(ValueError):
            HttpContentFetcher("https://example.com/page.md")

    def test_template_must_be_http(self):
        with pytest.raises(ValueError):
            HttpContentFetcher("file:///tmp/{id}.md")

    def test_fetch_builds_url_and_auth(self, monkeypatch):
        seen = {}

        def fake_get(url, timeout, headers, stream=False):
            seen.update(url=url, timeout=timeout, headers=headers, stream=stream)
            return FakeResponse(text="remote content")

        monkeypatch.setattr("requests.get", fake_get)
        monkeypatch.setenv("EXPORT_TOKEN", "secret")
        fetcher = HttpContentFetcher(
            "https://example.com/pages/{id}.md", token_env="EXPORT_TOKEN", timeout=5,
        )

        assert fetcher.fetch("a b") == "remote content"
        assert seen["url"] == "https://example.com/pages/a%20b.md"
        assert seen["timeout"] == 5
        assert seen["stream"] is True
        assert seen["headers"]["Authorization"] == "Bearer secret"
        assert seen["headers"]["User-Agent"].startswith("docmirror/")

    def test_no_token_no_auth_header(self, monkeypatch):
        seen = {}

        def fake_get(url, timeout, headers, stream=False):
            seen.update(headers=headers)
            return FakeResponse()

        monkeypatch.setattr("requests.get", fake_get)
        monkeypatch.delenv("EXPORT_TOKEN", raising=False)
        HttpContentFetcher("https://example.com/{id}", token_env="EXPORT_TOKEN").fetch("x")
        assert "Authorization" not in seen["headers"]

    @pytest.mark.parametrize("status", [404, 429, 500])
    def test_error_status(self, monkeypatch, status):
        monkeypatch.setattr("requests.get", lambda url, **kwargs: FakeResponse(status))
        with pytest.raises(FetchError):
            HttpContentFetcher("https://example.com/{id}").fetch("x")

    def test_error_status_closes_response(self, monkeypatch):
        resp = FakeResponse(500)
        monkeypatch.setattr("requests.get", lambda url, **kwargs: resp)
        with pytest.raises(FetchError):
            HttpContentFetcher("https://example.com/{id}").fetch("x")
        assert resp.closed

    def test_declared_oversize_rejected_before_reading(self, monkeypatch):
        resp = FakeResponse(text="x" * 100, headers={"content-length": "50000000"})
        monkeypatch.setattr("requests.get", lambda url, **kwargs: resp)
        with pytest.raises(FetchError, match="too large"):
            HttpContentFetcher("https://example.com/{id}", max_size=1000).fetch("x")
        assert resp.bytes_read == 0
        assert resp.closed

    def test_undeclared_oversize_stops_reading_early(self, monkeypatch):
        resp = FakeResponse(text="x" * 1000, chunk_size=4)
        monkeypatch.setattr("requests.get", lambda url, **kwargs: resp)
        with pytest.raises(FetchError, match="too large"):
            HttpContentFetcher("https://example.com/{id}", max_size=10).fetch("x")
        assert resp.bytes_read <= 12
        assert resp.closed

    def test_malformed_content_length_enforced_while_reading(self, monkeypatch):
        resp = FakeResponse(text="small", headers={"content-length": "lots"})
        monkeypatch.setattr("requests.get", lambda url, **kwargs: resp)
        assert HttpContentFetcher("https://example.com/{id}").fetch("x") == "small"

    def test_body_at_limit_is_accepted(self, monkeypatch):
        monkeypatch.setattr("requests.get", lambda url, **kwargs: FakeResponse(text="x" * 10))
        assert HttpContentFetcher("https://example.com/{id}", max_size=10).fetch("x") == "x" * 10

    def test_connection_error(self, monkeypatch):
        import requests

        def fail(url, **kwargs):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr("requests.get", fail)
        with pytest.raises(FetchError, match="refused"):
            HttpContentFetcher("https://example.com/{id}").fetch("x")


class TestRegistry:

    def test_builtin_fetchers_registered(self):
        assert {"directory", "http"} <= set(get_registry().list_fetchers())

    def test_create_from_params(self, tmp_path):
        fetcher = get_registry().create_fetcher("directory", {"root": str(tmp_path)})
        assert isinstance(fetcher, DirectoryContentFetcher)
        assert fetcher.root == tmp_path

    def test_unknown_fetcher(self):
        with pytest.raises(ValueError, match="Unknown content fetcher"):
            get_registry().create_fetcher("carrier-pigeon")
