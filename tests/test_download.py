import pytest
import requests

from sitesearch.util import download
from sitesearch.util.download import FETCH_ERROR_STATUS, Fetcher


class FakeResponse:
    def __init__(self, status_code: int, text: str):
        self.status_code = status_code
        self.text = text


@pytest.fixture
def fetcher() -> Fetcher:
    return Fetcher("TestAgent/1.0", "https://referrer.test", delay=0, timeout=2.5)


def test_fetch_sends_headers_without_redirects(fetcher, monkeypatch):
    seen = {}

    def fake_get(url, **kwargs):
        seen["url"] = url
        seen.update(kwargs)
        return FakeResponse(200, "<html>ok</html>")

    monkeypatch.setattr(download.requests, "get", fake_get)

    result = fetcher.fetch("https://site.test/page")

    assert result.ok
    assert result.content == "<html>ok</html>"
    assert result.error is None
    assert seen["url"] == "https://site.test/page"
    assert seen["headers"] == {"User-Agent": "TestAgent/1.0", "Referer": "https://referrer.test"}
    assert seen["allow_redirects"] is False
    assert seen["timeout"] == 2.5


def test_http_errors_are_data(fetcher, monkeypatch):
    monkeypatch.setattr(download.requests, "get", lambda url, **kw: FakeResponse(503, "down"))

    result = fetcher.fetch("https://site.test/page")

    assert not result.ok
    assert result.status_code == 503
    assert result.error is None


def test_transport_failure_gets_synthetic_status(fetcher, monkeypatch):
    def fake_get(url, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(download.requests, "get", fake_get)

    result = fetcher.fetch("https://site.test/page")

    assert result.status_code == FETCH_ERROR_STATUS
    assert result.content == ""
    assert "connection refused" in result.error


def test_rejected_urls_are_never_requested(fetcher, monkeypatch):
    def fake_get(url, **kwargs):
        raise AssertionError("should not be called")

    monkeypatch.setattr(download.requests, "get", fake_get)

    assert fetcher.fetch("ftp://site.test/file").status_code == FETCH_ERROR_STATUS
    assert fetcher.fetch("https://site.test/photo.png").status_code == FETCH_ERROR_STATUS


def test_extract_links_fetches_when_content_missing(fetcher, monkeypatch):
    monkeypatch.setattr(
        download.requests,
        "get",
        lambda url, **kw: FakeResponse(200, '<a href="/next">next</a>'),
    )

    assert fetcher.extract_links("https://site.test/") == {"https://site.test/next"}
    assert fetcher.extract_links("https://site.test/", '<a href="/given">g</a>') == {
        "https://site.test/given"
    }
