from __future__ import annotations

import httpx
import pytest

from conftest import FakeFetcher
from core import RawItem
from sources.base import FetcherManager
from sources.rss import RssSearchFetcher, extract_article_text
from utils.exceptions import FetchError


FEED = """<rss version="2.0"><channel>
  <item><title>GPU rules &amp; exports</title><link>https://news.example.com/a</link>
    <description>&lt;b&gt;Export&lt;/b&gt; rules tighten</description></item>
  <item><title>Known story</title><link>https://news.example.com/known</link><description>old</description></item>
  <item><title>Cloud prices</title><link>https://news.example.com/b</link><description>Cloud prices fall</description></item>
  <item><title>Third</title><link>https://news.example.com/c</link><description>third</description></item>
</channel></rss>"""

ARTICLE_PAGE = """<html><head><meta property="og:description" content="Fallback description"></head>
<body><article><p>First paragraph of the article body with enough text to count.</p>
<p>Second paragraph continues the story about export rules.</p></article></body></html>"""


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def _feed_handler(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(str(request.url))
        if request.url.host == "feed.test":
            return httpx.Response(200, text=FEED)
        return httpx.Response(200, text=ARTICLE_PAGE)

    return handler


def test_rss_fetch_parses_items_and_skips_known_urls() -> None:
    requests = []
    fetcher = RssSearchFetcher(
        url_template="https://feed.test/search?q={query}",
        fetch_body=False,
        client=_client(_feed_handler(requests)),
    )

    items = fetcher.fetch("ai chips", {"https://news.example.com/known"})

    assert [item.url for item in items] == [
        "https://news.example.com/a",
        "https://news.example.com/b",
        "https://news.example.com/c",
    ]
    assert items[0].title == "GPU rules & exports"
    assert items[0].body == "Export rules tighten"
    assert requests == ["https://feed.test/search?q=ai+chips"]


def test_rss_fetch_respects_max_items_and_reads_bodies() -> None:
    requests = []
    fetcher = RssSearchFetcher(
        url_template="https://feed.test/search?q={query}",
        max_items=2,
        client=_client(_feed_handler(requests)),
    )

    items = fetcher.fetch("ai", set())

    assert len(items) == 2
    assert items[0].body.startswith("First paragraph of the article body")
    assert "Second paragraph" in items[0].body
    assert len(requests) == 3


def test_rss_body_failure_falls_back_to_description() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "feed.test":
            return httpx.Response(200, text=FEED)
        return httpx.Response(404)

    fetcher = RssSearchFetcher(url_template="https://feed.test/?q={query}", max_items=1, client=_client(handler))

    items = fetcher.fetch("ai", set())

    assert items[0].body == "Export rules tighten"


def test_rss_feed_error_raises_fetch_error() -> None:
    fetcher = RssSearchFetcher(
        url_template="https://feed.test/?q={query}",
        client=_client(lambda request: httpx.Response(503)),
    )
    with pytest.raises(FetchError):
        fetcher.fetch("ai", set())


def test_rss_malformed_feed_raises_fetch_error() -> None:
    fetcher = RssSearchFetcher(
        url_template="https://feed.test/?q={query}",
        client=_client(lambda request: httpx.Response(200, text="<rss><channel>")),
    )
    with pytest.raises(FetchError):
        fetcher.fetch("ai", set())


def test_extract_article_text_reads_body_then_meta() -> None:
    assert extract_article_text(ARTICLE_PAGE).startswith("First paragraph")
    assert extract_article_text('<meta property="og:description" content="Only meta &amp; more">') == "Only meta & more"
    assert extract_article_text("<html></html>") == ""


class _Failing(FakeFetcher):
    @property
    def name(self) -> str:
        return "failing"

    def fetch(self, keyword, known_urls):
        raise FetchError("down", source=self.name)


def test_manager_merges_and_dedupes() -> None:
    shared = RawItem(title="shared", url="https://x/shared")
    manager = FetcherManager(
        [
            FakeFetcher({"ai": [shared, RawItem(title="one", url="https://x/1")]}),
            FakeFetcher({"ai": [shared, RawItem(title="known", url="https://x/known")]}),
            _Failing(),
        ]
    )

    items = manager.fetch("ai", {"https://x/known"})

    assert [item.url for item in items] == ["https://x/shared", "https://x/1"]


def test_manager_raises_when_every_source_fails() -> None:
    with pytest.raises(FetchError):
        FetcherManager([_Failing(), _Failing()]).fetch("ai", set())


def test_manager_requires_a_fetcher() -> None:
    with pytest.raises(ValueError):
        FetcherManager([])


def test_extract_article_text_uses_trafilatura_output(monkeypatch) -> None:
    calls = []

    def fake_extract(page_html, **kwargs):
        calls.append(kwargs["url"])
        return "Extracted main text " * 10

    monkeypatch.setattr("sources.rss.trafilatura.extract", fake_extract)

    text = extract_article_text(ARTICLE_PAGE, url="https://news.example.com/a")

    assert text.startswith("Extracted main text")
    assert calls == ["https://news.example.com/a"]


def test_extract_article_text_falls_back_to_paragraphs(monkeypatch) -> None:
    monkeypatch.setattr("sources.rss.trafilatura.extract", lambda page_html, **kwargs: None)

    text = extract_article_text(ARTICLE_PAGE)

    assert text.splitlines() == [
        "First paragraph of the article body with enough text to count.",
        "Second paragraph continues the story about export rules.",
    ]


def test_extract_article_text_survives_extractor_errors(monkeypatch) -> None:
    def broken(page_html, **kwargs):
        raise ValueError("parser crashed")

    monkeypatch.setattr("sources.rss.trafilatura.extract", broken)

    assert extract_article_text(ARTICLE_PAGE).startswith("First paragraph")
