"""RSS search fetcher (Google News by default) with best-effort article body extraction."""

from __future__ import annotations

import html as html_lib
import logging
import re
import xml.etree.ElementTree as ET
from typing import AbstractSet, List, Optional
from urllib.parse import quote_plus

import httpx
import trafilatura
from bs4 import BeautifulSoup
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core import RawItem
from utils.exceptions import FetchError
from .base import ContentFetcher


logger = logging.getLogger(__name__)

GOOGLE_NEWS_SEARCH = "https://news.google.com/rss/search?q={query}&hl=en-US&gl=US&ceid=US:en"
USER_AGENT = "Mozilla/5.0 (compatible; NewsRadar/1.0)"


def _strip_html(value: str) -> str:
    text = str(value or "")
    text = re.sub(r"<script[^>]*>.*?</script>", " ", text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<style[^>]*>.*?</style>", " ", text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<[^>]+>", " ", text)
    text = html_lib.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


def _safe_truncate(text: str, max_len: int = 9000) -> str:
    value = str(text or "")
    value = value.replace("\r\n", "\n").replace("\r", "\n")
    value = re.sub(r"[ \t\f\v]+", " ", value)
    value = re.sub(r"\n{3,}", "\n\n", value).strip()
    if len(value) <= max_len:
        return value
    return value[: max_len - 3].rstrip() + "..."


def _rss_text(node: ET.Element, tag: str) -> str:
    child = node.find(tag)
    return str((child.text if child is not None else "") or "").strip()


def _extract_with_trafilatura(page_html: str, url: Optional[str]) -> str:
    try:
        extracted = trafilatura.extract(
            page_html,
            url=url,
            include_comments=False,
            include_tables=False,
            favor_precision=True,
            output_format="txt",
        )
    except Exception as exc:
        logger.debug(f"[fetch] trafilatura failed for {url}: {exc}")
        return ""
    return _safe_truncate(str(extracted or ""))


def _extract_with_soup(soup: BeautifulSoup) -> str:
    node = soup.find("article") or soup.body or soup
    paragraphs = [tag.get_text(" ", strip=True) for tag in node.find_all(["p", "li"])]
    return _safe_truncate("\n".join(p for p in paragraphs if p))


def extract_article_text(page_html: str, url: Optional[str] = None, min_chars: int = 80) -> str:
    """
    Pull readable text out of an article page.

    trafilatura first, then the page's paragraphs via BeautifulSoup, then the
    og:description meta tag. Empty string when nothing usable is found.
    """
    if not page_html or not page_html.strip():
        return ""

    text = _extract_with_trafilatura(page_html, url)
    if len(text) >= min_chars:
        return text

    soup = BeautifulSoup(page_html, "lxml")
    text = _extract_with_soup(soup)
    if len(text) >= min_chars:
        return text

    meta = soup.find("meta", attrs={"property": "og:description"})
    if meta is not None and meta.get("content"):
        return _safe_truncate(str(meta["content"]))
    return ""


class RssSearchFetcher(ContentFetcher):
    """
    Keyword search over an RSS endpoint

    Usage:
        fetcher = RssSearchFetcher(max_items=8)
        items = fetcher.fetch("ai", known_urls=set())
    """

    def __init__(
        self,
        url_template: str = GOOGLE_NEWS_SEARCH,
        max_items: int = 8,
        fetch_body: bool = True,
        client: Optional[httpx.Client] = None,
        timeout: float = 15.0,
    ):
        self.url_template = url_template
        self.max_items = max(1, max_items)
        self.fetch_body = fetch_body
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    @property
    def name(self) -> str:
        return "rss"

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def _get_text(self, url: str) -> str:
        response = self._client.get(url)
        response.raise_for_status()
        return str(response.text or "")

    def fetch(self, keyword: str, known_urls: AbstractSet[str]) -> List[RawItem]:
        feed_url = self.url_template.format(query=quote_plus(keyword))
        try:
            root = ET.fromstring(self._get_text(feed_url))
        except (httpx.HTTPError, ET.ParseError) as exc:
            raise FetchError(f"RSS search failed: {exc}", source=self.name, keyword=keyword)

        items: List[RawItem] = []
        for entry in root.findall(".//item"):
            if len(items) >= self.max_items:
                break
            link = _rss_text(entry, "link")
            if not link or link in known_urls:
                continue

            title = _strip_html(_rss_text(entry, "title"))
            body = _safe_truncate(_strip_html(_rss_text(entry, "description")), max_len=4000)
            if self.fetch_body:
                body = self._article_body(link) or body

            items.append(RawItem(title=title, url=link, body=body))

        logger.info(f"[fetch] rss keyword='{keyword}' -> {len(items)} items")
        return items

    def _article_body(self, url: str) -> str:
        try:
            return extract_article_text(self._get_text(url), url=url)
        except httpx.HTTPError as exc:
            logger.warning(f"[fetch] article body unavailable, using description. url={url} error={exc}")
            return ""

    def close(self) -> None:
        self._client.close()
