"""Content fetcher interface and the multi-source fetch manager."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import AbstractSet, List, Sequence

from core import RawItem
from utils.exceptions import FetchError


logger = logging.getLogger(__name__)


class ContentFetcher(ABC):
    """Returns candidate items for a keyword."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Source name used in logs"""

    @abstractmethod
    def fetch(self, keyword: str, known_urls: AbstractSet[str]) -> List[RawItem]:
        """
        Fetch candidate items for a keyword.

        Args:
            keyword: tracked keyword
            known_urls: URLs already ingested; fetchers may skip them early

        Returns:
            Candidate items (title, url, body)
        """


class FetcherManager(ContentFetcher):
    """Runs every registered fetcher and dedupes the combined result by URL."""

    def __init__(self, fetchers: Sequence[ContentFetcher]):
        if not fetchers:
            raise ValueError("at least one fetcher is required")
        self.fetchers = list(fetchers)

    @property
    def name(self) -> str:
        return "+".join(fetcher.name for fetcher in self.fetchers)

    def fetch(self, keyword: str, known_urls: AbstractSet[str]) -> List[RawItem]:
        results: List[RawItem] = []
        seen = set()
        failures: List[str] = []

        for fetcher in self.fetchers:
            try:
                items = fetcher.fetch(keyword, known_urls)
            except FetchError as exc:
                logger.warning(f"[fetch] {fetcher.name} failed for '{keyword}': {exc}")
                failures.append(fetcher.name)
                continue
            for item in items:
                if not item.url or item.url in known_urls or item.url in seen:
                    continue
                seen.add(item.url)
                results.append(item)

        if failures and len(failures) == len(self.fetchers):
            raise FetchError(f"every source failed for '{keyword}'", source=self.name, failed=failures)
        return results
