"""Keyword lifecycle: ACTIVE / PAUSED / ARCHIVED transitions and their side effects.

- to PAUSED: ingestion stops, articles stay visible
- to ARCHIVED: ingestion stops, the keyword's active articles are soft-deleted
- back to ACTIVE: articles soft-deleted by archiving are restored
- delete: articles soft-deleted, keyword record removed

Every transition that enters or leaves ACTIVE schedules an index rebuild in
the background; the caller never waits for it.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from core import DeactivationReason, Keyword, KeywordStatus
from storage.news_index import NewsIndexManager
from storage.repositories import ArticleRepository, KeywordRepository


logger = logging.getLogger(__name__)


def _normalize(name: Optional[str]) -> str:
    return str(name or "").strip().lower()


class KeywordService:
    """Keyword registry operations with article and index side effects."""

    def __init__(
        self,
        keywords: KeywordRepository,
        articles: ArticleRepository,
        index: Optional[NewsIndexManager] = None,
    ) -> None:
        self.keywords = keywords
        self.articles = articles
        self.index = index

    def list_keywords(self) -> List[Keyword]:
        return sorted(self.keywords.find_all(), key=lambda keyword: keyword.id or 0)

    def get(self, keyword_id: int) -> Optional[Keyword]:
        return self.keywords.find_by_id(keyword_id)

    def find_by_name(self, name: str) -> Optional[Keyword]:
        return self.keywords.find_by_name(_normalize(name))

    def add_keyword(self, name: str) -> Optional[Keyword]:
        """Register a new ACTIVE keyword. Blank or duplicate names return None."""
        normalized = _normalize(name)
        if not normalized:
            return None
        if self.keywords.exists_by_name(normalized):
            logger.warning(f"[keyword] duplicate keyword: {normalized}")
            return None
        try:
            saved = self.keywords.save(Keyword(name=normalized))
        except ValueError:
            # lost a race with a concurrent add of the same name
            logger.warning(f"[keyword] duplicate keyword: {normalized}")
            return None
        logger.info(f"[keyword] added id={saved.id} name={saved.name}")
        return saved

    def set_status(self, keyword_id: int, status: KeywordStatus) -> Optional[Keyword]:
        """
        Move a keyword to `status`.

        Returns:
            The updated keyword, or None when it does not exist
        """
        keyword = self.keywords.find_by_id(keyword_id)
        if keyword is None:
            return None

        new_status = KeywordStatus(status)
        old_status = keyword.status
        if old_status == new_status:
            logger.debug(f"[keyword] status unchanged: id={keyword_id} status={new_status.value}")
            return keyword

        keyword.status = new_status
        saved = self.keywords.save(keyword)

        if new_status == KeywordStatus.ARCHIVED:
            deactivated = self.articles.deactivate_by_keyword(saved.name, DeactivationReason.ARCHIVED)
            logger.info(f"[keyword] archived id={keyword_id} name={saved.name} deactivated={deactivated}")

        if new_status == KeywordStatus.ACTIVE:
            reactivated = self.articles.reactivate_by_keyword(saved.name)
            if reactivated:
                logger.info(f"[keyword] reactivated id={keyword_id} name={saved.name} articles={reactivated}")

        logger.info(f"[keyword] status id={keyword_id} name={saved.name} {old_status.value} -> {new_status.value}")

        if old_status == KeywordStatus.ACTIVE or new_status == KeywordStatus.ACTIVE:
            self._rebuild_index_async()
        return saved

    def delete_keyword(self, keyword_id: int) -> bool:
        """Soft-delete the keyword's articles and remove the keyword record."""
        keyword = self.keywords.find_by_id(keyword_id)
        if keyword is None:
            return False

        deactivated = self.articles.deactivate_by_keyword(keyword.name, DeactivationReason.DELETED)
        self.keywords.delete(keyword_id)
        logger.info(f"[keyword] deleted id={keyword_id} name={keyword.name} deactivated={deactivated}")
        self._rebuild_index_async()
        return True

    def _rebuild_index_async(self) -> None:
        if self.index is None:
            return
        self.index.rebuild_async()
