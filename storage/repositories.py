"""Persistence interfaces for keywords, articles and the URL ledger.

The relational layer is an external collaborator; the in-memory classes here are
thread-safe reference implementations used by the CLI runtime and the tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from itertools import count
from threading import Lock
from typing import Dict, Iterable, List, Optional, Sequence, Set

from core import Article, DeactivationReason, Keyword, KeywordStatus, UrlLedgerEntry, utcnow


class KeywordRepository(ABC):
    """Source registry query surface."""

    @abstractmethod
    def save(self, keyword: Keyword) -> Keyword: ...

    @abstractmethod
    def find_by_id(self, keyword_id: int) -> Optional[Keyword]: ...

    @abstractmethod
    def find_by_name(self, name: str) -> Optional[Keyword]: ...

    @abstractmethod
    def find_by_status(self, status: KeywordStatus) -> List[Keyword]: ...

    @abstractmethod
    def find_all(self) -> List[Keyword]: ...

    @abstractmethod
    def delete(self, keyword_id: int) -> bool: ...

    def exists_by_name(self, name: str) -> bool:
        return self.find_by_name(name) is not None


class ArticleRepository(ABC):
    """Article store query surface."""

    @abstractmethod
    def save_all(self, articles: Sequence[Article]) -> List[Article]:
        """Persist a batch and return the stored copies with ids assigned."""

    @abstractmethod
    def find_by_id(self, article_id: int) -> Optional[Article]: ...

    @abstractmethod
    def find_active_by_keyword(self, keyword: str) -> List[Article]: ...

    @abstractmethod
    def find_for_index(self, keywords: Sequence[str], low_grade_max_score: int, since: datetime) -> List[Article]:
        """Active articles of the given keywords, scored above the LOW band, collected after `since`."""

    @abstractmethod
    def deactivate_by_keyword(self, keyword: str, reason: DeactivationReason = DeactivationReason.ARCHIVED) -> int:
        """Soft-delete every active article of a keyword, tagging them with `reason`."""

    @abstractmethod
    def reactivate_by_keyword(self, keyword: str) -> int:
        """Restore articles soft-deleted by archiving; superseded or deleted ones stay inactive."""

    @abstractmethod
    def count_active(self) -> int: ...

    @abstractmethod
    def count_active_between(self, start: datetime, end: datetime) -> int: ...

    @abstractmethod
    def latest_active(self) -> Optional[Article]: ...

    @abstractmethod
    def delete_collected_before(self, threshold: datetime) -> int:
        """Hard-delete articles collected before `threshold`. Returns deleted count."""


class UrlLedger(ABC):
    """Append-only record of every URL ever ingested."""

    @abstractmethod
    def exists(self, url: str) -> bool: ...

    @abstractmethod
    def all_urls(self) -> Set[str]: ...

    @abstractmethod
    def append_all(self, urls: Iterable[str]) -> int:
        """Record URLs not yet present. Returns how many were newly added."""


class InMemoryKeywordRepository(KeywordRepository):
    """Thread-safe keyword registry."""

    def __init__(self) -> None:
        self._rows: Dict[int, Keyword] = {}
        self._ids = count(1)
        self._lock = Lock()

    def save(self, keyword: Keyword) -> Keyword:
        with self._lock:
            stored = keyword.model_copy(deep=True)
            if stored.id is None:
                for existing in self._rows.values():
                    if existing.name == stored.name:
                        raise ValueError(f"keyword already exists: {stored.name}")
                stored.id = next(self._ids)
            self._rows[stored.id] = stored
            return stored.model_copy(deep=True)

    def find_by_id(self, keyword_id: int) -> Optional[Keyword]:
        with self._lock:
            row = self._rows.get(keyword_id)
            return row.model_copy(deep=True) if row else None

    def find_by_name(self, name: str) -> Optional[Keyword]:
        key = str(name or "").strip().lower()
        with self._lock:
            for row in self._rows.values():
                if row.name == key:
                    return row.model_copy(deep=True)
            return None

    def find_by_status(self, status: KeywordStatus) -> List[Keyword]:
        with self._lock:
            return [row.model_copy(deep=True) for row in self._rows.values() if row.status == status]

    def find_all(self) -> List[Keyword]:
        with self._lock:
            return [row.model_copy(deep=True) for row in self._rows.values()]

    def delete(self, keyword_id: int) -> bool:
        with self._lock:
            return self._rows.pop(keyword_id, None) is not None


class InMemoryArticleRepository(ArticleRepository):
    """Thread-safe article store with soft delete."""

    def __init__(self) -> None:
        self._rows: Dict[int, Article] = {}
        self._ids = count(1)
        self._lock = Lock()

    def save_all(self, articles: Sequence[Article]) -> List[Article]:
        """All or nothing: a URL conflict anywhere in the batch stores no row."""
        staged = [article.model_copy(deep=True) for article in articles]
        rewritten = {stored.id for stored in staged if stored.id is not None}
        with self._lock:
            claimed: Set[str] = set()
            for stored in staged:
                if not stored.is_active:
                    continue
                taken = stored.url in claimed or any(
                    row.is_active and row.url == stored.url and row.id not in rewritten
                    for row in self._rows.values()
                )
                if taken:
                    raise ValueError(f"active article already exists for url: {stored.url}")
                claimed.add(stored.url)

            saved: List[Article] = []
            for stored in staged:
                if stored.id is None:
                    stored.id = next(self._ids)
                self._rows[stored.id] = stored
                saved.append(stored.model_copy(deep=True))
        return saved

    def find_by_id(self, article_id: int) -> Optional[Article]:
        with self._lock:
            row = self._rows.get(article_id)
            return row.model_copy(deep=True) if row else None

    def find_active_by_keyword(self, keyword: str) -> List[Article]:
        with self._lock:
            rows = [row for row in self._rows.values() if row.keyword == keyword and row.is_active]
            return [row.model_copy(deep=True) for row in sorted(rows, key=lambda r: r.collected_at, reverse=True)]

    def find_for_index(self, keywords: Sequence[str], low_grade_max_score: int, since: datetime) -> List[Article]:
        names = set(keywords)
        with self._lock:
            return [
                row.model_copy(deep=True)
                for row in self._rows.values()
                if row.is_active
                and row.keyword in names
                and row.final_score > low_grade_max_score
                and row.collected_at > since
            ]

    def deactivate_by_keyword(self, keyword: str, reason: DeactivationReason = DeactivationReason.ARCHIVED) -> int:
        changed = 0
        with self._lock:
            for row in self._rows.values():
                if row.keyword == keyword and row.is_active:
                    row.is_active = False
                    row.inactive_reason = reason
                    changed += 1
        return changed

    def reactivate_by_keyword(self, keyword: str) -> int:
        changed = 0
        with self._lock:
            for row in sorted(self._rows.values(), key=lambda r: r.id or 0):
                if row.keyword != keyword or row.is_active:
                    continue
                if row.inactive_reason != DeactivationReason.ARCHIVED:
                    continue
                # an inactive URL stays inactive while another live article owns it
                if self._active_url_taken(row.url, exclude_id=row.id):
                    continue
                row.is_active = True
                row.inactive_reason = None
                changed += 1
        return changed

    def count_active(self) -> int:
        with self._lock:
            return sum(1 for row in self._rows.values() if row.is_active)

    def count_active_between(self, start: datetime, end: datetime) -> int:
        with self._lock:
            return sum(1 for row in self._rows.values() if row.is_active and start <= row.collected_at <= end)

    def latest_active(self) -> Optional[Article]:
        with self._lock:
            rows = [row for row in self._rows.values() if row.is_active]
            if not rows:
                return None
            return max(rows, key=lambda r: r.collected_at).model_copy(deep=True)

    def delete_collected_before(self, threshold: datetime) -> int:
        with self._lock:
            stale = [row_id for row_id, row in self._rows.items() if row.collected_at < threshold]
            for row_id in stale:
                del self._rows[row_id]
            return len(stale)

    def _active_url_taken(self, url: str, *, exclude_id: Optional[int]) -> bool:
        return any(
            row.is_active and row.url == url and row.id != exclude_id
            for row in self._rows.values()
        )


class InMemoryUrlLedger(UrlLedger):
    """Thread-safe URL ledger. Entries are never removed."""

    def __init__(self) -> None:
        self._entries: Dict[str, UrlLedgerEntry] = {}
        self._lock = Lock()

    def exists(self, url: str) -> bool:
        with self._lock:
            return url in self._entries

    def all_urls(self) -> Set[str]:
        with self._lock:
            return set(self._entries)

    def append_all(self, urls: Iterable[str]) -> int:
        added = 0
        now = utcnow()
        with self._lock:
            for url in urls:
                if not url or url in self._entries:
                    continue
                self._entries[url] = UrlLedgerEntry(url=url, first_seen_at=now)
                added += 1
        return added

    def get(self, url: str) -> Optional[UrlLedgerEntry]:
        with self._lock:
            entry = self._entries.get(url)
            return entry.model_copy() if entry else None
