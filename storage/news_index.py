"""
Retrieval Index Manager
Keeps a chunked, similarity-searchable view of recent, relevant articles.

The index is a materialized view over the article store: it can be thrown
away and rebuilt at any time. The live index is an in-memory Qdrant
collection; the snapshot is an on-disk Qdrant collection that single-article
updates reach only through the periodic dirty flush. Rebuilds construct a
fresh store and swap it in, so concurrent searches never see a half-built
index. Articles indexed while a rebuild runs are replayed into the fresh store
before the swap.
"""
from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Collection, Dict, List, Optional, Tuple

from config.settings import IndexSettings
from core import Article, KeywordStatus, utcnow
from processing.chunker import ChunkingStrategy, DocumentChunk, TextChunker
from processing.embedder import BaseEmbedder
from storage.repositories import ArticleRepository, KeywordRepository
from storage.vector_store import QdrantVectorStore, SearchResult
from utils.exceptions import NewsRadarError


logger = logging.getLogger(__name__)


def is_index_eligible(
    article: Article,
    active_keywords: Optional[Collection[str]],
    now: datetime,
    *,
    days: int = 7,
    low_grade_max_score: int = 39,
) -> bool:
    """
    Index membership predicate.

    An article qualifies when it is active, scored above the LOW band and
    collected within the last `days` days. When `active_keywords` is given the
    article's keyword must also be in it.
    """
    if not article.is_active:
        return False
    if article.final_score <= low_grade_max_score:
        return False
    if article.collected_at <= now - timedelta(days=days):
        return False
    if active_keywords is not None and article.keyword not in active_keywords:
        return False
    return True


class NewsIndexManager:
    """
    Retrieval index over scored articles

    Usage:
        index = NewsIndexManager(articles, keywords, embedder, path="./data/qdrant")
        index.initialize()
        index.add_or_update(article)
        hits = index.search("gpu export rules", top_k=5, threshold=0.3)
    """

    def __init__(
        self,
        articles: ArticleRepository,
        keywords: KeywordRepository,
        embedder: BaseEmbedder,
        settings: Optional[IndexSettings] = None,
        path: Optional[str] = None,
        clock: Callable[[], datetime] = utcnow,
        collection_name: str = "news_radar",
    ):
        self.articles = articles
        self.keywords = keywords
        self.embedder = embedder
        self.settings = settings or IndexSettings()
        self.path = path
        self.collection_name = collection_name
        self._clock = clock

        self.chunker = TextChunker(
            strategy=ChunkingStrategy(self.settings.strategy),
            chunk_size=self.settings.chunk_size,
            chunk_overlap=self.settings.chunk_overlap,
            min_chunk_size=self.settings.min_chunk_size,
        )

        self._store = self._new_store()
        self._store_lock = Lock()
        # article id -> (keyword, chunks) indexed while a rebuild is running
        self._pending: Optional[Dict[int, Tuple[str, List[DocumentChunk]]]] = None
        self._dirty = False
        self._dirty_lock = Lock()
        self._rebuild_lock = Lock()
        self._snapshot: Optional[QdrantVectorStore] = None
        self._snapshot_lock = Lock()
        self._rebuild_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="index-rebuild")

    def _new_store(self) -> QdrantVectorStore:
        return QdrantVectorStore(self.embedder, collection_name=self.collection_name)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load the persisted snapshot, then rebuild from the article store."""
        self.load_snapshot()
        self.rebuild()

    def load_snapshot(self) -> int:
        """
        Serve the persisted snapshot as the live index, without rebuilding.

        The snapshot itself is left as it is on disk.

        Returns:
            Number of chunks loaded
        """
        if not self.path or not Path(self.path).exists():
            return 0
        try:
            loaded = self._new_store()
            with self._snapshot_lock:
                copied = self._open_snapshot().copy_to(loaded)
        except NewsRadarError as exc:
            logger.warning(f"[index] snapshot unreadable, starting empty: {exc}")
            return 0
        with self._store_lock:
            self._store = loaded
        logger.info(f"[index] loaded {copied} chunks from {self.path}")
        return copied

    def shutdown(self) -> None:
        """Wait for pending rebuilds, write any unflushed updates and release the snapshot."""
        self._rebuild_executor.shutdown(wait=True)
        self.flush_if_dirty()
        with self._snapshot_lock:
            if self._snapshot is not None:
                self._snapshot.close()
                self._snapshot = None

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def add_or_update(self, article: Article, active_keywords: Optional[Collection[str]] = None) -> bool:
        """
        Index one persisted article, replacing any previous chunks for it.

        Ineligible articles are skipped; existing entries are never removed
        here, only a rebuild enforces removal.

        Returns:
            True when the article was indexed
        """
        if article.id is None:
            logger.warning(f"[index] skipping unsaved article: {article.url}")
            return False
        if not is_index_eligible(
            article,
            active_keywords,
            self._clock(),
            days=self.settings.days,
            low_grade_max_score=self.settings.low_grade_max_score,
        ):
            logger.debug(f"[index] not eligible: id={article.id} score={article.final_score}")
            return False

        chunks = self.build_chunks(article)
        with self._store_lock:
            store = self._store
            if self._pending is not None:
                self._pending[article.id] = (article.keyword, chunks)
        try:
            self._replace(store, article.id, chunks)
        except NewsRadarError as exc:
            logger.warning(f"[index] failed to index article {article.id}: {exc}")
            return False

        self._mark_dirty()
        logger.debug(f"[index] indexed article {article.id} ({len(chunks)} chunks)")
        return True

    @staticmethod
    def _replace(store: QdrantVectorStore, article_id: int, chunks: List[DocumentChunk]) -> None:
        store.delete_where("article_id", article_id)
        store.add_chunks(chunks)

    def build_chunks(self, article: Article) -> List[DocumentChunk]:
        """Chunk an article, prefixing the title onto every chunk."""
        base_metadata: Dict[str, Any] = {
            "article_id": article.id,
            "title": article.title,
            "url": article.url,
            "keyword": article.keyword,
            "score": article.final_score,
            "category": article.category,
            "summary": article.summary,
            "ai_reason": article.ai_reason,
        }

        body = (article.body or "").strip()
        pieces = self.chunker.chunk(body, doc_id=str(article.id)) if body else []
        if pieces:
            return [
                DocumentChunk(
                    id=f"{article.id}_{piece.index}",
                    content=f"{article.title}\n{piece.content}",
                    metadata={**base_metadata, "chunk_index": piece.index},
                    index=piece.index,
                    start_char=piece.start_char,
                    end_char=piece.end_char,
                )
                for piece in pieces
            ]

        fallback = "\n".join(part for part in (article.title, article.summary, article.ai_reason) if part)
        fallback = fallback[: self.settings.fallback_max_chars]
        return [
            DocumentChunk(
                id=f"{article.id}_0",
                content=fallback,
                metadata={**base_metadata, "chunk_index": 0},
            )
        ]

    def rebuild(self) -> bool:
        """
        Rebuild the whole index from the article store and persist it.

        On failure the previous index stays in place.

        Returns:
            True when the new index was swapped in
        """
        with self._rebuild_lock:
            with self._store_lock:
                self._pending = {}
            try:
                active = [keyword.name for keyword in self.keywords.find_by_status(KeywordStatus.ACTIVE)]
                fresh = self._new_store()
                indexed = 0

                if active:
                    now = self._clock()
                    since = now - timedelta(days=self.settings.days)
                    candidates = self.articles.find_for_index(active, self.settings.low_grade_max_score, since)
                    chunks: List[DocumentChunk] = []
                    for article in candidates:
                        if not is_index_eligible(
                            article,
                            active,
                            now,
                            days=self.settings.days,
                            low_grade_max_score=self.settings.low_grade_max_score,
                        ):
                            continue
                        chunks.extend(self.build_chunks(article))
                        indexed += 1
                    if chunks:
                        fresh.add_chunks(chunks)

                self._replay_pending(fresh, active)
                with self._store_lock:
                    # late arrivals, replayed under the lock so none can slip past the swap
                    late, self._pending = self._pending or {}, None
                    self._apply_pending(fresh, late, active)
                    self._store = fresh
            except Exception as exc:
                with self._store_lock:
                    self._pending = None
                logger.error(f"[index] rebuild failed, keeping previous index: {exc}")
                return False

            with self._dirty_lock:
                self._dirty = False

            logger.info(f"[index] rebuilt: {indexed} articles, {fresh.count()} chunks, {len(active)} active keywords")
            if not self._persist(fresh):
                self._mark_dirty()
            return True

    def _replay_pending(self, fresh: QdrantVectorStore, active: Collection[str]) -> None:
        while True:
            with self._store_lock:
                if not self._pending:
                    return
                pending, self._pending = self._pending, {}
            self._apply_pending(fresh, pending, active)

    def _apply_pending(
        self,
        fresh: QdrantVectorStore,
        pending: Dict[int, Tuple[str, List[DocumentChunk]]],
        active: Collection[str],
    ) -> None:
        for article_id, (keyword, chunks) in pending.items():
            if keyword in active:
                self._replace(fresh, article_id, chunks)
        if pending:
            logger.debug(f"[index] replayed {len(pending)} articles indexed during rebuild")

    def rebuild_async(self) -> Optional[Future]:
        """Schedule a rebuild on the background rebuild worker."""
        try:
            return self._rebuild_executor.submit(self.rebuild)
        except RuntimeError as exc:
            logger.warning(f"[index] rebuild not scheduled, manager is shut down: {exc}")
            return None

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    def flush_if_dirty(self) -> bool:
        """Write the snapshot if single-item updates are pending."""
        with self._dirty_lock:
            if not self._dirty:
                return False
            self._dirty = False

        with self._store_lock:
            store = self._store
        if not self._persist(store):
            self._mark_dirty()
            return False
        return True

    @property
    def is_dirty(self) -> bool:
        with self._dirty_lock:
            return self._dirty

    def _mark_dirty(self) -> None:
        with self._dirty_lock:
            self._dirty = True

    def _open_snapshot(self) -> QdrantVectorStore:
        if self._snapshot is None:
            self._snapshot = QdrantVectorStore(
                self.embedder,
                collection_name=self.collection_name,
                persist_directory=self.path,
            )
        return self._snapshot

    def _persist(self, store: QdrantVectorStore) -> bool:
        if not self.path:
            return True
        try:
            with self._snapshot_lock:
                copied = store.copy_to(self._open_snapshot())
        except NewsRadarError as exc:
            logger.error(f"[index] failed to persist snapshot: {exc}")
            return False
        logger.debug(f"[index] snapshot written: {copied} chunks to {self.path}")
        return True

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        top_k: int = 5,
        threshold: float = 0.0,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[SearchResult]:
        """Rank indexed chunks against a query."""
        if not query or not query.strip():
            return []
        with self._store_lock:
            store = self._store
        return store.search_with_score(query, top_k=top_k, score_threshold=threshold, filter=filter)

    def count(self) -> int:
        with self._store_lock:
            return self._store.count()
