"""Ingestion orchestrator: single-flight collection runs with a progress protocol.

A run walks every ACTIVE keyword in order. For each keyword it fetches
candidates, re-checks them against the URL ledger, batch-scores the survivors,
persists them in one write, records their URLs and hands each article to the
retrieval index. Keyword ``i`` of ``n`` owns the percentage slice
``[i*100//n, (i+1)*100//n]`` so overall progress never goes backwards.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from config.settings import IngestionSettings
from core import (
    Article,
    CollectionStatus,
    DeactivationReason,
    KeywordStatus,
    ProgressEvent,
    ProgressEventType,
    RawItem,
    RunTrigger,
    utcnow,
)
from scoring.importance import ImportanceScorer
from sources.base import ContentFetcher
from storage.news_index import NewsIndexManager
from storage.repositories import ArticleRepository, KeywordRepository, UrlLedger
from .guard import RunGuard
from .progress import ProgressListener, ProgressListenerRegistry


logger = logging.getLogger(__name__)

ALREADY_RUNNING = "collection already running"


@dataclass(frozen=True)
class KeywordSlice:
    """Percentage range owned by one keyword of a run."""

    position: int
    total: int

    @property
    def start(self) -> int:
        return self.position * 100 // self.total

    @property
    def end(self) -> int:
        return (self.position + 1) * 100 // self.total

    @property
    def span(self) -> int:
        return self.end - self.start

    @property
    def crawl_done(self) -> int:
        return self.start + self.span // 4

    @property
    def filter_done(self) -> int:
        return self.start + self.span // 3

    @property
    def ai_eval_begin(self) -> int:
        return self.start + self.span // 2

    @property
    def save_done(self) -> int:
        return max(self.start, self.end - 1)


class IngestionOrchestrator:
    """
    Coordinates collection runs.

    Usage:
        orchestrator = IngestionOrchestrator(keywords, articles, ledger, fetcher, scorer, index)
        orchestrator.subscribe(LoggingProgressListener())
        trigger = orchestrator.start_run()   # returns at once; the run continues in the background
    """

    def __init__(
        self,
        keywords: KeywordRepository,
        articles: ArticleRepository,
        ledger: UrlLedger,
        fetcher: ContentFetcher,
        scorer: ImportanceScorer,
        index: Optional[NewsIndexManager] = None,
        guard: Optional[RunGuard] = None,
        settings: Optional[IngestionSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.keywords = keywords
        self.articles = articles
        self.ledger = ledger
        self.fetcher = fetcher
        self.scorer = scorer
        self.index = index
        self.guard = guard or RunGuard()
        self.settings = settings or IngestionSettings()
        self._clock = clock
        self._listeners = ProgressListenerRegistry()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="collector")
        self._last_future: Optional[Future] = None

    # ------------------------------------------------------------------
    # trigger surface
    # ------------------------------------------------------------------

    def start_run(self) -> RunTrigger:
        """Start a full collection in the background, unless one is already running."""
        if not self.guard.try_start():
            logger.warning("[collect] trigger rejected: a run is already in progress")
            return RunTrigger(accepted=False, message=ALREADY_RUNNING)
        return self._submit(self.run_collection)

    def collect_now(self) -> RunTrigger:
        """Run a full collection on the calling thread."""
        if not self.guard.try_start():
            return RunTrigger(accepted=False, message=ALREADY_RUNNING)
        self.run_collection()
        return RunTrigger(accepted=True, message="collection finished")

    def recollect_keyword(self, name: str) -> RunTrigger:
        """Archive a keyword's current articles and collect it again in the background."""
        keyword = self.keywords.find_by_name(name)
        if keyword is None:
            return RunTrigger(accepted=False, message=f"unknown keyword: {name}")
        if not self.guard.try_start():
            return RunTrigger(accepted=False, message=ALREADY_RUNNING)

        try:
            deactivated = self.articles.deactivate_by_keyword(keyword.name, DeactivationReason.SUPERSEDED)
        except Exception:
            self.guard.release()
            raise
        logger.info(f"[collect] recollect '{keyword.name}': {deactivated} articles archived")
        trigger = self._submit(lambda: self.run_collection(only=keyword.name))
        if trigger.accepted:
            trigger.message = f"articles for '{keyword.name}' archived; collecting again in the background"
        return trigger

    def _submit(self, job: Callable[[], None]) -> RunTrigger:
        try:
            self._last_future = self._executor.submit(job)
        except RuntimeError as exc:
            self.guard.release()
            self._listeners.close_all()
            logger.error(f"[collect] executor unavailable: {exc}")
            return RunTrigger(accepted=False, message="orchestrator is shut down")
        return RunTrigger(accepted=True, message="collection started")

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the most recently submitted run finishes."""
        if self._last_future is not None:
            self._last_future.result(timeout=timeout)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: ProgressListener) -> None:
        """Register a sink; a sink joining mid-run is told a run is in progress."""
        self._listeners.add(listener)
        if self.guard.running:
            listener.on_progress(
                ProgressEvent(
                    type=ProgressEventType.STARTED,
                    message="collection already in progress",
                    percentage=-1,
                )
            )

    def unsubscribe(self, listener: ProgressListener) -> bool:
        return self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _emit(self, event_type: ProgressEventType, **fields) -> None:
        self._listeners.publish(ProgressEvent(type=event_type, **fields))

    # ------------------------------------------------------------------
    # run body
    # ------------------------------------------------------------------

    def run_collection(self, only: Optional[str] = None) -> None:
        """
        Worker body. The caller must already hold the guard; it is released here.

        Args:
            only: collect just this keyword instead of every ACTIVE one
        """
        completed = False
        percentage = 0
        try:
            active = [keyword.name for keyword in self.keywords.find_by_status(KeywordStatus.ACTIVE)]
            targets = [only] if only else active

            if not targets:
                logger.info("[collect] no active keywords, nothing to do")
                self._emit(
                    ProgressEventType.COMPLETED,
                    message="no active keywords",
                    percentage=100,
                    count=0,
                )
                completed = True
                return

            total = len(targets)
            logger.info(f"[collect] run started: {total} keywords")
            self._emit(
                ProgressEventType.STARTED,
                message=f"collecting {total} keywords",
                total_steps=total,
                percentage=0,
            )

            saved_total = 0
            for position, name in enumerate(targets):
                span = KeywordSlice(position, total)
                saved_total += self._collect_keyword(name, span, active)
                percentage = span.end

            self._emit(
                ProgressEventType.COMPLETED,
                message=f"collection finished: {saved_total} new articles",
                current_step=total,
                total_steps=total,
                percentage=100,
                count=saved_total,
            )
            logger.info(f"[collect] run finished: {saved_total} new articles")
            completed = True

        except Exception as exc:
            logger.exception("[collect] run failed")
            self._emit(
                ProgressEventType.ERROR,
                message=f"collection failed: {exc}",
                percentage=percentage,
            )
        finally:
            self.guard.release(completed_at=self._clock() if completed else None)
            self._listeners.close_all()

        if only and self.index is not None:
            # archived articles leave the index only on rebuild
            self.index.rebuild_async()

    def _collect_keyword(self, name: str, span: KeywordSlice, active: Sequence[str]) -> int:
        step = span.position + 1
        self._emit(
            ProgressEventType.KEYWORD_BEGIN,
            keyword=name,
            message=f"collecting '{name}'",
            current_step=step,
            total_steps=span.total,
            percentage=span.start,
        )
        try:
            saved = self._ingest_keyword(name, span, active)
        except Exception as exc:
            logger.error(f"[collect] keyword '{name}' failed: {exc}")
            self._emit(
                ProgressEventType.ERROR,
                keyword=name,
                message=f"'{name}' failed: {exc}",
                current_step=step,
                total_steps=span.total,
                percentage=span.end,
            )
            return 0

        self._emit(
            ProgressEventType.KEYWORD_COMPLETE,
            keyword=name,
            message=f"'{name}': {saved} new articles",
            current_step=step,
            total_steps=span.total,
            percentage=span.end,
            count=saved,
        )
        return saved

    def _ingest_keyword(self, name: str, span: KeywordSlice, active: Sequence[str]) -> int:
        step = span.position + 1

        def emit(event_type: ProgressEventType, message: str, percentage: int, count: int) -> None:
            self._emit(
                event_type,
                keyword=name,
                message=message,
                current_step=step,
                total_steps=span.total,
                percentage=percentage,
                count=count,
            )

        # 1. fetch, pre-filtered with the ledger snapshot
        candidates = self.fetcher.fetch(name, self.ledger.all_urls())
        emit(ProgressEventType.CRAWL_DONE, f"fetched {len(candidates)} candidates", span.crawl_done, len(candidates))

        # 2. authoritative ledger re-check
        fresh = self._filter_new(candidates)
        emit(ProgressEventType.FILTER_DONE, f"{len(fresh)} new after dedup", span.filter_done, len(fresh))
        if not fresh:
            logger.info(f"[collect] '{name}': no new items")
            return 0

        # 3. batch scoring
        emit(ProgressEventType.AI_EVAL_BEGIN, f"evaluating {len(fresh)} articles", span.ai_eval_begin, len(fresh))
        context = list(active) if name in active else list(active) + [name]
        scored = self.scorer.score_with_evaluation(fresh, context)

        # 4. one batch write
        collected_at = self._clock()
        rows = [
            Article(
                title=item.title,
                url=item.url,
                keyword=name,
                body=item.body,
                scores=breakdown,
                category=evaluation.category,
                ai_reason=evaluation.reason,
                summary=evaluation.summary,
                collected_at=collected_at,
            )
            for item, (breakdown, evaluation) in zip(fresh, scored)
        ]
        saved = self.articles.save_all(rows)

        # 5. ledger
        self.ledger.append_all(article.url for article in saved)
        emit(ProgressEventType.SAVE_DONE, f"saved {len(saved)} articles", span.save_done, len(saved))

        # 6. index
        if self.index is not None:
            for article in saved:
                self.index.add_or_update(article, active)

        logger.info(f"[collect] '{name}': {len(saved)} saved")
        return len(saved)

    def _filter_new(self, candidates: Sequence[RawItem]) -> List[RawItem]:
        fresh: List[RawItem] = []
        seen = set()
        for item in candidates:
            if not item.url or item.url in seen:
                continue
            seen.add(item.url)
            if self.ledger.exists(item.url):
                continue
            fresh.append(item)
        return fresh

    # ------------------------------------------------------------------
    # status
    # ------------------------------------------------------------------

    def status(self) -> CollectionStatus:
        now = self._clock()
        local_now = now.astimezone()
        day_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1) - timedelta(microseconds=1)

        last_completed = self.guard.last_completed_at
        if last_completed is None:
            latest = self.articles.latest_active()
            last_completed = latest.collected_at if latest else None

        return CollectionStatus(
            running=self.guard.running,
            total_articles=self.articles.count_active(),
            today_articles=self.articles.count_active_between(day_start, day_end),
            active_keyword_count=len(self.keywords.find_by_status(KeywordStatus.ACTIVE)),
            last_completed_at=last_completed,
        )
