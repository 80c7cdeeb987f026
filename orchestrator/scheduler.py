"""Maintenance scheduler: periodic collection, index flush, daily rebuild and purge."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from threading import Event, Lock, Thread
from typing import Callable, List, Optional, Tuple

from config.settings import IndexSettings, IngestionSettings
from core import utcnow
from storage.news_index import NewsIndexManager
from storage.repositories import ArticleRepository
from .service import IngestionOrchestrator


logger = logging.getLogger(__name__)


def _parse_run_at(run_at: str, default: Tuple[int, int] = (3, 0)) -> Tuple[int, int]:
    text = str(run_at or "").strip()
    parts = text.split(":")
    if len(parts) != 2:
        return default
    try:
        hour = max(0, min(23, int(parts[0])))
        minute = max(0, min(59, int(parts[1])))
        return hour, minute
    except ValueError:
        return default


@dataclass
class DailyJob:
    """A job that runs once per local day after its run_at time."""

    name: str
    run_at: str
    action: Callable[[], object]
    last_triggered_on: Optional[date] = None

    def is_due(self, local_now: datetime) -> bool:
        hour, minute = _parse_run_at(self.run_at)
        if local_now.hour * 60 + local_now.minute < hour * 60 + minute:
            return False
        return self.last_triggered_on != local_now.date()


@dataclass
class IntervalJob:
    """A job that runs every `interval`; the first run happens one interval after start."""

    name: str
    interval: timedelta
    action: Callable[[], object]
    next_run_at: Optional[datetime] = None

    def is_due(self, now: datetime) -> bool:
        if self.next_run_at is None:
            self.next_run_at = now + self.interval
            return False
        return now >= self.next_run_at


class MaintenanceScheduler:
    """
    Background scheduler driven by tick(now).

    Jobs:
    - collection every `collect_interval_hours`
    - index flush-if-dirty every `flush_interval_seconds`
    - index rebuild daily at `rebuild_at` (local time)
    - article purge daily at `purge_at` (local time); the URL ledger is never purged
    """

    def __init__(
        self,
        orchestrator: IngestionOrchestrator,
        index: NewsIndexManager,
        articles: ArticleRepository,
        ingestion: Optional[IngestionSettings] = None,
        index_settings: Optional[IndexSettings] = None,
        clock: Callable[[], datetime] = utcnow,
        tick_seconds: float = 1.0,
    ) -> None:
        self.orchestrator = orchestrator
        self.index = index
        self.articles = articles
        self.ingestion = ingestion or IngestionSettings()
        self.index_settings = index_settings or IndexSettings()
        self._clock = clock
        self.tick_seconds = tick_seconds

        self.interval_jobs: List[IntervalJob] = [
            IntervalJob(
                name="collect",
                interval=timedelta(hours=self.ingestion.collect_interval_hours),
                action=self._collect,
            ),
            IntervalJob(
                name="flush",
                interval=timedelta(seconds=self.index_settings.flush_interval_seconds),
                action=self.index.flush_if_dirty,
            ),
        ]
        self.daily_jobs: List[DailyJob] = [
            DailyJob(name="rebuild", run_at=self.index_settings.rebuild_at, action=self.index.rebuild),
            DailyJob(name="purge", run_at=self.ingestion.purge_at, action=self.purge_expired),
        ]

        self._lock = Lock()
        self._stop = Event()
        self._thread: Optional[Thread] = None

    def _collect(self) -> None:
        trigger = self.orchestrator.start_run()
        if not trigger.accepted:
            logger.info(f"[scheduler] scheduled collection skipped: {trigger.message}")

    def purge_expired(self) -> int:
        """Hard-delete articles older than the retention window."""
        threshold = self._clock() - timedelta(days=self.ingestion.retention_days)
        deleted = self.articles.delete_collected_before(threshold)
        logger.info(f"[scheduler] purged {deleted} articles collected before {threshold.isoformat()}")
        return deleted

    def tick(self, now: Optional[datetime] = None) -> List[str]:
        """Run every job that is due at `now`. Returns the names of jobs that ran."""
        now = now or self._clock()
        local_now = now.astimezone()
        ran: List[str] = []

        with self._lock:
            for job in self.interval_jobs:
                if job.is_due(now):
                    job.next_run_at = now + job.interval
                    if self._run(job.name, job.action):
                        ran.append(job.name)
            for job in self.daily_jobs:
                if job.is_due(local_now):
                    job.last_triggered_on = local_now.date()
                    if self._run(job.name, job.action):
                        ran.append(job.name)
        return ran

    @staticmethod
    def _run(name: str, action: Callable[[], object]) -> bool:
        try:
            action()
        except Exception:
            logger.exception(f"[scheduler] job '{name}' failed")
            return False
        logger.debug(f"[scheduler] job '{name}' ran")
        return True

    # ------------------------------------------------------------------
    # background thread
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = Thread(target=self._loop, name="maintenance-scheduler", daemon=True)
        self._thread.start()
        logger.info("[scheduler] started")

    def _loop(self) -> None:
        while not self._stop.wait(self.tick_seconds):
            self.tick()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("[scheduler] stopped")
