from __future__ import annotations

import time
from datetime import datetime, timedelta

import pytest

from config.settings import IndexSettings, IngestionSettings
from conftest import FIXED_NOW, make_article
from core import RunTrigger
from orchestrator.scheduler import DailyJob, MaintenanceScheduler, _parse_run_at


class FakeOrchestrator:
    def __init__(self, accept: bool = True) -> None:
        self.accept = accept
        self.triggers = 0

    def start_run(self) -> RunTrigger:
        self.triggers += 1
        return RunTrigger(accepted=self.accept, message="" if self.accept else "collection already running")


class FakeIndex:
    def __init__(self, fail_rebuild: bool = False) -> None:
        self.fail_rebuild = fail_rebuild
        self.flushes = 0
        self.rebuilds = 0

    def flush_if_dirty(self) -> bool:
        self.flushes += 1
        return True

    def rebuild(self) -> bool:
        self.rebuilds += 1
        if self.fail_rebuild:
            raise RuntimeError("embedding backend down")
        return True


def _local(day: int, hour: int, minute: int = 0) -> datetime:
    # naive -> aware in the machine's local zone
    return datetime(2026, 6, day, hour, minute).astimezone()


def _scheduler(articles, orchestrator=None, index=None, clock=lambda: FIXED_NOW):
    return MaintenanceScheduler(
        orchestrator or FakeOrchestrator(),
        index or FakeIndex(),
        articles,
        ingestion=IngestionSettings(collect_interval_hours=4, retention_days=30, purge_at="03:30"),
        index_settings=IndexSettings(flush_interval_seconds=30, rebuild_at="03:00"),
        clock=clock,
    )


@pytest.mark.parametrize(
    "value,expected",
    [("03:00", (3, 0)), ("23:59", (23, 59)), ("7:5", (7, 5)), ("25:99", (23, 59)), ("bad", (3, 0)), ("", (3, 0))],
)
def test_parse_run_at(value, expected) -> None:
    assert _parse_run_at(value) == expected


def test_daily_job_runs_once_per_day() -> None:
    job = DailyJob(name="rebuild", run_at="03:00", action=lambda: None)
    assert not job.is_due(_local(10, 2, 59))
    assert job.is_due(_local(10, 3, 0))
    job.last_triggered_on = _local(10, 3, 0).date()
    assert not job.is_due(_local(10, 23, 0))
    assert job.is_due(_local(11, 3, 1))


def test_interval_jobs_wait_one_interval_after_start(articles) -> None:
    orchestrator, index = FakeOrchestrator(), FakeIndex()
    scheduler = _scheduler(articles, orchestrator, index)
    start = _local(10, 1)

    assert scheduler.tick(start) == []
    assert scheduler.tick(start + timedelta(seconds=29)) == []
    assert scheduler.tick(start + timedelta(seconds=30)) == ["flush"]
    assert scheduler.tick(start + timedelta(seconds=45)) == []

    ran = scheduler.tick(start + timedelta(hours=4))
    assert "collect" in ran
    assert orchestrator.triggers == 1


def test_daily_jobs_fire_at_their_local_time(articles) -> None:
    index = FakeIndex()
    scheduler = _scheduler(articles, index=index)
    scheduler.tick(_local(10, 1))

    assert "rebuild" not in scheduler.tick(_local(10, 2, 59))
    assert "rebuild" in scheduler.tick(_local(10, 3, 0))
    assert "purge" not in scheduler.tick(_local(10, 3, 10))
    assert "purge" in scheduler.tick(_local(10, 3, 30))
    assert "rebuild" not in scheduler.tick(_local(10, 5, 0))
    assert index.rebuilds == 1


def test_rejected_scheduled_collection_is_not_an_error(articles) -> None:
    orchestrator = FakeOrchestrator(accept=False)
    scheduler = _scheduler(articles, orchestrator)
    start = _local(10, 1)
    scheduler.tick(start)

    assert "collect" in scheduler.tick(start + timedelta(hours=4))
    assert orchestrator.triggers == 1


def test_failing_job_does_not_stop_the_others(articles) -> None:
    index = FakeIndex(fail_rebuild=True)
    scheduler = _scheduler(articles, index=index)
    scheduler.tick(_local(10, 1))

    ran = scheduler.tick(_local(10, 4))

    assert index.rebuilds == 1
    assert "rebuild" not in ran
    assert "purge" in ran
    assert "flush" in ran


def test_purge_removes_expired_articles_only(articles, ledger) -> None:
    old = make_article(age_days=31, title="old")
    recent = make_article(age_days=29, title="recent")
    articles.save_all([old, recent])
    ledger.append_all([old.url, recent.url])

    deleted = _scheduler(articles).purge_expired()

    assert deleted == 1
    assert [a.title for a in articles.find_active_by_keyword("ai")] == ["recent"]
    assert ledger.exists(old.url)


def test_background_thread_starts_and_stops(articles) -> None:
    index = FakeIndex()
    scheduler = MaintenanceScheduler(
        FakeOrchestrator(),
        index,
        articles,
        index_settings=IndexSettings(flush_interval_seconds=0),
        tick_seconds=0.01,
    )

    scheduler.start()
    deadline = time.monotonic() + 5
    while index.flushes == 0 and time.monotonic() < deadline:
        time.sleep(0.01)
    scheduler.stop(timeout=5)

    assert index.flushes >= 1
    assert scheduler._thread is None
