"""Shared runtime singletons for the CLI and long-running service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from config import Settings, get_settings
from intelligence.evaluator import ArticleEvaluator
from intelligence.llm import get_llm
from lifecycle.keyword_service import KeywordService
from processing.embedder import get_embedder
from scoring.importance import ImportanceScorer
from sources.base import FetcherManager
from sources.rss import RssSearchFetcher
from storage.news_index import NewsIndexManager
from storage.repositories import InMemoryArticleRepository, InMemoryKeywordRepository, InMemoryUrlLedger
from .scheduler import MaintenanceScheduler
from .service import IngestionOrchestrator


logger = logging.getLogger(__name__)


@dataclass
class NewsRadarRuntime:
    """Every wired component of one process."""

    settings: Settings
    keywords: InMemoryKeywordRepository
    articles: InMemoryArticleRepository
    ledger: InMemoryUrlLedger
    index: NewsIndexManager
    keyword_service: KeywordService
    orchestrator: IngestionOrchestrator
    scheduler: MaintenanceScheduler

    def start(self) -> None:
        """Load and rebuild the index, then start the maintenance scheduler."""
        self.index.initialize()
        self.scheduler.start()

    def shutdown(self) -> None:
        self.scheduler.stop()
        self.orchestrator.shutdown()
        self.index.shutdown()
        logger.info("runtime stopped")


def build_runtime(settings: Optional[Settings] = None) -> NewsRadarRuntime:
    settings = settings or get_settings()

    keywords = InMemoryKeywordRepository()
    articles = InMemoryArticleRepository()
    ledger = InMemoryUrlLedger()

    embedder = get_embedder()
    index = NewsIndexManager(
        articles,
        keywords,
        embedder,
        settings=settings.index,
        path=settings.storage.vector_store_path,
    )

    evaluator = ArticleEvaluator.from_settings(get_llm(), settings.ingestion)
    scorer = ImportanceScorer(
        evaluator,
        embedder,
        major_domains=settings.scoring.major_domains,
        standard_domains=settings.scoring.standard_domains,
    )
    fetcher = FetcherManager([RssSearchFetcher(max_items=settings.ingestion.max_items_per_keyword)])

    orchestrator = IngestionOrchestrator(
        keywords,
        articles,
        ledger,
        fetcher,
        scorer,
        index=index,
        settings=settings.ingestion,
    )
    scheduler = MaintenanceScheduler(
        orchestrator,
        index,
        articles,
        ingestion=settings.ingestion,
        index_settings=settings.index,
    )

    return NewsRadarRuntime(
        settings=settings,
        keywords=keywords,
        articles=articles,
        ledger=ledger,
        index=index,
        keyword_service=KeywordService(keywords, articles, index),
        orchestrator=orchestrator,
        scheduler=scheduler,
    )


@lru_cache()
def get_runtime() -> NewsRadarRuntime:
    """Process-wide runtime singleton"""
    return build_runtime()
