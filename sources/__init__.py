"""
Sources Module
Content fetchers consumed by the ingestion orchestrator
"""
from .base import ContentFetcher, FetcherManager
from .rss import RssSearchFetcher, extract_article_text

__all__ = [
    "ContentFetcher",
    "FetcherManager",
    "RssSearchFetcher",
    "extract_article_text",
]
