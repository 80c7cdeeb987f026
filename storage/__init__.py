"""
Storage Module
Repositories, the vector store and the retrieval index
"""
from .vector_store import (
    BaseVectorStore,
    QdrantVectorStore,
    StoredPoint,
    SearchResult,
)
from .repositories import (
    ArticleRepository,
    KeywordRepository,
    UrlLedger,
    InMemoryArticleRepository,
    InMemoryKeywordRepository,
    InMemoryUrlLedger,
)
from .news_index import NewsIndexManager, is_index_eligible

__all__ = [
    # Vector Store
    "BaseVectorStore",
    "QdrantVectorStore",
    "StoredPoint",
    "SearchResult",
    # Repositories
    "ArticleRepository",
    "KeywordRepository",
    "UrlLedger",
    "InMemoryArticleRepository",
    "InMemoryKeywordRepository",
    "InMemoryUrlLedger",
    # Retrieval index
    "NewsIndexManager",
    "is_index_eligible",
]
