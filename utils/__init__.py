"""
Utils Module
Shared helpers
"""
from .logger import setup_logger, get_logger, configure_root_logging
from .exceptions import (
    NewsRadarError,
    ConfigurationError,
    FetchError,
    StorageError,
    VectorStoreError,
    ProcessingError,
    ChunkingError,
    EmbeddingError,
    LLMError,
    EvaluationParseError,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "configure_root_logging",
    "NewsRadarError",
    "ConfigurationError",
    "FetchError",
    "StorageError",
    "VectorStoreError",
    "ProcessingError",
    "ChunkingError",
    "EmbeddingError",
    "LLMError",
    "EvaluationParseError",
]
