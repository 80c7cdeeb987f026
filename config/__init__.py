"""
Configuration Management Module
"""
from .settings import (
    Settings,
    LLMSettings,
    EmbeddingSettings,
    StorageSettings,
    IndexSettings,
    IngestionSettings,
    ScoringSettings,
    get_settings,
    get_llm_settings,
    get_embedding_settings,
    get_storage_settings,
    get_index_settings,
    get_ingestion_settings,
    get_scoring_settings,
)

__all__ = [
    "Settings",
    "LLMSettings",
    "EmbeddingSettings",
    "StorageSettings",
    "IndexSettings",
    "IngestionSettings",
    "ScoringSettings",
    "get_settings",
    "get_llm_settings",
    "get_embedding_settings",
    "get_storage_settings",
    "get_index_settings",
    "get_ingestion_settings",
    "get_scoring_settings",
]
