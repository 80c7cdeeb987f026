"""
Settings Configuration
Pydantic-based configuration loading and validation
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


_DEFAULT_MAJOR_DOMAINS = [
    # international outlets
    "reuters.com", "bloomberg.com", "nytimes.com", "wsj.com",
    "ft.com", "bbc.com", "apnews.com",
    # global tech majors
    "techcrunch.com", "wired.com", "theverge.com", "arstechnica.com",
    "venturebeat.com",
    # korean national press
    "yna.co.kr", "chosun.com", "joongang.co.kr", "joins.com",
    "donga.com", "mk.co.kr", "hankyung.com", "kbs.co.kr", "sbs.co.kr",
    "ytn.co.kr", "sedaily.com", "edaily.co.kr",
]

_DEFAULT_STANDARD_DOMAINS = [
    "zdnet.com", "infoq.com", "thenewstack.io", "devops.com",
    "techradar.com", "towardsdatascience.com",
    "zdnet.co.kr", "itworld.co.kr", "ciokorea.com", "boannews.com",
    "etnews.com", "ddaily.co.kr", "aitimes.com", "digitaltoday.co.kr",
]


class LLMSettings(BaseSettings):
    """Completion service configuration"""
    provider: str = Field(default="openai", description="LLM provider: openai, deepseek")
    model_name: Optional[str] = Field(default=None, description="Model name (provider default when empty)")
    temperature: float = Field(default=0.2, description="Sampling temperature")
    max_tokens: int = Field(default=4096, description="Max completion tokens")

    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API Key")
    deepseek_api_key: Optional[str] = Field(default=None, description="DeepSeek API Key")

    class Config:
        env_prefix = "LLM_"


class EmbeddingSettings(BaseSettings):
    """Embedding service configuration"""
    provider: str = Field(default="openai", description="Embedding provider: openai, sentence_transformers")
    model_name: Optional[str] = Field(default=None, description="Model name (provider default when empty)")
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API Key")

    class Config:
        env_prefix = "EMBEDDING_"


class StorageSettings(BaseSettings):
    """Durable storage configuration"""
    vector_store_path: str = Field(default="./data/qdrant", description="On-disk Qdrant directory for the index snapshot")

    class Config:
        env_prefix = "STORAGE_"


class IndexSettings(BaseSettings):
    """Retrieval index policy"""
    days: int = Field(default=7, description="Only articles collected within this many days are indexed")
    low_grade_max_score: int = Field(default=39, description="Articles scoring at or below this are not indexed")
    strategy: str = Field(default="recursive", description="Chunking strategy")
    chunk_size: int = Field(default=800, description="Target chunk size (characters)")
    chunk_overlap: int = Field(default=80, description="Overlap between chunks (characters)")
    min_chunk_size: int = Field(default=5, description="Chunks shorter than this are dropped")
    fallback_max_chars: int = Field(default=1200, description="Cap for title+summary+reason fallback chunks")
    flush_interval_seconds: int = Field(default=30, description="Dirty flush period")
    rebuild_at: str = Field(default="03:00", description="Daily rebuild time (HH:MM, local)")

    class Config:
        env_prefix = "INDEX_"


class IngestionSettings(BaseSettings):
    """Collection run policy"""
    batch_size: int = Field(default=10, description="Articles per batch evaluation call")
    eval_delay_seconds: float = Field(default=0.5, description="Delay between per-article fallback calls")
    body_max_chars: int = Field(default=1500, description="Body characters sent to the evaluator")
    collect_interval_hours: int = Field(default=4, description="Scheduled collection period")
    retention_days: int = Field(default=30, description="Articles older than this are purged")
    purge_at: str = Field(default="03:00", description="Daily purge time (HH:MM, local)")
    subscription_timeout_seconds: int = Field(default=600, description="Hard cap on a progress subscription")
    max_items_per_keyword: int = Field(default=8, description="Fetcher result cap per keyword")

    class Config:
        env_prefix = "INGEST_"


class ScoringSettings(BaseSettings):
    """Source trust tiers"""
    major_domains: List[str] = Field(default_factory=lambda: list(_DEFAULT_MAJOR_DOMAINS))
    standard_domains: List[str] = Field(default_factory=lambda: list(_DEFAULT_STANDARD_DOMAINS))

    class Config:
        env_prefix = "SCORING_"


class Settings(BaseSettings):
    """Aggregated settings"""

    llm: LLMSettings = Field(default_factory=LLMSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    index: IndexSettings = Field(default_factory=IndexSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings, reading config/.env first when it exists."""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            llm=LLMSettings(),
            embedding=EmbeddingSettings(),
            storage=StorageSettings(),
            index=IndexSettings(),
            ingestion=IngestionSettings(),
            scoring=ScoringSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings singleton"""
    return Settings.load_from_env_file()


def get_llm_settings() -> LLMSettings:
    return get_settings().llm


def get_embedding_settings() -> EmbeddingSettings:
    return get_settings().embedding


def get_storage_settings() -> StorageSettings:
    return get_settings().storage


def get_index_settings() -> IndexSettings:
    return get_settings().index


def get_ingestion_settings() -> IngestionSettings:
    return get_settings().ingestion


def get_scoring_settings() -> ScoringSettings:
    return get_settings().scoring
