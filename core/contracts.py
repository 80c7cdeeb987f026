"""Canonical data contracts for the ingestion and indexing pipeline."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeywordStatus(str, Enum):
    """Keyword lifecycle state."""

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"


class Grade(str, Enum):
    """Four-bucket importance classification."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


def grade_for(score: int) -> Grade:
    """Map a final score onto its grade bucket."""
    if score >= 80:
        return Grade.CRITICAL
    if score >= 60:
        return Grade.HIGH
    if score >= 40:
        return Grade.MEDIUM
    return Grade.LOW


class Keyword(BaseModel):
    """Tracked keyword owned by the source registry."""

    id: Optional[int] = None
    name: str
    status: KeywordStatus = KeywordStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("name", mode="before")
    @classmethod
    def _normalize_name(cls, value: Any) -> str:
        text = str(value or "").strip().lower()
        if not text:
            raise ValueError("keyword name is required")
        return text


class RawItem(BaseModel):
    """Candidate item returned by a content fetcher."""

    title: str = ""
    url: str
    body: str = ""


class AiEvaluation(BaseModel):
    """Completion-service judgement of one article."""

    impact: int = 10
    innovation: int = 7
    timeliness: int = 7
    reason: str = "analysis unavailable"
    category: str = "General"
    summary: str = ""

    @classmethod
    def fallback(cls, reason: str = "analysis unavailable") -> "AiEvaluation":
        """Mid-range evaluation used when the completion call fails."""
        return cls(reason=reason)


class ScoreBreakdown(BaseModel):
    """Independently capped score components and their capped sum."""

    llm_score: int = Field(default=0, ge=0, le=50)
    structural_score: int = Field(default=0, ge=0, le=30)
    metadata_score: int = Field(default=0, ge=0, le=20)
    final_score: int = Field(default=0, ge=0, le=100)
    innovation: int = Field(default=0, ge=0, le=15)
    timeliness: int = Field(default=0, ge=0, le=15)

    @property
    def grade(self) -> Grade:
        return grade_for(self.final_score)


class DeactivationReason(str, Enum):
    """Why an article was soft-deleted."""

    ARCHIVED = "ARCHIVED"  # keyword archived; restored when the keyword returns to ACTIVE
    SUPERSEDED = "SUPERSEDED"  # replaced by a recollect
    DELETED = "DELETED"  # keyword removed


class Article(BaseModel):
    """Scored article as persisted in the article store."""

    id: Optional[int] = None
    title: str
    url: str
    keyword: str
    body: str = ""
    scores: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    category: str = ""
    ai_reason: str = ""
    summary: str = ""
    collected_at: datetime = Field(default_factory=utcnow)
    is_active: bool = True
    inactive_reason: Optional[DeactivationReason] = None

    @property
    def final_score(self) -> int:
        return self.scores.final_score

    @property
    def grade(self) -> Grade:
        return self.scores.grade


class UrlLedgerEntry(BaseModel):
    """Permanent record that a URL has been ingested."""

    url: str
    first_seen_at: datetime = Field(default_factory=utcnow)


class ProgressEventType(str, Enum):
    """Observable phases of a collection run."""

    STARTED = "STARTED"
    KEYWORD_BEGIN = "KEYWORD_BEGIN"
    CRAWL_DONE = "CRAWL_DONE"
    FILTER_DONE = "FILTER_DONE"
    AI_EVAL_BEGIN = "AI_EVAL_BEGIN"
    SAVE_DONE = "SAVE_DONE"
    KEYWORD_COMPLETE = "KEYWORD_COMPLETE"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


class ProgressEvent(BaseModel):
    """One progress notification pushed to every registered sink."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)

    type: ProgressEventType
    keyword: Optional[str] = None
    message: str = ""
    current_step: int = 0
    total_steps: int = 0
    percentage: int = Field(default=0, ge=-1, le=100)
    count: Optional[int] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), ensure_ascii=False)

    @property
    def is_terminal(self) -> bool:
        return self.type in (ProgressEventType.COMPLETED.value, ProgressEventType.ERROR.value) and self.keyword is None


class CollectionStatus(BaseModel):
    """Dashboard snapshot of the ingestion system."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    running: bool = False
    total_articles: int = 0
    today_articles: int = 0
    active_keyword_count: int = 0
    last_completed_at: Optional[datetime] = None


class RunTrigger(BaseModel):
    """Outcome of a run trigger: accepted, or rejected because a run is in flight."""

    accepted: bool
    message: str = ""
