"""Core contracts and shared types for the ingestion pipeline."""

from .contracts import (
    AiEvaluation,
    Article,
    CollectionStatus,
    DeactivationReason,
    Grade,
    Keyword,
    KeywordStatus,
    ProgressEvent,
    ProgressEventType,
    RawItem,
    RunTrigger,
    ScoreBreakdown,
    UrlLedgerEntry,
    grade_for,
    utcnow,
)

__all__ = [
    "AiEvaluation",
    "Article",
    "CollectionStatus",
    "DeactivationReason",
    "Grade",
    "Keyword",
    "KeywordStatus",
    "ProgressEvent",
    "ProgressEventType",
    "RawItem",
    "RunTrigger",
    "ScoreBreakdown",
    "UrlLedgerEntry",
    "grade_for",
    "utcnow",
]
