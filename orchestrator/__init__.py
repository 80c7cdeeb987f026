"""Collection run orchestration, progress delivery and maintenance scheduling."""

from .guard import RunGuard
from .progress import (
    LoggingProgressListener,
    ProgressListener,
    ProgressListenerRegistry,
    QueueProgressListener,
)
from .service import IngestionOrchestrator, KeywordSlice
from .scheduler import MaintenanceScheduler

__all__ = [
    "IngestionOrchestrator",
    "KeywordSlice",
    "LoggingProgressListener",
    "MaintenanceScheduler",
    "ProgressListener",
    "ProgressListenerRegistry",
    "QueueProgressListener",
    "RunGuard",
]
