"""
Lifecycle Module
Keyword state transitions and their article/index side effects
"""
from .keyword_service import KeywordService

__all__ = ["KeywordService"]
