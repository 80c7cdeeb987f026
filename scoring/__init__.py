"""
Scoring Module
Multi-signal article importance scoring
"""
from .importance import ImportanceScorer, extract_domain, extract_lead

__all__ = [
    "ImportanceScorer",
    "extract_domain",
    "extract_lead",
]
