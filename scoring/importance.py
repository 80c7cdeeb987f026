"""
Importance Scorer
Scores an article 0-100 from three independently capped signals:

1. LLM evaluation (max 50): impact 20 + innovation 15 + timeliness 15
2. Structural relevance (max 30): title keywords 10 + lead keywords 5 + embedding similarity 15
3. Source trust (max 20): tiered domain allow-list
"""
from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from core import AiEvaluation, RawItem, ScoreBreakdown
from intelligence.evaluator import ArticleEvaluator
from processing.embedder import BaseEmbedder, cosine_similarity


logger = logging.getLogger(__name__)


LLM_MAX = 50
STRUCTURAL_MAX = 30
FINAL_MAX = 100

MAJOR_TIER_SCORE = 20
STANDARD_TIER_SCORE = 15
GENERAL_TIER_SCORE = 10

LEAD_MIN_CHARS = 30
LEAD_MAX_CHARS = 300
EMBEDDING_BODY_CHARS = 1000

_PARAGRAPH_SPLIT = re.compile(r"\n\n|\n")
_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def extract_lead(body: Optional[str]) -> str:
    """First meaningful paragraph (over 30 chars), capped at 300 chars."""
    if not body or not body.strip():
        return ""
    for paragraph in _PARAGRAPH_SPLIT.split(body):
        trimmed = paragraph.strip()
        if len(trimmed) > LEAD_MIN_CHARS:
            return trimmed[:LEAD_MAX_CHARS]
    return body[:LEAD_MAX_CHARS]


def extract_domain(url: Optional[str]) -> str:
    """Host part of a URL, lower-cased; scheme and path are dropped."""
    no_scheme = _SCHEME.sub("", (url or "").strip())
    slash = no_scheme.find("/")
    host = no_scheme[:slash] if slash > 0 else no_scheme
    return host.lower()


def _distinct_keywords(keywords: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for keyword in keywords:
        key = str(keyword or "").strip().lower()
        if key and key not in seen:
            seen.append(key)
    return seen


def _match_count(text: Optional[str], keywords: Sequence[str]) -> int:
    if not text:
        return 0
    haystack = text.lower()
    return sum(1 for keyword in keywords if keyword in haystack)


class ImportanceScorer:
    """
    Multi-signal importance scorer

    Usage:
        scorer = ImportanceScorer(evaluator, embedder)
        breakdown = scorer.score(item, ["ai", "semiconductor"])
        breakdown.final_score, breakdown.grade
    """

    def __init__(
        self,
        evaluator: ArticleEvaluator,
        embedder: Optional[BaseEmbedder] = None,
        major_domains: Optional[Sequence[str]] = None,
        standard_domains: Optional[Sequence[str]] = None,
    ):
        if major_domains is None or standard_domains is None:
            from config import get_scoring_settings

            settings = get_scoring_settings()
            major_domains = settings.major_domains if major_domains is None else major_domains
            standard_domains = settings.standard_domains if standard_domains is None else standard_domains

        self.evaluator = evaluator
        self.embedder = embedder
        self.major_domains = [d.lower() for d in major_domains]
        self.standard_domains = [d.lower() for d in standard_domains]

    # ------------------------------------------------------------------
    # public contract
    # ------------------------------------------------------------------

    def score(self, item: RawItem, active_keywords: Sequence[str]) -> ScoreBreakdown:
        evaluation = self.evaluator.evaluate(item.title, item.body, active_keywords)
        return self.combine(item, evaluation, active_keywords)

    def score_batch(self, items: Sequence[RawItem], active_keywords: Sequence[str]) -> List[ScoreBreakdown]:
        """Score many items with one batched evaluation; output order matches input."""
        return [breakdown for breakdown, _ in self.score_with_evaluation(items, active_keywords)]

    def score_with_evaluation(
        self,
        items: Sequence[RawItem],
        active_keywords: Sequence[str],
    ) -> List[Tuple[ScoreBreakdown, AiEvaluation]]:
        """Like score_batch, also returning each item's evaluation."""
        items = list(items)
        if not items:
            return []
        evaluations = self.evaluator.evaluate_batch(items, active_keywords)
        return [
            (self.combine(item, evaluation, active_keywords), evaluation)
            for item, evaluation in zip(items, evaluations)
        ]

    def combine(self, item: RawItem, evaluation: AiEvaluation, active_keywords: Sequence[str]) -> ScoreBreakdown:
        """Assemble the breakdown for one item from its evaluation and local signals."""
        llm = self.llm_score(evaluation)
        structural = self.structural_score(item.title, item.body, active_keywords)
        metadata = self.metadata_score(item.url)
        return ScoreBreakdown(
            llm_score=llm,
            structural_score=structural,
            metadata_score=metadata,
            final_score=self.final_score(llm, structural, metadata),
            innovation=_clamp(evaluation.innovation, 0, 15),
            timeliness=_clamp(evaluation.timeliness, 0, 15),
        )

    # ------------------------------------------------------------------
    # 1. LLM signal
    # ------------------------------------------------------------------

    @staticmethod
    def llm_score(evaluation: AiEvaluation) -> int:
        impact = _clamp(evaluation.impact, 0, 20)
        innovation = _clamp(evaluation.innovation, 0, 15)
        timeliness = _clamp(evaluation.timeliness, 0, 15)
        return impact + innovation + timeliness

    # ------------------------------------------------------------------
    # 2. Structural signal
    # ------------------------------------------------------------------

    def structural_score(self, title: str, body: str, keywords: Sequence[str]) -> int:
        distinct = _distinct_keywords(keywords)
        total = (
            self.title_match_score(title, distinct)
            + self.lead_match_score(extract_lead(body), distinct)
            + self.embedding_score(body, distinct)
        )
        return min(total, STRUCTURAL_MAX)

    @staticmethod
    def title_match_score(title: str, keywords: Sequence[str]) -> int:
        """0/5/10 for 0/1/2+ distinct keyword hits."""
        hits = _match_count(title, _distinct_keywords(keywords))
        if hits >= 2:
            return 10
        if hits == 1:
            return 5
        return 0

    @staticmethod
    def lead_match_score(lead: str, keywords: Sequence[str]) -> int:
        """0/3/5 for 0/1/2+ distinct keyword hits."""
        hits = _match_count(lead, _distinct_keywords(keywords))
        if hits >= 2:
            return 5
        if hits == 1:
            return 3
        return 0

    def embedding_score(self, body: str, keywords: Sequence[str]) -> int:
        """
        Cosine similarity between the body and the joined keywords, mapped to 0-15.

        Any embedding failure yields 0 for this sub-signal only.
        """
        if self.embedder is None or not body or not body.strip() or not keywords:
            return 0
        try:
            vectors = self.embedder.embed([body[:EMBEDDING_BODY_CHARS], " ".join(keywords)])
            similarity = cosine_similarity(vectors[0], vectors[1])
        except Exception as exc:
            logger.warning(f"[score] embedding similarity failed, scoring 0: {exc}")
            return 0
        return _clamp(int(round(max(0.0, similarity) * 15)), 0, 15)

    # ------------------------------------------------------------------
    # 3. Metadata signal
    # ------------------------------------------------------------------

    def metadata_score(self, url: str) -> int:
        domain = extract_domain(url)
        if not domain:
            return GENERAL_TIER_SCORE
        if any(tier in domain for tier in self.major_domains):
            return MAJOR_TIER_SCORE
        if any(tier in domain for tier in self.standard_domains):
            return STANDARD_TIER_SCORE
        return GENERAL_TIER_SCORE

    # ------------------------------------------------------------------
    # final
    # ------------------------------------------------------------------

    @staticmethod
    def final_score(llm: int, structural: int, metadata: int) -> int:
        return _clamp(llm + structural + metadata, 0, FINAL_MAX)
