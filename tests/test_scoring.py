from __future__ import annotations

import numpy as np
import pytest

from conftest import FakeEmbedder, FakeLLM, build_scorer
from core import AiEvaluation, Grade, RawItem, ScoreBreakdown, grade_for
from scoring.importance import ImportanceScorer, extract_domain, extract_lead


def _scorer(embedder=None) -> ImportanceScorer:
    return build_scorer(FakeLLM(), embedder)


@pytest.mark.parametrize(
    "score,grade",
    [(100, Grade.CRITICAL), (80, Grade.CRITICAL), (79, Grade.HIGH), (60, Grade.HIGH),
     (59, Grade.MEDIUM), (40, Grade.MEDIUM), (39, Grade.LOW), (0, Grade.LOW)],
)
def test_grade_thresholds(score: int, grade: Grade) -> None:
    assert grade_for(score) == grade
    assert ScoreBreakdown(final_score=score).grade == grade


def test_llm_score_clamps_each_component() -> None:
    evaluation = AiEvaluation(impact=99, innovation=-4, timeliness=15)
    assert ImportanceScorer.llm_score(evaluation) == 20 + 0 + 15


def test_default_evaluation_is_mid_range_not_zero() -> None:
    assert ImportanceScorer.llm_score(AiEvaluation.fallback()) == 24


def test_title_match_tiers_count_distinct_keywords() -> None:
    assert ImportanceScorer.title_match_score("Weather report", ["ai", "chips"]) == 0
    assert ImportanceScorer.title_match_score("New AI model", ["ai", "chips"]) == 5
    assert ImportanceScorer.title_match_score("AI CHIPS shortage", ["ai", "chips"]) == 10
    assert ImportanceScorer.title_match_score("AI news", ["ai", "AI", " ai "]) == 5


def test_lead_match_tiers() -> None:
    assert ImportanceScorer.lead_match_score("", ["ai"]) == 0
    assert ImportanceScorer.lead_match_score("the ai market grows", ["ai", "chips"]) == 3
    assert ImportanceScorer.lead_match_score("ai chips everywhere", ["ai", "chips"]) == 5


def test_extract_lead_skips_short_paragraphs_and_truncates() -> None:
    body = "Short line\n\n" + "x" * 400 + "\nlater paragraph that is long enough to count"
    assert extract_lead(body) == "x" * 300
    assert extract_lead("tiny\nalso tiny") == "tiny\nalso tiny"
    assert extract_lead("") == ""


def test_extract_domain() -> None:
    assert extract_domain("https://www.Reuters.com/tech/ai") == "www.reuters.com"
    assert extract_domain("http://zdnet.com") == "zdnet.com"
    assert extract_domain("") == ""


def test_metadata_tiers_major_first() -> None:
    scorer = _scorer()
    assert scorer.metadata_score("https://www.reuters.com/a") == 20
    assert scorer.metadata_score("https://zdnet.com/b") == 15
    assert scorer.metadata_score("https://someblog.dev/c") == 10
    assert scorer.metadata_score("") == 10


class _FixedEmbedder(FakeEmbedder):
    def __init__(self, body_vector, keyword_vector):
        super().__init__(dim=2)
        self.vectors = np.array([body_vector, keyword_vector], dtype=np.float64)

    def embed(self, texts):
        self.calls += 1
        return self.vectors


def test_embedding_similarity_maps_to_fifteen_points() -> None:
    assert _scorer(FakeEmbedder()).embedding_score("ai chips", ["ai", "chips"]) == 15
    assert _scorer(_FixedEmbedder([3.0, 4.0], [1.0, 0.0])).embedding_score("body", ["ai"]) == 9
    assert _scorer(_FixedEmbedder([0.0, 1.0], [1.0, 0.0])).embedding_score("body", ["ai"]) == 0


def test_negative_similarity_is_clamped_to_zero() -> None:
    assert _scorer(_FixedEmbedder([1.0, 0.0], [-1.0, 0.0])).embedding_score("anything", ["ai"]) == 0


def test_embedding_skipped_for_empty_body() -> None:
    embedder = FakeEmbedder()
    assert _scorer(embedder).embedding_score("   ", ["ai"]) == 0
    assert embedder.calls == 0


def test_embedding_failure_only_zeroes_that_signal() -> None:
    scorer = _scorer(FakeEmbedder(fail=True))
    item = RawItem(title="AI chips", url="https://reuters.com/x", body="ai chips " * 10)

    breakdown = scorer.score(item, ["ai", "chips"])

    assert breakdown.structural_score == 10 + 5
    assert breakdown.metadata_score == 20
    assert breakdown.llm_score > 0


def test_final_score_is_capped_at_100() -> None:
    assert ImportanceScorer.final_score(50, 30, 20) == 100
    assert ImportanceScorer.final_score(60, 30, 20) == 100


def test_score_bounds_hold_for_extreme_inputs() -> None:
    scorer = _scorer(FakeEmbedder())
    keywords = ["ai", "chips", "gpu", "cloud"]
    items = [
        RawItem(title="", url="", body=""),
        RawItem(title="ai chips gpu cloud " * 20, url="https://techcrunch.com/x", body="ai chips gpu cloud\n" * 200),
        RawItem(title="x", url="not a url", body="y" * 5000),
    ]
    evaluations = [AiEvaluation(impact=-100, innovation=-100, timeliness=-100), AiEvaluation(impact=999, innovation=999, timeliness=999)]

    for item in items:
        for evaluation in evaluations:
            breakdown = scorer.combine(item, evaluation, keywords)
            assert 0 <= breakdown.llm_score <= 50
            assert 0 <= breakdown.structural_score <= 30
            assert 0 <= breakdown.metadata_score <= 20
            assert 0 <= breakdown.final_score <= 100
            assert breakdown.grade == grade_for(breakdown.final_score)


def test_batch_and_single_agree_for_one_article() -> None:
    item = RawItem(title="AI chip export rules", url="https://infoq.com/a", body="New AI chip export rules published today.")
    keywords = ["ai", "chip"]

    single = build_scorer(FakeLLM(), FakeEmbedder()).score(item, keywords)
    batch = build_scorer(FakeLLM(), FakeEmbedder()).score_batch([item], keywords)

    assert batch == [single]


def test_batch_preserves_order_and_count() -> None:
    items = [RawItem(title=f"Title number {'x' * i}", url=f"https://a.dev/{i}", body="body") for i in range(5)]
    llm = FakeLLM()

    breakdowns = build_scorer(llm).score_batch(items, ["ai"])
    singles = [build_scorer(FakeLLM()).score(item, ["ai"]) for item in items]

    assert breakdowns == singles
    assert llm.batch_calls == 1
    assert llm.single_calls == 0


def test_score_batch_empty_makes_no_calls() -> None:
    llm = FakeLLM()
    assert build_scorer(llm).score_batch([], ["ai"]) == []
    assert llm.prompts == []
