"""Shared fakes for the ingestion tests."""

from __future__ import annotations

import json
import re
import zlib
from datetime import datetime, timedelta, timezone
from typing import AbstractSet, Callable, Dict, List, Optional, Sequence

import numpy as np
import pytest

from config.settings import IndexSettings, IngestionSettings
from core import Article, RawItem, ScoreBreakdown
from intelligence.evaluator import ArticleEvaluator
from intelligence.llm.base import BaseLLM, LLMResponse, Message
from processing.embedder import BaseEmbedder
from scoring.importance import ImportanceScorer
from sources.base import ContentFetcher
from storage.news_index import NewsIndexManager
from storage.repositories import InMemoryArticleRepository, InMemoryKeywordRepository, InMemoryUrlLedger
from utils.exceptions import LLMError


FIXED_NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

_TITLE = re.compile(r"Title: (.*)")
_INDEX = re.compile(r"\[index (\d+)\]")


def evaluation_payload(title: str, index: Optional[int] = None) -> Dict:
    """Deterministic evaluation derived from the title length."""
    base = len(title)
    payload = {
        "impact": base % 21,
        "innovation": base % 16,
        "timeliness": (base * 3) % 16,
        "reason": f"reason for {title}",
        "category": "AI",
        "summary": f"summary of {title}",
    }
    if index is not None:
        payload["index"] = index
    return payload


class FakeLLM(BaseLLM):
    """
    Scripted completion service.

    Single prompts get an object for their title; batch prompts get an array
    with one entry per `[index N]` block, minus any index in `omit`.
    """

    def __init__(
        self,
        omit: Sequence[int] = (),
        batch_response: Optional[str] = None,
        fail: bool = False,
        error: Optional[Exception] = None,
    ) -> None:
        super().__init__(model="fake")
        self.omit = set(omit)
        self.batch_response = batch_response
        self.fail = fail
        self.error = error
        self.prompts: List[str] = []

    @property
    def provider(self) -> str:
        return "fake"

    @property
    def batch_calls(self) -> int:
        return sum(1 for prompt in self.prompts if "[index 0]" in prompt)

    @property
    def single_calls(self) -> int:
        return len(self.prompts) - self.batch_calls

    def complete(self, messages: List[Message], **kwargs) -> LLMResponse:
        prompt = messages[-1].content
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if self.fail:
            raise LLMError("upstream unavailable", provider=self.provider)
        return LLMResponse(content=self._respond(prompt), model=self.model)

    def _respond(self, prompt: str) -> str:
        titles = _TITLE.findall(prompt)
        if "[index 0]" not in prompt:
            return json.dumps(evaluation_payload(titles[0]))
        if self.batch_response is not None:
            return self.batch_response
        indices = [int(i) for i in _INDEX.findall(prompt)]
        entries = [
            evaluation_payload(title, index)
            for index, title in zip(indices, titles)
            if index not in self.omit
        ]
        return "```json\n" + json.dumps(list(reversed(entries))) + "\n```"


class FakeEmbedder(BaseEmbedder):
    """Hashed bag-of-words vectors; texts sharing words are similar."""

    def __init__(self, dim: int = 64, fail: bool = False) -> None:
        super().__init__("fake-embedder")
        self._dim = dim
        self.fail = fail
        self.calls = 0

    @property
    def dimension(self) -> int:
        return self._dim

    def embed(self, texts) -> np.ndarray:
        self.calls += 1
        if self.fail:
            raise RuntimeError("embedding backend down")
        items = [texts] if isinstance(texts, str) else list(texts)
        vectors = np.zeros((len(items), self._dim), dtype=np.float32)
        for row, text in enumerate(items):
            for word in re.findall(r"\w+", text.lower()):
                vectors[row, zlib.crc32(word.encode()) % self._dim] += 1.0
        return vectors


class FakeFetcher(ContentFetcher):
    """Returns canned items per keyword; ignores the known-URL hint unless asked to honour it."""

    def __init__(
        self,
        items: Optional[Dict[str, List[RawItem]]] = None,
        on_fetch: Optional[Callable[[str], None]] = None,
        honour_known: bool = False,
    ) -> None:
        self.items = items or {}
        self.on_fetch = on_fetch
        self.honour_known = honour_known
        self.calls: List[str] = []

    @property
    def name(self) -> str:
        return "fake"

    def fetch(self, keyword: str, known_urls: AbstractSet[str]) -> List[RawItem]:
        self.calls.append(keyword)
        if self.on_fetch is not None:
            self.on_fetch(keyword)
        items = list(self.items.get(keyword, []))
        if self.honour_known:
            items = [item for item in items if item.url not in known_urls]
        return items


def make_article(
    *,
    keyword: str = "ai",
    score: int = 60,
    age_days: float = 1,
    url: Optional[str] = None,
    title: str = "GPU supply update",
    body: str = "Chip makers expand GPU supply for AI training clusters.",
    now: datetime = FIXED_NOW,
) -> Article:
    return Article(
        title=title,
        url=url or f"https://example.com/{keyword}/{score}/{age_days}/{zlib.crc32(title.encode())}",
        keyword=keyword,
        body=body,
        scores=ScoreBreakdown(llm_score=min(score, 50), structural_score=0, metadata_score=0, final_score=score),
        category="AI",
        ai_reason="important",
        summary="short summary",
        collected_at=now - timedelta(days=age_days),
    )


@pytest.fixture
def keywords() -> InMemoryKeywordRepository:
    return InMemoryKeywordRepository()


@pytest.fixture
def articles() -> InMemoryArticleRepository:
    return InMemoryArticleRepository()


@pytest.fixture
def ledger() -> InMemoryUrlLedger:
    return InMemoryUrlLedger()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def index_settings() -> IndexSettings:
    return IndexSettings(chunk_size=200, chunk_overlap=20)


@pytest.fixture
def ingestion_settings() -> IngestionSettings:
    return IngestionSettings(eval_delay_seconds=0.0)


@pytest.fixture
def index(articles, keywords, embedder, index_settings) -> NewsIndexManager:
    manager = NewsIndexManager(articles, keywords, embedder, settings=index_settings, clock=lambda: FIXED_NOW)
    yield manager
    manager.shutdown()


def build_scorer(llm: BaseLLM, embedder: Optional[BaseEmbedder] = None, batch_size: int = 10) -> ImportanceScorer:
    evaluator = ArticleEvaluator(llm, batch_size=batch_size, eval_delay_seconds=0.0)
    return ImportanceScorer(
        evaluator,
        embedder,
        major_domains=["reuters.com", "techcrunch.com"],
        standard_domains=["zdnet.com", "infoq.com"],
    )
