"""
Article Evaluator
Asks the completion service to judge article importance, one at a time or in batches.

Batch protocol: every article in the prompt carries an explicit `index`, and
response objects are matched back by that index only. Articles the model
leaves out are re-evaluated individually; a response that is not a JSON array
sends the whole batch down the individual path. Failures never propagate:
the worst case is the mid-range default evaluation.
"""
from __future__ import annotations

import json
import logging
import re
import time
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Sequence

from core import AiEvaluation, RawItem
from intelligence.llm.base import BaseLLM
from utils.exceptions import EvaluationParseError, NewsRadarError


logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are a senior technology news editor. You rate how important a news "
    "article is for software engineers and technology decision makers. "
    "Reply with JSON only."
)

_CRITERIA = """Criteria:
- impact (0-20): how strongly this affects the IT ecosystem or industry
- innovation (0-15): technical novelty or a genuinely new perspective
- timeliness (0-15): relevance to current trends and urgency"""

SINGLE_PROMPT = """Evaluate the following news article.

Title: {title}
Body: {body}
Tracked keywords: {keywords}

{criteria}

Respond with exactly one JSON object:
{{"impact": int, "innovation": int, "timeliness": int, "reason": "why it matters in 1-2 sentences", "category": "one technology category", "summary": "3-line summary"}}"""

BATCH_PROMPT = """Evaluate each of the following {count} news articles.

Tracked keywords: {keywords}

{criteria}

{articles}

Respond with a JSON array containing one object per article. Every object MUST include the article's "index" exactly as given above:
[{{"index": int, "impact": int, "innovation": int, "timeliness": int, "reason": "...", "category": "...", "summary": "..."}}]"""

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _strip_fences(text: str) -> str:
    return _FENCE.sub("", (text or "").strip()).strip()


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse a JSON object from a raw, fenced or prose-wrapped response."""
    raw = _strip_fences(text)
    if not raw:
        raise EvaluationParseError("empty response", raw=text)
    try:
        parsed = json.loads(raw)
        if isinstance(parsed, dict):
            return parsed
    except ValueError:
        pass
    match = re.search(r"\{[\s\S]*\}", raw)
    if match:
        try:
            parsed = json.loads(match.group())
            if isinstance(parsed, dict):
                return parsed
        except ValueError:
            pass
    raise EvaluationParseError("response is not a JSON object", raw=text)


def extract_json_array(text: str) -> List[Any]:
    """Parse a JSON array from a raw, fenced or prose-wrapped response."""
    raw = _strip_fences(text)
    if not raw:
        raise EvaluationParseError("empty response", raw=text)
    try:
        parsed = json.loads(raw)
        if isinstance(parsed, list):
            return parsed
    except ValueError:
        pass
    match = re.search(r"\[[\s\S]*\]", raw)
    if match:
        try:
            parsed = json.loads(match.group())
            if isinstance(parsed, list):
                return parsed
        except ValueError:
            pass
    raise EvaluationParseError("response is not a JSON array", raw=text)


def _clamped_int(value: Any, low: int, high: int, default: int) -> int:
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


def _text(value: Any, default: str) -> str:
    text = str(value).strip() if value is not None else ""
    return text or default


def to_evaluation(payload: Dict[str, Any]) -> AiEvaluation:
    """Build an evaluation from a parsed object, clamping and defaulting every field."""
    defaults = AiEvaluation()
    return AiEvaluation(
        impact=_clamped_int(payload.get("impact"), 0, 20, defaults.impact),
        innovation=_clamped_int(payload.get("innovation"), 0, 15, defaults.innovation),
        timeliness=_clamped_int(payload.get("timeliness"), 0, 15, defaults.timeliness),
        reason=_text(payload.get("reason"), defaults.reason),
        category=_text(payload.get("category"), defaults.category),
        summary=_text(payload.get("summary"), defaults.summary),
    )


class ArticleEvaluator:
    """
    LLM importance evaluator

    Usage:
        evaluator = ArticleEvaluator(get_llm())
        evaluations = evaluator.evaluate_batch(items, ["ai", "chips"])
    """

    def __init__(
        self,
        llm: BaseLLM,
        batch_size: int = 10,
        eval_delay_seconds: float = 0.5,
        body_max_chars: int = 1500,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.llm = llm
        self.batch_size = max(1, batch_size)
        self.eval_delay_seconds = eval_delay_seconds
        self.body_max_chars = body_max_chars
        self._sleep = sleep

        self._stats_lock = Lock()
        self.default_count = 0
        self.individual_fallback_count = 0

    @classmethod
    def from_settings(cls, llm: BaseLLM, settings=None) -> "ArticleEvaluator":
        from config import get_ingestion_settings

        settings = settings or get_ingestion_settings()
        return cls(
            llm,
            batch_size=settings.batch_size,
            eval_delay_seconds=settings.eval_delay_seconds,
            body_max_chars=settings.body_max_chars,
        )

    # ------------------------------------------------------------------
    # single
    # ------------------------------------------------------------------

    def evaluate(self, title: str, body: str, keywords: Sequence[str]) -> AiEvaluation:
        """Evaluate one article. Never raises."""
        prompt = SINGLE_PROMPT.format(
            title=title or "",
            body=self._trim(body),
            keywords=", ".join(keywords),
            criteria=_CRITERIA,
        )
        try:
            response = self.llm.chat(prompt, system_prompt=SYSTEM_PROMPT)
            return to_evaluation(extract_json_object(response))
        except NewsRadarError as exc:
            return self._default(title, exc)
        except Exception as exc:
            logger.exception(f"[eval] unexpected evaluator failure for '{title}'")
            return self._default(title, exc)

    def _default(self, title: str, exc: Exception) -> AiEvaluation:
        with self._stats_lock:
            self.default_count += 1
        logger.warning(f"[eval] default evaluation for '{title}': {exc}")
        return AiEvaluation.fallback(f"analysis failed: {exc}")

    # ------------------------------------------------------------------
    # batch
    # ------------------------------------------------------------------

    def evaluate_batch(self, items: Sequence[RawItem], keywords: Sequence[str]) -> List[AiEvaluation]:
        """
        Evaluate many articles with as few completion calls as possible.

        Returns:
            One evaluation per item, in input order
        """
        results: List[AiEvaluation] = []
        items = list(items)
        for start in range(0, len(items), self.batch_size):
            results.extend(self._evaluate_chunk(items[start : start + self.batch_size], keywords))
        return results

    def _evaluate_chunk(self, items: List[RawItem], keywords: Sequence[str]) -> List[AiEvaluation]:
        if not items:
            return []
        if len(items) == 1:
            return [self.evaluate(items[0].title, items[0].body, keywords)]

        try:
            response = self.llm.chat(self._batch_prompt(items, keywords), system_prompt=SYSTEM_PROMPT)
            entries = extract_json_array(response)
        except NewsRadarError as exc:
            logger.warning(f"[eval] batch of {len(items)} unusable, evaluating individually: {exc}")
            return self._evaluate_individually(items, list(range(len(items))), keywords)
        except Exception as exc:
            logger.warning(f"[eval] unexpected batch failure for {len(items)} articles, evaluating individually: {exc}", exc_info=True)
            return self._evaluate_individually(items, list(range(len(items))), keywords)

        matched = self._match_by_index(entries, len(items))
        missing = [i for i in range(len(items)) if i not in matched]
        if missing:
            logger.warning(f"[eval] batch response missing indices {missing}, evaluating individually")
            for index, evaluation in zip(missing, self._evaluate_individually(items, missing, keywords)):
                matched[index] = evaluation
        return [matched[i] for i in range(len(items))]

    @staticmethod
    def _match_by_index(entries: List[Any], size: int) -> Dict[int, AiEvaluation]:
        matched: Dict[int, AiEvaluation] = {}
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            index = _clamped_int(entry.get("index"), -1, size, -1)
            if 0 <= index < size and index not in matched:
                matched[index] = to_evaluation(entry)
        return matched

    def _evaluate_individually(
        self,
        items: List[RawItem],
        indices: List[int],
        keywords: Sequence[str],
    ) -> List[AiEvaluation]:
        with self._stats_lock:
            self.individual_fallback_count += len(indices)
            defaults_before = self.default_count

        evaluations: List[AiEvaluation] = []
        for position, index in enumerate(indices):
            if position and self.eval_delay_seconds > 0:
                self._sleep(self.eval_delay_seconds)
            evaluations.append(self.evaluate(items[index].title, items[index].body, keywords))

        with self._stats_lock:
            defaulted = self.default_count - defaults_before
        if len(indices) == len(items) and defaulted == len(items):
            # every article got the baseline score; scores from this batch carry no signal
            logger.error(f"[eval] completion service unavailable: all {len(items)} articles received default scores")
        return evaluations

    def _batch_prompt(self, items: List[RawItem], keywords: Sequence[str]) -> str:
        blocks = [
            f"[index {i}]\nTitle: {item.title}\nBody: {self._trim(item.body)}"
            for i, item in enumerate(items)
        ]
        return BATCH_PROMPT.format(
            count=len(items),
            keywords=", ".join(keywords),
            criteria=_CRITERIA,
            articles="\n\n".join(blocks),
        )

    def _trim(self, body: Optional[str]) -> str:
        body = body or ""
        return body[: self.body_max_chars]
