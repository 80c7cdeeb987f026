"""
Intelligence Module
Completion service abstraction and LLM article evaluation
"""
from .llm import (
    BaseLLM,
    OpenAILLM,
    DeepSeekLLM,
    get_llm,
)
from .evaluator import ArticleEvaluator

__all__ = [
    # LLM
    "BaseLLM",
    "OpenAILLM",
    "DeepSeekLLM",
    "get_llm",
    # Evaluation
    "ArticleEvaluator",
]
