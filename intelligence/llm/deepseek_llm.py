"""
DeepSeek LLM
DeepSeek-V3 / DeepSeek-R1 through the OpenAI-compatible endpoint
"""
from typing import Optional
import logging

from .openai_llm import OpenAILLM


logger = logging.getLogger(__name__)


class DeepSeekLLM(OpenAILLM):
    """
    DeepSeek LLM

    Models:
    - deepseek-chat (DeepSeek-V3, default)
    - deepseek-reasoner (DeepSeek-R1)
    """

    DEFAULT_BASE_URL = "https://api.deepseek.com"

    def __init__(
        self,
        model: str = "deepseek-chat",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        timeout: float = 120.0,  # reasoner responses can be slow
        **kwargs,
    ):
        super().__init__(
            model=model,
            api_key=api_key,
            base_url=base_url or self.DEFAULT_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            **kwargs,
        )

    @property
    def provider(self) -> str:
        return "deepseek"

    def _content_of(self, choice) -> str:
        # reasoning_content is dropped: callers parse JSON out of the answer only
        return choice.message.content or ""
