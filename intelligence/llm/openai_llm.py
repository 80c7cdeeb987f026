"""
OpenAI LLM
Chat Completions client for GPT models and OpenAI-compatible endpoints
"""
from typing import Any, Dict, List, Optional
import logging

import openai
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from utils.exceptions import LLMError
from .base import BaseLLM, Message, LLMResponse


logger = logging.getLogger(__name__)


_TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class _TransientLLMError(LLMError):
    """Retryable upstream failure"""


class OpenAILLM(BaseLLM):
    """
    OpenAI LLM

    Supported models include gpt-4o-mini (default) and gpt-4o. complete()
    uses the synchronous client so it is safe to call from worker threads
    that have no event loop.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        timeout: float = 60.0,
        **kwargs,
    ):
        super().__init__(model, temperature, max_tokens, timeout, **kwargs)
        self.api_key = api_key
        self.base_url = base_url
        self._client = None

    @property
    def provider(self) -> str:
        return "openai"

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    def _request_params(self, messages: List[Message], **kwargs) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": kwargs.get("temperature", self.temperature),
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
        }

    def _content_of(self, choice) -> str:
        return choice.message.content or ""

    def _to_response(self, response) -> LLMResponse:
        if not response.choices:
            raise LLMError(f"{self.provider} returned no choices", provider=self.provider)
        choice = response.choices[0]
        usage = response.usage
        return LLMResponse(
            content=self._content_of(choice),
            model=response.model,
            usage={
                "prompt_tokens": usage.prompt_tokens if usage else 0,
                "completion_tokens": usage.completion_tokens if usage else 0,
                "total_tokens": usage.total_tokens if usage else 0,
            },
            finish_reason=choice.finish_reason,
            raw_response=response,
        )

    @retry(
        retry=retry_if_exception_type(_TransientLLMError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def complete(self, messages: List[Message], **kwargs) -> LLMResponse:
        try:
            client = self._get_client()
            response = client.chat.completions.create(**self._request_params(messages, **kwargs))
            return self._to_response(response)
        except LLMError:
            raise
        except Exception as exc:
            if isinstance(exc, _TRANSIENT_ERRORS):
                logger.warning(f"{self.provider} transient error, retrying: {exc}")
                raise _TransientLLMError(str(exc), provider=self.provider)
            raise LLMError(f"{self.provider} completion failed: {exc}", provider=self.provider)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
