"""
LLM Factory
Builds the configured completion service
"""
from typing import Optional
import logging

from utils.exceptions import ConfigurationError
from .base import BaseLLM
from .openai_llm import OpenAILLM
from .deepseek_llm import DeepSeekLLM


logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "deepseek": "deepseek-chat",
}


def get_llm(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    **kwargs,
) -> BaseLLM:
    """
    Build an LLM client.

    Reads LLM_* settings from config/.env; arguments take precedence.

    Args:
        provider: openai or deepseek
        model: model name (provider default when omitted)
        **kwargs: temperature, max_tokens, base_url, api_key

    Example:
        llm = get_llm()
        llm = get_llm(provider="deepseek")
        llm = get_llm(provider="openai", model="gpt-4o", temperature=0.0)
    """
    from config import get_llm_settings

    settings = get_llm_settings()

    provider = (provider or settings.provider or "openai").strip().lower()
    if provider not in DEFAULT_MODELS:
        raise ConfigurationError(
            f"Unsupported LLM provider: {provider}",
            details={"supported": sorted(DEFAULT_MODELS)},
        )

    model = model or settings.model_name or DEFAULT_MODELS[provider]

    api_keys = {
        "openai": settings.openai_api_key,
        "deepseek": settings.deepseek_api_key,
    }
    api_key = kwargs.pop("api_key", None) or api_keys.get(provider)

    kwargs.setdefault("temperature", settings.temperature)
    kwargs.setdefault("max_tokens", settings.max_tokens)

    logger.debug(f"Creating LLM client: provider={provider} model={model}")
    if provider == "deepseek":
        return DeepSeekLLM(model=model, api_key=api_key, base_url=kwargs.pop("base_url", None), **kwargs)
    return OpenAILLM(model=model, api_key=api_key, base_url=kwargs.pop("base_url", None), **kwargs)
