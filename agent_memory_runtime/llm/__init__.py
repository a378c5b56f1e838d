"""
Model provider clients.

Both providers implement interfaces.LLMClient over core messages, so the
agentic loop never branches on provider. get_llm_client() is the only place
a provider is chosen.
"""

import logging
from typing import Optional, Union

from agent_memory_runtime.config import get_config
from agent_memory_runtime.interfaces import LLMClient, LLMResponse, LLMStreamChunk, Provider
from agent_memory_runtime.llm.models_config import (
    DEFAULT_MODELS,
    SUPPORTED_MODELS,
    ModelInfo,
    get_model_info,
    get_provider_for_model,
    split_model_id,
)

logger = logging.getLogger(__name__)

__all__ = [
    "LLMClient",
    "LLMResponse",
    "LLMStreamChunk",
    "Provider",
    "get_llm_client",
    "ModelInfo",
    "SUPPORTED_MODELS",
    "DEFAULT_MODELS",
    "get_model_info",
    "get_provider_for_model",
    "split_model_id",
]


def _resolve_provider(provider: Optional[Union[Provider, str]], model: Optional[str]) -> Provider:
    if provider is None and model:
        provider = get_provider_for_model(model)
        if provider is None:
            logger.debug(f"No provider known for model {model}; using configured provider")
    provider = provider or get_config().model_provider
    try:
        return Provider(provider)
    except ValueError:
        raise ValueError(
            f"Unknown LLM provider: {provider}\n\n"
            f"Supported providers: {', '.join(p.value for p in Provider)}\n"
            f"Set model_provider with configure() or AGENT_MEMORY_MODEL_PROVIDER."
        ) from None


def get_llm_client(
    provider: Optional[Union[Provider, str]] = None,
    model: Optional[str] = None,
    **kwargs,
) -> LLMClient:
    """
    Build the client for one provider.

    The provider is the explicit argument, else the one detected from
    `model`, else config.model_provider. `model` (without any provider
    qualifier) becomes the client's default model.

    Raises:
        ValueError: Unknown provider
        ConfigurationError: The provider's API key is not configured

    Example:
        llm = get_llm_client(model="anthropic/claude-haiku-4-5-20251001")
        llm = get_llm_client(provider="openai", api_key="sk-...")
    """
    resolved = _resolve_provider(provider, model)
    if model:
        kwargs.setdefault("default_model", split_model_id(model)[1])

    if resolved == Provider.OPENAI:
        from agent_memory_runtime.llm.openai import OpenAIClient

        return OpenAIClient(**kwargs)

    from agent_memory_runtime.llm.anthropic import AnthropicClient

    return AnthropicClient(**kwargs)
