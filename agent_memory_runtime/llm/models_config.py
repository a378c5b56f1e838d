"""
Known chat models and provider detection.

get_llm_client() picks a provider once, from an explicit argument or from the
model id. Ids may be bare ("gpt-4o-mini") or provider-qualified
("anthropic/claude-haiku-4-5-20251001", "openai:gpt-4.1").
"""

import re
from dataclasses import dataclass
from typing import Optional

from agent_memory_runtime.interfaces import Provider


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    provider: Provider
    context_window: int
    supports_tools: bool = True
    supports_streaming: bool = True


_OPENAI = [
    ("gpt-4o", "GPT-4o", 128_000),
    ("gpt-4o-mini", "GPT-4o Mini", 128_000),
    ("gpt-4.1", "GPT-4.1", 1_047_576),
    ("gpt-4.1-mini", "GPT-4.1 Mini", 1_047_576),
    ("o3-mini", "o3 Mini", 200_000),
]

_ANTHROPIC = [
    ("claude-sonnet-4-5-20250929", "Claude Sonnet 4.5", 200_000),
    ("claude-opus-4-5-20251101", "Claude Opus 4.5", 200_000),
    ("claude-haiku-4-5-20251001", "Claude Haiku 4.5", 200_000),
    ("claude-sonnet-4-20250514", "Claude Sonnet 4", 200_000),
]

SUPPORTED_MODELS: dict[str, ModelInfo] = {
    model_id: ModelInfo(model_id, name, provider, window)
    for provider, table in ((Provider.OPENAI, _OPENAI), (Provider.ANTHROPIC, _ANTHROPIC))
    for model_id, name, window in table
}

DEFAULT_MODELS: dict[Provider, str] = {
    Provider.OPENAI: "gpt-4o-mini",
    Provider.ANTHROPIC: "claude-sonnet-4-5-20250929",
}

_QUALIFIED = re.compile(r"^(?P<provider>[a-z]+)[/:](?P<model>.+)$")
_PREFIXES = {
    Provider.OPENAI: ("gpt-", "o1", "o3", "o4", "text-embedding-"),
    Provider.ANTHROPIC: ("claude",),
}


def split_model_id(model_id: str) -> tuple[Optional[Provider], str]:
    """
    Separate an optional provider qualifier from a model id.

    >>> split_model_id("openai/gpt-4o")
    (<Provider.OPENAI: 'openai'>, 'gpt-4o')
    >>> split_model_id("gpt-4o")
    (None, 'gpt-4o')
    """
    match = _QUALIFIED.match(model_id)
    if match:
        try:
            return Provider(match.group("provider")), match.group("model")
        except ValueError:
            pass
    return None, model_id


def get_model_info(model_id: str) -> Optional[ModelInfo]:
    return SUPPORTED_MODELS.get(split_model_id(model_id)[1])


def get_provider_for_model(model_id: str) -> Optional[Provider]:
    """
    Detect the provider for a model id: qualifier, registry, then id prefix.

    Returns None when nothing matches.
    """
    provider, bare_id = split_model_id(model_id)
    if provider is not None:
        return provider
    if bare_id in SUPPORTED_MODELS:
        return SUPPORTED_MODELS[bare_id].provider
    for candidate, prefixes in _PREFIXES.items():
        if bare_id.startswith(prefixes):
            return candidate
    return None
