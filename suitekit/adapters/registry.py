"""Provider name -> adapter class lookup."""

from __future__ import annotations

from typing import Optional

import httpx

from suitekit.adapters.anthropic_messages import AnthropicAdapter
from suitekit.adapters.base import BaseAdapter
from suitekit.adapters.gemini import GeminiAdapter
from suitekit.adapters.openai_compatible import DeepSeekAdapter, GrokAdapter, OpenAIAdapter
from suitekit.errors import UnknownProviderError
from suitekit.types import PROVIDER_LABELS

_ADAPTERS: dict[str, type[BaseAdapter]] = {
    "openai": OpenAIAdapter,
    "anthropic": AnthropicAdapter,
    "gemini": GeminiAdapter,
    "grok": GrokAdapter,
    "deepseek": DeepSeekAdapter,
}

PROVIDERS: tuple[str, ...] = tuple(_ADAPTERS)

__all__ = ["PROVIDERS", "PROVIDER_LABELS", "get_adapter", "list_models"]


def get_adapter(name: str, client: Optional[httpx.AsyncClient] = None) -> BaseAdapter:
    try:
        adapter_cls = _ADAPTERS[name]
    except KeyError:
        raise UnknownProviderError(name) from None
    return adapter_cls(client=client)


def list_models(name: str) -> list[str]:
    try:
        return list(_ADAPTERS[name].models)
    except KeyError:
        raise UnknownProviderError(name) from None
