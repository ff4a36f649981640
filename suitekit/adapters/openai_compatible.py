"""Chat-completions adapters: OpenAI and the providers that copy its wire format."""

from __future__ import annotations

from typing import Any, ClassVar, Optional

import httpx

from suitekit.adapters.base import BaseAdapter
from suitekit.config import settings
from suitekit.errors import ProviderError
from suitekit.types import CompletionRequest, CompletionResult, Usage


class OpenAICompatibleAdapter(BaseAdapter):
    """Roles are passed through unchanged; the system message stays in ``messages``."""

    base_url_setting: ClassVar[str] = "openai_base_url"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ) -> None:
        super().__init__(client)
        self.base_url = (base_url or getattr(settings, self.base_url_setting)).rstrip("/")

    def _payload(self, request: CompletionRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "temperature": self._temperature(request),
        }
        optional = {
            "max_tokens": request.max_tokens,
            "top_p": request.top_p,
            "frequency_penalty": request.frequency_penalty,
            "presence_penalty": request.presence_penalty,
        }
        payload.update({k: v for k, v in optional.items() if v is not None})
        return payload

    async def complete(self, request: CompletionRequest, api_key: str) -> CompletionResult:
        response = await self._send(
            "POST",
            f"{self.base_url}/chat/completions",
            headers={"Authorization": f"Bearer {api_key}"},
            json=self._payload(request),
        )
        self._raise_for_status(response)
        data = self._json(response)

        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(f"No response from {self.label}", response.status_code)
        choice = choices[0]

        content = (choice.get("message") or {}).get("content") or ""
        if isinstance(content, list):
            # Segmented content parts are joined in order, no separator.
            content = "".join(
                part.get("text") or "" for part in content if isinstance(part, dict)
            )

        usage = None
        if isinstance(data.get("usage"), dict):
            raw = data["usage"]
            usage = Usage(
                prompt_tokens=raw.get("prompt_tokens") or 0,
                completion_tokens=raw.get("completion_tokens") or 0,
                total_tokens=raw.get("total_tokens") or 0,
            )

        return CompletionResult(
            content=content,
            model=data.get("model") or request.model,
            usage=usage,
            finish_reason=choice.get("finish_reason"),
        )


class OpenAIAdapter(OpenAICompatibleAdapter):
    name = "openai"
    label = "OpenAI"
    models = (
        "gpt-5.2",
        "gpt-5.1",
        "gpt-5",
        "gpt-5-mini",
        "gpt-4.1",
        "gpt-4.1-mini",
        "gpt-4o",
        "gpt-4o-mini",
    )
    base_url_setting = "openai_base_url"


class GrokAdapter(OpenAICompatibleAdapter):
    name = "grok"
    label = "Grok"
    models = ("grok-4", "grok-3", "grok-3-mini")
    base_url_setting = "grok_base_url"


class DeepSeekAdapter(OpenAICompatibleAdapter):
    name = "deepseek"
    label = "DeepSeek"
    models = ("deepseek-chat", "deepseek-reasoner")
    base_url_setting = "deepseek_base_url"
