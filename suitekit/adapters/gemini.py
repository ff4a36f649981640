"""Adapter for the Gemini generateContent API (turn-based ``contents``)."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from suitekit.adapters.base import BaseAdapter
from suitekit.config import settings
from suitekit.errors import ProviderError
from suitekit.types import CompletionRequest, CompletionResult, Usage


class GeminiAdapter(BaseAdapter):
    name = "gemini"
    label = "Gemini"
    models = (
        "gemini-3-flash-preview",
        "gemini-2.5-pro",
        "gemini-2.5-flash",
        "gemini-2.5-flash-lite",
        "gemini-2.0-flash",
        "gemini-2.0-flash-lite",
    )

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ) -> None:
        super().__init__(client)
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")

    def _payload(self, request: CompletionRequest) -> dict[str, Any]:
        contents = [
            {
                "role": "model" if m.role == "assistant" else "user",
                "parts": [{"text": m.content}],
            }
            for m in request.turns
        ]

        generation_config: dict[str, Any] = {"temperature": self._temperature(request)}
        optional = {
            "maxOutputTokens": request.max_tokens,
            "topP": request.top_p,
            "frequencyPenalty": request.frequency_penalty,
            "presencePenalty": request.presence_penalty,
        }
        generation_config.update({k: v for k, v in optional.items() if v is not None})

        payload: dict[str, Any] = {"contents": contents, "generationConfig": generation_config}
        system = request.system_prompt
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

    async def complete(self, request: CompletionRequest, api_key: str) -> CompletionResult:
        response = await self._send(
            "POST",
            f"{self.base_url}/models/{request.model}:generateContent",
            headers={"x-goog-api-key": api_key},
            json=self._payload(request),
        )
        self._raise_for_status(response)
        data = self._json(response)

        candidates = data.get("candidates") or []
        if not candidates:
            raise ProviderError(f"No response from {self.label}", response.status_code)
        candidate = candidates[0]

        parts = (candidate.get("content") or {}).get("parts") or []
        content = "".join(part.get("text") or "" for part in parts if isinstance(part, dict))

        usage = None
        meta = data.get("usageMetadata")
        if isinstance(meta, dict):
            usage = Usage(
                prompt_tokens=meta.get("promptTokenCount") or 0,
                completion_tokens=meta.get("candidatesTokenCount") or 0,
                total_tokens=meta.get("totalTokenCount") or 0,
            )

        return CompletionResult(
            content=content,
            model=request.model,
            usage=usage,
            finish_reason=candidate.get("finishReason"),
        )
