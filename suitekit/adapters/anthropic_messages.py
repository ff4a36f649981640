"""Adapter that calls Claude via the Anthropic Messages API."""

from __future__ import annotations

from typing import Any, Optional

import anthropic
import httpx

from suitekit.adapters.base import BaseAdapter
from suitekit.config import settings
from suitekit.errors import ProviderError
from suitekit.types import CompletionRequest, CompletionResult, Usage


class AnthropicAdapter(BaseAdapter):
    """The system prompt travels in its own ``system`` field, never in ``messages``."""

    name = "anthropic"
    label = "Anthropic"
    models = (
        "claude-opus-4-5-20251101",
        "claude-sonnet-4-5-20250929",
        "claude-haiku-4-5-20251015",
        "claude-opus-4-20250514",
        "claude-sonnet-4-20250514",
    )
    DEFAULT_MAX_TOKENS = 4096

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ) -> None:
        super().__init__(client)
        self.base_url = base_url or settings.anthropic_base_url

    def _params(self, request: CompletionRequest) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens or self.DEFAULT_MAX_TOKENS,
            "messages": [{"role": m.role, "content": m.content} for m in request.turns],
            "temperature": self._temperature(request),
        }
        system = request.system_prompt
        if system:
            params["system"] = system
        if request.top_p is not None:
            params["top_p"] = request.top_p
        return params

    def _sdk(self, api_key: str) -> anthropic.AsyncAnthropic:
        return anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=self.base_url,
            http_client=self._client,
            timeout=settings.timeout_s,
            max_retries=0,
        )

    async def complete(self, request: CompletionRequest, api_key: str) -> CompletionResult:
        if self._client is not None:
            # Closing the SDK client would close the caller's shared transport.
            return await self._create(self._sdk(api_key), request)
        async with self._sdk(api_key) as client:
            return await self._create(client, request)

    async def _create(
        self, client: anthropic.AsyncAnthropic, request: CompletionRequest
    ) -> CompletionResult:
        try:
            response = await client.messages.create(**self._params(request))
        except anthropic.APIStatusError as exc:
            raise ProviderError(_error_message(exc), exc.status_code) from exc
        except anthropic.APIError as exc:
            raise ProviderError(f"{self.label} request failed: {exc}") from exc

        if not response.content:
            raise ProviderError(f"No response from {self.label}")

        text = ""
        for block in response.content:
            if getattr(block, "type", None) == "text":
                text += block.text

        usage = None
        if response.usage is not None:
            tokens_in = getattr(response.usage, "input_tokens", 0) or 0
            tokens_out = getattr(response.usage, "output_tokens", 0) or 0
            usage = Usage(
                prompt_tokens=tokens_in,
                completion_tokens=tokens_out,
                total_tokens=tokens_in + tokens_out,
            )

        return CompletionResult(
            content=text,
            model=response.model or request.model,
            usage=usage,
            finish_reason=response.stop_reason,
        )


def _error_message(exc: anthropic.APIStatusError) -> str:
    body = exc.body
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if isinstance(body.get("message"), str) and body["message"]:
            return body["message"]
    return f"Anthropic API error: {exc.status_code}"
