"""Base adapter interface shared by every provider variant."""

from __future__ import annotations

import abc
from typing import Any, ClassVar, Optional

import httpx

from suitekit.config import settings
from suitekit.errors import ProviderError
from suitekit.types import CompletionRequest, CompletionResult


class BaseAdapter(abc.ABC):
    """Translates a CompletionRequest into one backend's wire format and back.

    Each variant owns its own marshalling and its own defaults. Adapters are
    cheap to build; an ``httpx.AsyncClient`` may be injected so tests can swap
    the transport.
    """

    name: ClassVar[str] = "base"
    label: ClassVar[str] = "Base"
    models: ClassVar[tuple[str, ...]] = ()
    DEFAULT_TEMPERATURE: ClassVar[float] = 0.7

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client

    def list_models(self) -> list[str]:
        return list(self.models)

    @abc.abstractmethod
    async def complete(self, request: CompletionRequest, api_key: str) -> CompletionResult:
        """Execute one completion and return the normalized result."""
        ...

    def _temperature(self, request: CompletionRequest) -> float:
        if request.temperature is None:
            return self.DEFAULT_TEMPERATURE
        return request.temperature

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        json: Any = None,
        content: Optional[str] = None,
    ) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.request(
                    method, url, headers=headers, json=json, content=content
                )
            async with httpx.AsyncClient(timeout=settings.timeout_s) as client:
                return await client.request(
                    method, url, headers=headers, json=json, content=content
                )
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.label} request failed: {exc}") from exc

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        message = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                message = error.get("message")
            elif isinstance(error, str):
                message = error
        raise ProviderError(
            message or f"{self.label} API error: {response.status_code}",
            response.status_code,
        )

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(
                f"Malformed response from {self.label}", response.status_code
            ) from exc
        if not isinstance(data, dict):
            raise ProviderError(f"Malformed response from {self.label}", response.status_code)
        return data
