"""Adapter that calls an arbitrary HTTP endpoint described by an EndpointConfig."""

from __future__ import annotations

import base64
import json
from typing import Any, Optional

import httpx

from suitekit.adapters.base import BaseAdapter
from suitekit.errors import ProviderError
from suitekit.templating import get_value_by_path, replace_variables
from suitekit.types import CompletionRequest, CompletionResult, EndpointConfig

BODY_METHODS = ("POST", "PUT", "PATCH")


class EndpointResult(CompletionResult):
    extracted_content: Optional[str] = None
    status_code: int = 200


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, indent=2, ensure_ascii=False)


class HttpEndpointAdapter(BaseAdapter):
    """Renders the configured request from ``request.variables``.

    The messages and model of the incoming request are ignored; the endpoint
    decides what to do with the rendered body.
    """

    name = "endpoint"
    label = "HTTP endpoint"

    def __init__(self, config: EndpointConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(client)
        self.config = config

    @property
    def is_json(self) -> bool:
        return "application/json" in self.config.content_type.lower()

    def build_headers(self) -> dict[str, str]:
        headers = {"Content-Type": self.config.content_type}
        headers.update(self.config.headers)

        auth = self.config.auth
        if auth.type == "bearer" and auth.token:
            headers["Authorization"] = f"Bearer {auth.token}"
        elif auth.type == "api_key" and auth.api_key_header and auth.api_key:
            headers[auth.api_key_header] = auth.api_key
        elif auth.type == "basic" and auth.username and auth.password:
            token = base64.b64encode(f"{auth.username}:{auth.password}".encode()).decode()
            headers["Authorization"] = f"Basic {token}"
        return headers

    def build_body(self, variables: dict[str, str], template: Optional[str] = None) -> Optional[str]:
        template = template or self.config.body_template
        if self.config.method not in BODY_METHODS or not template:
            return None
        return replace_variables(template, variables, escape_for_json=self.is_json)

    def render_url(self, variables: dict[str, str]) -> str:
        return replace_variables(self.config.url, variables, url_encode=True)

    async def send(self, url: str, headers: dict[str, str], body: Optional[str]) -> httpx.Response:
        return await self._send(self.config.method, url, headers=headers, content=body)

    @staticmethod
    def parse_body(response: httpx.Response) -> Any:
        """Decoded JSON when the response says it is JSON, else the raw text."""
        text = response.text
        if "application/json" in response.headers.get("content-type", ""):
            try:
                return json.loads(text)
            except ValueError:
                return text
        return text

    def extract(self, body: Any) -> tuple[str, Optional[str]]:
        """``(content, extracted_content)`` after applying ``response_content_path``."""
        path = self.config.response_content_path
        if path and isinstance(body, (dict, list)):
            extracted = _render(get_value_by_path(body, path))
            return extracted, extracted
        return _render(body), None

    async def complete(self, request: CompletionRequest, api_key: str = "") -> EndpointResult:
        variables = request.variables
        response = await self.send(self.render_url(variables), self.build_headers(), self.build_body(variables))
        if not response.is_success:
            raise ProviderError(
                f"HTTP {response.status_code} {response.reason_phrase}: {response.text}",
                response.status_code,
            )

        content, extracted = self.extract(self.parse_body(response))
        return EndpointResult(
            content=content,
            model=self.config.url,
            extracted_content=extracted,
            status_code=response.status_code,
        )
