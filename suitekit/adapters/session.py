"""Cookie, token and variable carry-over between turns of an endpoint conversation."""

from __future__ import annotations

import json
from typing import Any, Optional

import httpx

from suitekit.logging import get_logger
from suitekit.templating import get_value_by_path, set_value_by_path
from suitekit.types import SessionConfig

logger = get_logger(__name__)


class EndpointSessionManager:
    """Remembers what one response hands out and applies it to the next request."""

    def __init__(self, config: SessionConfig) -> None:
        self.config = config
        self._cookies: dict[str, str] = {}
        self._token: Optional[str] = None
        self._variables: dict[str, str] = {}

    @property
    def cookies(self) -> dict[str, str]:
        return dict(self._cookies)

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def variables(self) -> dict[str, str]:
        return dict(self._variables)

    def reset(self) -> None:
        self._cookies.clear()
        self._token = None
        self._variables = {}

    def _store_cookies(self, headers: list[str]) -> None:
        for header in headers:
            pair = header.split(";", 1)[0].strip()
            name, sep, value = pair.partition("=")
            # "=value" and bare flags carry no cookie name
            if sep and name.strip():
                self._cookies[name.strip()] = value.strip()

    def process_response(self, response: httpx.Response, body: Any) -> None:
        if self.config.persist_cookies:
            self._store_cookies(response.headers.get_list("set-cookie"))

        extraction = self.config.token_extraction
        if extraction and extraction.enabled and extraction.response_path:
            token = get_value_by_path(body, extraction.response_path)
            if token is not None:
                self._token = token if isinstance(token, str) else str(token)

        for item in self.config.variable_extraction:
            if not item.name or not item.response_path:
                continue
            value = get_value_by_path(body, item.response_path)
            if value is not None:
                self._variables[item.name] = str(value)

    def apply_to_request(
        self, headers: dict[str, str], body: str, url: str
    ) -> tuple[dict[str, str], str, str]:
        """Return ``(headers, body, url)`` with cookies and the token applied."""
        headers = dict(headers)

        if self.config.persist_cookies and self._cookies:
            jar = "; ".join(f"{name}={value}" for name, value in self._cookies.items())
            headers["Cookie"] = f"{headers['Cookie']}; {jar}" if headers.get("Cookie") else jar

        extraction = self.config.token_extraction
        injection = extraction.injection if extraction else None
        if not self._token or injection is None or not injection.target:
            return headers, body, url

        value = f"{injection.prefix}{self._token}" if injection.prefix else self._token
        if injection.type == "header":
            headers[injection.target] = value
        elif injection.type == "body":
            try:
                payload = json.loads(body)
            except ValueError:
                logger.warning("Failed to inject token into body: body is not valid JSON")
            else:
                if isinstance(payload, dict):
                    set_value_by_path(payload, injection.target, value)
                    body = json.dumps(payload)
                else:
                    logger.warning("Failed to inject token into body: body is not a JSON object")
        else:
            url = str(httpx.URL(url).copy_set_param(injection.target, value))
        return headers, body, url
