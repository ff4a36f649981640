"""Tests for the HTTP endpoint adapter."""

import asyncio
import base64
import json

import httpx
import pytest

from suitekit.adapters.http_endpoint import HttpEndpointAdapter
from suitekit.errors import ProviderError
from suitekit.types import CompletionRequest, EndpointAuth, EndpointConfig


def _make_adapter(responder, seen: list, **config) -> HttpEndpointAdapter:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responder(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    config.setdefault("url", "https://app.test/chat")
    return HttpEndpointAdapter(EndpointConfig(**config), client=client)


def _call(adapter: HttpEndpointAdapter, **variables):
    request = CompletionRequest(model="endpoint", messages=[], variables=variables)
    return asyncio.run(adapter.complete(request))


def test_json_body_is_escaped_and_path_extracted():
    seen: list = []
    adapter = _make_adapter(
        lambda r: httpx.Response(200, json={"data": {"reply": "pong"}}),
        seen,
        body_template='{"message": "{{ question }}", "user": "{{user}}"}',
        response_content_path="data.reply",
    )

    result = _call(adapter, question='say "hi"\nplease', user="u1")

    assert result.content == "pong"
    assert result.extracted_content == "pong"
    sent = json.loads(seen[0].content)
    assert sent == {"message": 'say "hi"\nplease', "user": "u1"}
    assert seen[0].headers["Content-Type"] == "application/json"


def test_non_string_extraction_is_indented_json():
    seen: list = []
    adapter = _make_adapter(
        lambda r: httpx.Response(200, json={"data": {"items": [1, 2]}}),
        seen,
        response_content_path="data",
    )
    result = _call(adapter)
    assert result.content == json.dumps({"items": [1, 2]}, indent=2)


def test_without_path_the_body_is_the_output():
    seen: list = []
    adapter = _make_adapter(lambda r: httpx.Response(200, text="plain answer"), seen)
    result = _call(adapter)
    assert result.content == "plain answer"
    assert result.extracted_content is None


def test_unparsable_json_falls_back_to_text():
    seen: list = []
    adapter = _make_adapter(
        lambda r: httpx.Response(200, text="{oops", headers={"content-type": "application/json"}),
        seen,
        response_content_path="data.reply",
    )
    result = _call(adapter)
    assert result.content == "{oops"
    assert result.extracted_content is None


def test_get_sends_no_body_and_quotes_url_values():
    seen: list = []
    adapter = _make_adapter(
        lambda r: httpx.Response(200, text="ok"),
        seen,
        method="GET",
        url="https://app.test/search?q={{query}}",
        body_template='{"ignored": true}',
    )
    _call(adapter, query="red shoes/size 9")
    assert seen[0].method == "GET"
    assert seen[0].content == b""
    assert seen[0].url.params["q"] == "red shoes/size 9"


def test_auth_headers():
    seen: list = []
    ok = lambda r: httpx.Response(200, text="ok")  # noqa: E731

    _call(_make_adapter(ok, seen, auth=EndpointAuth(type="bearer", token="t0k")))
    _call(_make_adapter(ok, seen, auth=EndpointAuth(type="api_key", api_key_header="X-Key", api_key="k1")))
    _call(_make_adapter(ok, seen, auth=EndpointAuth(type="basic", username="ada", password="pw")))

    assert seen[0].headers["Authorization"] == "Bearer t0k"
    assert seen[1].headers["X-Key"] == "k1"
    expected = base64.b64encode(b"ada:pw").decode()
    assert seen[2].headers["Authorization"] == f"Basic {expected}"


def test_custom_headers_are_sent():
    seen: list = []
    adapter = _make_adapter(lambda r: httpx.Response(200, text="ok"), seen, headers={"X-Tenant": "acme"})
    _call(adapter)
    assert seen[0].headers["X-Tenant"] == "acme"


def test_non_2xx_raises_with_status_and_body():
    seen: list = []
    adapter = _make_adapter(lambda r: httpx.Response(500, text="kaboom"), seen)
    with pytest.raises(ProviderError) as exc_info:
        _call(adapter)
    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "HTTP 500 Internal Server Error: kaboom"
