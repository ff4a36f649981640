"""Tests for cookie, token and variable carry-over between endpoint turns."""

import json

import httpx

from suitekit.adapters.session import EndpointSessionManager
from suitekit.types import SessionConfig, TokenExtraction, TokenInjection, VariableExtraction

URL = "https://api.example.com/test"


def _make_response(*cookies: str) -> httpx.Response:
    return httpx.Response(200, headers=[("set-cookie", c) for c in cookies])


def _make_token_manager(injection: TokenInjection, path: str = "token") -> EndpointSessionManager:
    config = SessionConfig(
        enabled=True,
        token_extraction=TokenExtraction(enabled=True, response_path=path, injection=injection),
    )
    return EndpointSessionManager(config)


def test_cookies_are_stored_and_sent_back():
    manager = EndpointSessionManager(SessionConfig(enabled=True, persist_cookies=True))
    manager.process_response(_make_response("sessionId=abc123; Path=/; HttpOnly", "userId=user456; Path=/"), {})

    assert manager.cookies == {"sessionId": "abc123", "userId": "user456"}
    headers, body, url = manager.apply_to_request({}, "{}", URL)
    assert headers["Cookie"] == "sessionId=abc123; userId=user456"
    assert body == "{}"
    assert url == URL


def test_cookies_merge_with_an_existing_cookie_header():
    manager = EndpointSessionManager(SessionConfig(enabled=True, persist_cookies=True))
    manager.process_response(_make_response("sid=1"), {})

    headers, _, _ = manager.apply_to_request({"Cookie": "theme=dark"}, "", URL)
    assert headers["Cookie"] == "theme=dark; sid=1"


def test_cookies_ignored_unless_persisted():
    manager = EndpointSessionManager(SessionConfig(enabled=True))
    manager.process_response(_make_response("sid=1"), {})

    assert manager.cookies == {}
    headers, _, _ = manager.apply_to_request({}, "", URL)
    assert "Cookie" not in headers


def test_nameless_cookie_is_skipped():
    manager = EndpointSessionManager(SessionConfig(enabled=True, persist_cookies=True))
    manager.process_response(_make_response("=orphan; Path=/", "Secure", "ok=yes"), {})
    assert manager.cookies == {"ok": "yes"}


def test_token_extracted_by_path_and_sent_as_header_with_prefix():
    manager = _make_token_manager(
        TokenInjection(type="header", target="Authorization", prefix="Bearer "), path="data.accessToken"
    )
    manager.process_response(_make_response(), {"data": {"accessToken": "eyJhbGciOiJIUzI1NiJ9"}})

    assert manager.token == "eyJhbGciOiJIUzI1NiJ9"
    headers, _, _ = manager.apply_to_request({"Content-Type": "application/json"}, "{}", URL)
    assert headers["Authorization"] == "Bearer eyJhbGciOiJIUzI1NiJ9"
    assert headers["Content-Type"] == "application/json"


def test_non_string_token_is_stringified():
    manager = _make_token_manager(TokenInjection(type="header", target="X-Session"))
    manager.process_response(_make_response(), {"token": 42})
    assert manager.token == "42"


def test_token_injected_as_query_parameter():
    manager = _make_token_manager(TokenInjection(type="query", target="access_token"))
    manager.process_response(_make_response(), {"token": "abc123"})

    _, _, url = manager.apply_to_request({}, "{}", URL)
    assert url == "https://api.example.com/test?access_token=abc123"

    _, _, url = manager.apply_to_request({}, "{}", URL + "?access_token=old&page=2")
    assert httpx.URL(url).params["access_token"] == "abc123"
    assert httpx.URL(url).params["page"] == "2"


def test_token_injected_into_json_body():
    manager = _make_token_manager(TokenInjection(type="body", target="auth.token"))
    manager.process_response(_make_response(), {"token": "abc123"})

    _, body, _ = manager.apply_to_request({}, '{"auth": {}, "q": "hi"}', URL)
    assert json.loads(body) == {"auth": {"token": "abc123"}, "q": "hi"}

    _, body, _ = manager.apply_to_request({}, "{}", URL)
    assert json.loads(body) == {"auth": {"token": "abc123"}}


def test_token_injection_into_indexed_body_path():
    manager = _make_token_manager(TokenInjection(type="body", target="items[1].key"))
    manager.process_response(_make_response(), {"token": "t"})

    _, body, _ = manager.apply_to_request({}, '{"items": [{"key": "a"}]}', URL)
    assert json.loads(body) == {"items": [{"key": "a"}, {"key": "t"}]}


def test_body_left_alone_when_not_json():
    manager = _make_token_manager(TokenInjection(type="body", target="token"))
    manager.process_response(_make_response(), {"token": "abc"})

    _, body, _ = manager.apply_to_request({}, "plain=text", URL)
    assert body == "plain=text"


def test_nothing_injected_before_a_token_is_seen():
    manager = _make_token_manager(TokenInjection(type="header", target="Authorization"))
    manager.process_response(_make_response(), {"other": "x"})

    assert manager.token is None
    headers, _, _ = manager.apply_to_request({}, "{}", URL)
    assert headers == {}


def test_variables_extracted_and_missing_paths_skipped():
    config = SessionConfig(
        enabled=True,
        variable_extraction=[
            VariableExtraction(name="userId", response_path="data.user.id"),
            VariableExtraction(name="sessionId", response_path="data.session"),
            VariableExtraction(name="missing", response_path="data.notexist"),
        ],
    )
    manager = EndpointSessionManager(config)
    manager.process_response(_make_response(), {"data": {"user": {"id": 7}, "session": "sess456"}})

    assert manager.variables == {"userId": "7", "sessionId": "sess456"}


def test_reset_clears_all_state():
    config = SessionConfig(
        enabled=True,
        persist_cookies=True,
        token_extraction=TokenExtraction(
            enabled=True, response_path="token", injection=TokenInjection(type="header", target="Authorization")
        ),
        variable_extraction=[VariableExtraction(name="var1", response_path="value")],
    )
    manager = EndpointSessionManager(config)
    manager.process_response(_make_response("session=abc; Path=/"), {"token": "tok123", "value": "val456"})

    assert manager.cookies == {"session": "abc"}
    assert manager.token == "tok123"
    assert manager.variables == {"var1": "val456"}

    manager.reset()

    assert manager.cookies == {}
    assert manager.token is None
    assert manager.variables == {}
