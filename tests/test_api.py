"""Tests for the HTTP surface."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from suitekit.api import app, get_http_client


def _handler(request: httpx.Request) -> httpx.Response:
    prompt = json.loads(request.content)["messages"][-1]["content"]
    return httpx.Response(200, json={"model": "gpt-4o-mini", "choices": [{"message": {"content": f"echo {prompt}"}}]})


@pytest.fixture()
def client():
    mock = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    app.dependency_overrides[get_http_client] = lambda: mock
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _make_body(**overrides) -> dict:
    body = {
        "target_type": "prompt",
        "target": {"versions": [{"version": 1, "content": "say {{word}}"}]},
        "test_cases": [
            {"id": "a", "name": "alpha", "inputs": {"word": "alpha"}, "tags": ["x"]},
            {"id": "b", "name": "beta", "inputs": {"word": "beta"}},
        ],
        "validation_rules": [{"type": "contains", "value": "alpha"}],
        "credentials": {"openai": "sk-test"},
    }
    body.update(overrides)
    return body


def _parse_sse(text: str) -> list[tuple[str, dict]]:
    frames = []
    for block in text.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        frames.append((lines["event"], json.loads(lines["data"])))
    return frames


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_providers(client):
    names = [p["name"] for p in client.get("/providers").json()]
    assert names == ["openai", "anthropic", "gemini", "grok", "deepseek"]


def test_provider_models(client):
    resp = client.get("/providers/openai/models")
    assert resp.status_code == 200
    assert "gpt-4o-mini" in resp.json()["models"]


def test_unknown_provider_is_404(client):
    resp = client.get("/providers/nope/models")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Unknown provider: nope"}


def test_batch_run(client):
    resp = client.post("/runs", json=_make_body())
    assert resp.status_code == 200
    run = resp.json()
    assert run["status"] == "completed"
    assert run["summary"]["total"] == 2
    assert run["summary"]["passed"] == 1
    outputs = {r["test_case_id"]: r["output"] for r in run["results"]}
    assert outputs == {"a": "echo say alpha", "b": "echo say beta"}


def test_batch_run_with_tag_filter(client):
    run = client.post("/runs", json=_make_body(tags=["x"])).json()
    assert [r["test_case_id"] for r in run["results"]] == ["a"]


def test_missing_credentials_is_400(client):
    resp = client.post("/runs", json=_make_body(credentials={}))
    assert resp.status_code == 400
    assert "OpenAI API key is required" in resp.json()["error"]


def test_no_matching_cases_is_400(client):
    resp = client.post("/runs", json=_make_body(test_case_ids=["zzz"]))
    assert resp.status_code == 400
    assert resp.json()["error"] == "No test cases match the selected IDs"


def test_stream_run(client):
    resp = client.post("/runs/stream", json=_make_body())
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["cache-control"] == "no-cache, no-transform"

    frames = _parse_sse(resp.text)
    names = [name for name, _ in frames]
    assert names[0] == "connected"
    assert names[-1] == "complete"
    assert names.count("result") == 2
    assert names.count("complete") == 1
    complete = frames[-1][1]
    assert complete["status"] == "completed"
    assert complete["test_run"]["summary"]["total"] == 2


def test_stream_precondition_failure_is_400(client):
    resp = client.post("/runs/stream", json=_make_body(credentials={}))
    assert resp.status_code == 400


def test_compare(client):
    passing = {"test_case_id": "tc1", "test_case_name": "one", "validation_passed": True}
    failing = {"test_case_id": "tc1", "test_case_name": "one", "validation_passed": False}
    body = {
        "baseline": {"results": [passing], "summary": {"total": 1, "passed": 1}},
        "compare": {"results": [failing], "summary": {"total": 1, "failed": 1}},
    }
    resp = client.post("/compare", json=body)
    assert resp.status_code == 200
    data = resp.json()
    assert data["summary"]["regressed"] == 1
    assert data["summary"]["pass_rate_delta"] == -100
    assert data["test_cases"][0]["status"] == "regressed"
