"""Tests for the event stream around a run."""

import asyncio
import json

import httpx

from suitekit.runners.orchestrator import RunRequest
from suitekit.runners.streaming import (
    CompleteEvent,
    ConnectedEvent,
    ErrorEvent,
    EventChannel,
    HeartbeatEvent,
    ProgressEvent,
    format_sse,
    stream_run,
)
from suitekit.types import Credentials, PromptTarget, PromptVersion, RunStatus, TestCase


def _make_client(delay: float = 0.0, fail_on: str = "") -> httpx.AsyncClient:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(delay)
        prompt = json.loads(request.content)["messages"][-1]["content"]
        if fail_on and fail_on in prompt:
            return httpx.Response(502, json={"error": {"message": "bad gateway"}})
        return httpx.Response(200, json={"model": "m", "choices": [{"message": {"content": "ok"}}]})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _make_request(n: int = 2, **kwargs) -> RunRequest:
    kwargs.setdefault("credentials", Credentials(keys={"openai": "sk"}))
    return RunRequest(
        target_type="prompt",
        target=PromptTarget(versions=[PromptVersion(version=1, content="{{q}}")]),
        test_cases=[TestCase(id=f"tc{i}", name=f"case {i}", inputs={"q": f"q{i}"}) for i in range(n)],
        **kwargs,
    )


def _collect(request: RunRequest, client_kwargs=None, **kwargs) -> list:
    async def go():
        events = []
        async with _make_client(**(client_kwargs or {})) as client:
            async for event in stream_run(request, client=client, **kwargs):
                events.append(event)
        return events

    return asyncio.run(go())


def test_event_sequence():
    events = _collect(_make_request(n=2))
    names = [e.name for e in events]
    assert names == ["connected", "progress", "result", "progress", "result", "complete"]

    connected = events[0]
    assert isinstance(connected, ConnectedEvent)
    assert connected.total == 2
    complete = events[-1]
    assert isinstance(complete, CompleteEvent)
    assert complete.run_id == connected.run_id
    assert complete.status == RunStatus.completed
    assert len(complete.test_run.results) == 2

    progress = events[1]
    assert isinstance(progress, ProgressEvent)
    assert (progress.current, progress.total, progress.iteration) == (1, 2, 1)
    assert progress.test_case_name == "case 0"


def test_unit_errors_are_reported_without_ending_stream():
    events = _collect(_make_request(n=2), client_kwargs={"fail_on": "q0"})
    errors = [e for e in events if e.name == "error"]
    assert len(errors) == 1
    assert errors[0].test_case_id == "tc0"
    assert errors[0].message == "bad gateway"
    assert events[-1].name == "complete"


def test_precondition_failure_is_a_single_error_event():
    events = _collect(_make_request(credentials=Credentials()))
    assert len(events) == 1
    assert isinstance(events[0], ErrorEvent)
    assert events[0].code == "EXECUTION_ERROR"
    assert "OpenAI API key is required" in events[0].message


def test_heartbeats_fire_independently_of_progress():
    events = _collect(_make_request(n=1), client_kwargs={"delay": 0.2}, heartbeat_interval=0.03)
    assert any(isinstance(e, HeartbeatEvent) for e in events)
    assert events[0].name == "connected"
    assert events[-1].name == "complete"


def test_cancellation_still_sends_complete():
    async def go():
        cancel = asyncio.Event()
        events = []
        async with _make_client(delay=0.01) as client:
            async for event in stream_run(_make_request(n=5), cancel_event=cancel, client=client):
                events.append(event)
                if event.name == "result":
                    cancel.set()
        return events

    events = asyncio.run(go())
    complete = events[-1]
    assert complete.name == "complete"
    assert complete.status == RunStatus.incomplete
    assert 1 <= len(complete.test_run.results) < 5


def test_closing_the_stream_early_cancels_the_run():
    async def go():
        cancel = asyncio.Event()
        async with _make_client(delay=0.01) as client:
            events = stream_run(_make_request(n=5), cancel_event=cancel, client=client)
            async for event in events:
                if event.name == "progress":
                    break
            await events.aclose()
        return cancel.is_set()

    assert asyncio.run(go())


def test_format_sse():
    frame = format_sse(ErrorEvent(message="boom", test_case_id="tc1"))
    assert frame.startswith("event: error\ndata: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame.split("data: ", 1)[1]) == {"message": "boom", "test_case_id": "tc1"}


def test_result_frame_carries_the_test_result():
    events = _collect(_make_request(n=1))
    result = next(e for e in events if e.name == "result")
    data = json.loads(format_sse(result).split("data: ", 1)[1])
    assert data["test_case_id"] == "tc0"
    assert data["output"] == "ok"


def test_channel_stops_after_close():
    async def go():
        channel = EventChannel()
        channel.send(HeartbeatEvent())
        channel.close()
        channel.send(HeartbeatEvent())
        return [e async for e in channel]

    assert len(asyncio.run(go())) == 1
