"""Event stream wrapper around the orchestrator.

``stream_run`` yields typed events that any transport can forward;
``format_sse`` renders one event as a Server-Sent Events frame.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, AsyncIterator, ClassVar, Optional

import httpx
from pydantic import BaseModel, Field

from suitekit.config import settings
from suitekit.errors import PreconditionError
from suitekit.logging import get_logger
from suitekit.runners.orchestrator import (
    RunObserver,
    RunRequest,
    execute_prepared,
    prepare_run,
)
from suitekit.types import RunStatus, TestCase, TestResult, TestRun, dump

logger = get_logger(__name__)

EXECUTION_ERROR = "EXECUTION_ERROR"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class StreamEvent(BaseModel):
    name: ClassVar[str] = "event"

    def payload(self) -> dict[str, Any]:
        return dump(self)


class ConnectedEvent(StreamEvent):
    name: ClassVar[str] = "connected"

    run_id: str
    total: int
    timestamp: datetime = Field(default_factory=_utcnow)


class ProgressEvent(StreamEvent):
    name: ClassVar[str] = "progress"

    current: int
    total: int
    iteration: int
    test_case_id: str
    test_case_name: str


class ResultEvent(StreamEvent):
    name: ClassVar[str] = "result"

    result: TestResult

    def payload(self) -> dict[str, Any]:
        return dump(self.result)


class ErrorEvent(StreamEvent):
    name: ClassVar[str] = "error"

    message: str
    test_case_id: Optional[str] = None
    code: Optional[str] = None


class HeartbeatEvent(StreamEvent):
    name: ClassVar[str] = "heartbeat"

    timestamp: datetime = Field(default_factory=_utcnow)


class CompleteEvent(StreamEvent):
    name: ClassVar[str] = "complete"

    run_id: str
    status: RunStatus
    test_run: TestRun


def format_sse(event: StreamEvent) -> str:
    data = json.dumps(event.payload(), ensure_ascii=False)
    return f"event: {event.name}\ndata: {data}\n\n"


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------

_CLOSED = object()


class EventChannel:
    """Unbounded queue of events; ``close()`` ends iteration for the consumer."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: StreamEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[StreamEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


class _ChannelObserver(RunObserver):
    def __init__(self, channel: EventChannel) -> None:
        self.channel = channel

    async def on_progress(
        self, current: int, total: int, iteration: int, test_case: TestCase
    ) -> None:
        self.channel.send(
            ProgressEvent(
                current=current,
                total=total,
                iteration=iteration,
                test_case_id=test_case.id,
                test_case_name=test_case.name,
            )
        )

    async def on_result(self, result: TestResult) -> None:
        self.channel.send(ResultEvent(result=result))

    async def on_error(self, message: str, test_case_id: Optional[str]) -> None:
        self.channel.send(ErrorEvent(message=message, test_case_id=test_case_id))


# Keeps runs alive after their consumer has gone away.
_background: set[asyncio.Task] = set()


async def _heartbeat(channel: EventChannel, interval: float) -> None:
    while not channel.closed:
        await asyncio.sleep(interval)
        channel.send(HeartbeatEvent())


async def stream_run(
    request: RunRequest,
    cancel_event: Optional[asyncio.Event] = None,
    heartbeat_interval: Optional[float] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[StreamEvent]:
    """Run ``request`` and yield its events as they happen.

    Emits ``connected`` first and exactly one ``complete`` last, cancelled
    or not. A request that fails its preconditions yields a single
    ``error`` event with code EXECUTION_ERROR. Closing the iterator early
    sets the cancel event.
    """
    try:
        prepared = prepare_run(request)
    except PreconditionError as exc:
        yield ErrorEvent(message=str(exc), code=EXECUTION_ERROR)
        return

    cancel_event = cancel_event or asyncio.Event()
    interval = heartbeat_interval if heartbeat_interval is not None else settings.heartbeat_interval_s
    channel = EventChannel()
    channel.send(ConnectedEvent(run_id=prepared.run.id, total=len(prepared.units)))

    async def produce() -> None:
        try:
            run = await execute_prepared(
                request, prepared, cancel_event, _ChannelObserver(channel), client
            )
            channel.send(CompleteEvent(run_id=run.id, status=run.status, test_run=run))
        except Exception as exc:
            logger.exception(f"Run {prepared.run.id} aborted: {exc}")
            channel.send(ErrorEvent(message=str(exc), code=EXECUTION_ERROR))
        finally:
            channel.close()

    producer = asyncio.create_task(produce())
    _background.add(producer)
    producer.add_done_callback(_background.discard)
    heartbeat = asyncio.create_task(_heartbeat(channel, interval))

    try:
        async for event in channel:
            yield event
    finally:
        heartbeat.cancel()
        if not producer.done():
            logger.info(f"Run {prepared.run.id}: stream closed early, cancelling")
            cancel_event.set()
