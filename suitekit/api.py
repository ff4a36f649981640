"""HTTP surface: batch and streaming runs, comparison, provider catalogue."""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from suitekit.adapters.registry import PROVIDER_LABELS, PROVIDERS, list_models
from suitekit.errors import PreconditionError, UnknownProviderError
from suitekit.reporting.compare import compare_runs
from suitekit.runners.orchestrator import (
    RunRequest,
    check_preconditions,
    execute_run,
    select_test_cases,
)
from suitekit.runners.streaming import format_sse, stream_run
from suitekit.types import RunComparison, TestRun

app = FastAPI(title="suitekit")

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class CompareRequest(BaseModel):
    baseline: TestRun
    compare: TestRun


def get_http_client() -> Optional[httpx.AsyncClient]:
    """Transport shared by adapter calls; None lets each adapter open its own."""
    return None


@app.exception_handler(PreconditionError)
async def _precondition_error(_request, exc: PreconditionError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=400)


@app.exception_handler(UnknownProviderError)
async def _unknown_provider(_request, exc: UnknownProviderError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=404)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/providers")
async def providers() -> list[dict[str, str]]:
    return [{"name": name, "label": PROVIDER_LABELS[name]} for name in PROVIDERS]


@app.get("/providers/{name}/models")
async def provider_models(name: str) -> dict[str, object]:
    return {"provider": name, "models": list_models(name)}


@app.post("/runs", response_model=TestRun, response_model_exclude_none=True)
async def create_run(
    body: RunRequest,
    client: Optional[httpx.AsyncClient] = Depends(get_http_client),
) -> TestRun:
    return await execute_run(body, client=client)


@app.post("/runs/stream")
async def create_run_stream(
    body: RunRequest,
    client: Optional[httpx.AsyncClient] = Depends(get_http_client),
):
    # Reject bad requests with a status code before the stream opens.
    select_test_cases(body.test_cases, body.test_case_ids, body.tags)
    check_preconditions(body)

    cancel_event = asyncio.Event()

    async def event_gen():
        events = stream_run(body, cancel_event=cancel_event, client=client)
        try:
            async for event in events:
                yield format_sse(event)
        finally:
            # Client went away or the run finished; either way stop dispatching.
            cancel_event.set()
            await events.aclose()

    return StreamingResponse(event_gen(), media_type="text/event-stream", headers=SSE_HEADERS)


@app.post("/compare", response_model=RunComparison, response_model_exclude_none=True)
async def compare(body: CompareRequest) -> RunComparison:
    return compare_runs(body.baseline, body.compare)
