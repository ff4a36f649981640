"""Executes one test case against a prompt or endpoint target."""

from __future__ import annotations

import time
from typing import Optional

from pydantic import BaseModel

from suitekit.adapters.http_endpoint import EndpointResult, HttpEndpointAdapter
from suitekit.adapters.registry import get_adapter
from suitekit.logging import get_logger
from suitekit.runners.context import (
    ExecutionContext,
    apply_judge,
    build_completion_request,
    describe,
    resolve_prompt_version,
    resolve_provider_model,
)
from suitekit.runners.conversation import execute_conversation
from suitekit.scoring.judge import summarize_inputs
from suitekit.scoring.rules import validate
from suitekit.templating import replace_variables
from suitekit.types import CompletionRequest, EndpointTarget, Message, TestCase, TestResult

logger = get_logger(__name__)

__all__ = [
    "ExecutionContext",
    "execute_test_case",
    "resolve_provider_model",
]


class _Execution(BaseModel):
    output: str
    response_time_ms: int
    extracted_content: Optional[str] = None


async def _execute_prompt(ctx: ExecutionContext, test_case: TestCase) -> _Execution:
    version = resolve_prompt_version(ctx)
    provider, model = resolve_provider_model(ctx.target, ctx.target_version, ctx.model_override)
    api_key = ctx.credentials.require(provider)

    messages: list[Message] = []
    if version.system_prompt:
        messages.append(
            Message(role="system", content=replace_variables(version.system_prompt, test_case.inputs))
        )
    messages.append(Message(role="user", content=replace_variables(version.content, test_case.inputs)))

    request = build_completion_request(version, model, messages)
    adapter = get_adapter(provider, client=ctx.http_client)

    started = time.perf_counter()
    result = await adapter.complete(request, api_key)
    elapsed_ms = int((time.perf_counter() - started) * 1000)
    return _Execution(output=result.content, response_time_ms=elapsed_ms)


async def _execute_endpoint(ctx: ExecutionContext, test_case: TestCase) -> _Execution:
    target = ctx.target
    if not isinstance(target, EndpointTarget):
        raise TypeError("endpoint execution needs an EndpointTarget")
    adapter = HttpEndpointAdapter(target.config, client=ctx.http_client)
    request = CompletionRequest(model=target.name or "endpoint", messages=[], variables=test_case.inputs)

    started = time.perf_counter()
    result = await adapter.complete(request)
    elapsed_ms = int((time.perf_counter() - started) * 1000)

    extracted = result.extracted_content if isinstance(result, EndpointResult) else None
    return _Execution(output=result.content, response_time_ms=elapsed_ms, extracted_content=extracted)


async def execute_test_case(ctx: ExecutionContext, test_case: TestCase) -> TestResult:
    """Run one case end to end. Never raises; failures are recorded on the result."""
    if test_case.is_conversation and test_case.conversation:
        return await execute_conversation(ctx, test_case)

    result = TestResult(
        test_case_id=test_case.id,
        test_case_name=test_case.name,
        inputs=dict(test_case.inputs),
    )

    try:
        if ctx.target_type == "prompt":
            execution = await _execute_prompt(ctx, test_case)
        else:
            execution = await _execute_endpoint(ctx, test_case)
        result.output = execution.output
        result.response_time_ms = execution.response_time_ms
        result.extracted_content = execution.extracted_content

        # Suite rules first, then per-case rules.
        rules = [*ctx.validation_rules, *test_case.validation_rules]
        validation = validate(result.output, rules, result.response_time_ms)
        result.validation_passed = validation.passed
        result.validation_errors = list(validation.errors)

        await apply_judge(ctx, test_case, result, summarize_inputs(test_case.inputs))
    except Exception as exc:
        message = describe(exc)
        logger.warning(f"Test case {test_case.id} failed: {message}")
        result.error = message
        result.validation_passed = False
        result.validation_errors = [message]

    return result
