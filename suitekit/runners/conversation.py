"""Multi-turn conversation cases.

User turns are sent to the target with everything said so far; assistant turns
are scripted and only replayed. Validation runs after every user turn
(``per-turn``) or once on the last reply (``final-only``). The judge always
sees the whole conversation.
"""

from __future__ import annotations

import time
from typing import Optional

from suitekit.adapters.http_endpoint import HttpEndpointAdapter
from suitekit.adapters.registry import get_adapter
from suitekit.adapters.session import EndpointSessionManager
from suitekit.errors import ProviderError
from suitekit.logging import get_logger
from suitekit.runners.context import (
    ExecutionContext,
    apply_judge,
    build_completion_request,
    describe,
    resolve_prompt_version,
    resolve_provider_model,
)
from suitekit.scoring.judge import validate_with_judge
from suitekit.scoring.rules import validate
from suitekit.templating import replace_variables
from suitekit.types import (
    ConversationTurn,
    EndpointTarget,
    Message,
    TestCase,
    TestResult,
    TurnResult,
)

logger = get_logger(__name__)

# Inputs with this prefix are bookkeeping and never reach a request body.
_HIDDEN_PREFIX = "$__"


def build_conversation_summary(inputs: dict[str, str], turns: list[TurnResult]) -> str:
    parts: list[str] = []
    if inputs:
        parts.append("Variables:")
        parts.extend(f"  {key}: {value}" for key, value in inputs.items())
        parts.append("")
    parts.append("Conversation:")
    for turn in turns:
        if turn.role == "user":
            parts.append(f"  User: {turn.input}")
            parts.append(f"  Assistant: {turn.output}")
    return "\n".join(parts)


class _Conversation:
    """Accumulates turn results and the running verdict for one case."""

    def __init__(self, ctx: ExecutionContext, test_case: TestCase) -> None:
        self.ctx = ctx
        self.test_case = test_case
        self.per_turn = test_case.validation_timing == "per-turn"
        self.turns: list[TurnResult] = []
        self.errors: list[str] = []
        self.passed = True
        self.total_ms = 0
        self.last_output = ""

    def replay(self, index: int, turn: ConversationTurn, label: str) -> str:
        content = turn.simulated_response or turn.content
        self.turns.append(
            TurnResult(turn_index=index, role="assistant", input=label, output=content, response_time_ms=0)
        )
        return content

    async def record(
        self,
        index: int,
        turn: ConversationTurn,
        sent: str,
        output: str,
        elapsed_ms: int,
        extracted: Optional[dict[str, str]] = None,
    ) -> None:
        self.total_ms += elapsed_ms
        self.last_output = output
        result = TurnResult(
            turn_index=index,
            role="user",
            input=sent,
            output=output,
            response_time_ms=elapsed_ms,
            extracted_variables=extracted,
        )
        if self.per_turn:
            await self._check_turn(index, turn, result)
        self.turns.append(result)

    async def _check_turn(self, index: int, turn: ConversationTurn, result: TurnResult) -> None:
        rules = [*self.ctx.validation_rules, *turn.validation_rules]
        validation = validate(result.output, rules, result.response_time_ms)
        result.validation_passed = validation.passed
        result.validation_errors = list(validation.errors)
        failures = [] if validation.passed else list(validation.errors)

        judge = self.ctx.judge_config
        if judge.enabled and turn.judge_validation_rules:
            verdict = await validate_with_judge(
                result.input,
                result.output,
                turn.judge_validation_rules,
                judge,
                self.ctx.credentials,
                client=self.ctx.http_client,
            )
            if not verdict.passed:
                result.validation_passed = False
                result.validation_errors.extend(verdict.errors)
                failures.extend(verdict.errors)

        if failures:
            self.passed = False
            self.errors.extend(f"Turn {index + 1}: {error}" for error in failures)

    def result(self) -> TestResult:
        return TestResult(
            test_case_id=self.test_case.id,
            test_case_name=self.test_case.name,
            inputs=dict(self.test_case.inputs),
            output=self.last_output,
            validation_passed=self.passed,
            validation_errors=list(self.errors),
            response_time_ms=self.total_ms,
            is_conversation=True,
            turn_results=list(self.turns),
            total_turns=len(self.test_case.conversation),
        )

    async def finish(self) -> TestResult:
        if not self.per_turn:
            rules = [*self.ctx.validation_rules, *self.test_case.validation_rules]
            if rules:
                validation = validate(self.last_output, rules, self.total_ms)
                self.passed = validation.passed
                self.errors.extend(validation.errors)

        result = self.result()
        summary = build_conversation_summary(self.test_case.inputs, self.turns)
        await apply_judge(self.ctx, self.test_case, result, summary)
        return result

    def failed(self, exc: Exception) -> TestResult:
        message = describe(exc)
        logger.warning(f"Conversation {self.test_case.id} failed after {len(self.turns)} turns: {message}")
        result = self.result()
        result.validation_passed = False
        result.validation_errors = [message]
        result.error = message
        return result


async def execute_conversation_prompt(ctx: ExecutionContext, test_case: TestCase) -> TestResult:
    """Drive a prompt target through the scripted turns, keeping the full history."""
    state = _Conversation(ctx, test_case)
    try:
        version = resolve_prompt_version(ctx)
        provider, model = resolve_provider_model(ctx.target, ctx.target_version, ctx.model_override)
        api_key = ctx.credentials.require(provider)
        adapter = get_adapter(provider, client=ctx.http_client)

        history: list[Message] = []
        if version.system_prompt:
            history.append(
                Message(role="system", content=replace_variables(version.system_prompt, test_case.inputs))
            )

        for index, turn in enumerate(test_case.conversation):
            if turn.role == "assistant":
                history.append(Message(role="assistant", content=state.replay(index, turn, "(simulated)")))
                continue

            variables = {**test_case.inputs, **turn.inputs}
            content = replace_variables(turn.content, variables)
            history.append(Message(role="user", content=content))

            started = time.perf_counter()
            reply = await adapter.complete(build_completion_request(version, model, list(history)), api_key)
            elapsed_ms = int((time.perf_counter() - started) * 1000)

            history.append(Message(role="assistant", content=reply.content))
            await state.record(index, turn, content, reply.content, elapsed_ms)

        return await state.finish()
    except Exception as exc:
        return state.failed(exc)


def _turn_template(turn: ConversationTurn) -> Optional[str]:
    # Content that looks like a body is the body; plain text falls back to the endpoint's template.
    if turn.content.strip().startswith("{") or "{{" in turn.content:
        return turn.content
    return None


async def execute_conversation_endpoint(ctx: ExecutionContext, test_case: TestCase) -> TestResult:
    """Send each user turn to the endpoint, carrying session state between requests."""
    state = _Conversation(ctx, test_case)
    try:
        target = ctx.target
        if not isinstance(target, EndpointTarget):
            raise TypeError("endpoint execution needs an EndpointTarget")
        adapter = HttpEndpointAdapter(target.config, client=ctx.http_client)
        session_config = test_case.session_config
        session = EndpointSessionManager(session_config) if session_config and session_config.enabled else None

        for index, turn in enumerate(test_case.conversation):
            if turn.role == "assistant":
                state.replay(index, turn, "(expected)")
                continue

            variables = {**test_case.inputs, **turn.inputs, **(session.variables if session else {})}
            content = replace_variables(turn.content, variables)
            body_variables = {k: v for k, v in variables.items() if not k.startswith(_HIDDEN_PREFIX)}
            body = adapter.build_body(body_variables, template=_turn_template(turn))
            headers = adapter.build_headers()
            url = adapter.render_url(variables)
            if session is not None:
                headers, session_body, url = session.apply_to_request(headers, body or "", url)
                body = session_body or body

            started = time.perf_counter()
            response = await adapter.send(url, headers, body)
            elapsed_ms = int((time.perf_counter() - started) * 1000)

            parsed = adapter.parse_body(response)
            if session is not None:
                session.process_response(response, parsed)
            output, _ = adapter.extract(parsed)
            if not response.is_success:
                state.total_ms += elapsed_ms
                state.last_output = output
                raise ProviderError(
                    f"HTTP {response.status_code} {response.reason_phrase}: {output}",
                    response.status_code,
                )

            await state.record(
                index, turn, content, output, elapsed_ms, extracted=session.variables if session else None
            )

        return await state.finish()
    except Exception as exc:
        return state.failed(exc)


async def execute_conversation(ctx: ExecutionContext, test_case: TestCase) -> TestResult:
    if ctx.target_type == "prompt":
        return await execute_conversation_prompt(ctx, test_case)
    return await execute_conversation_endpoint(ctx, test_case)
