"""Execution context and the steps shared by single-shot and conversation cases."""

from __future__ import annotations

from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from suitekit.scoring.judge import judge_output, min_score_error, validate_with_judge
from suitekit.types import (
    CompletionRequest,
    Credentials,
    JudgeConfig,
    Message,
    ModelOverride,
    PromptTarget,
    PromptVersion,
    Target,
    TargetType,
    TestCase,
    TestResult,
    ValidationRule,
)

DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4o-mini"


class ExecutionContext(BaseModel):
    """Everything a single test case needs besides the case itself."""

    model_config = ConfigDict(arbitrary_types_allowed=True, protected_namespaces=())

    target_type: TargetType
    target: Target
    target_version: Optional[int] = None
    validation_rules: list[ValidationRule] = Field(default_factory=list)
    judge_config: JudgeConfig = Field(default_factory=JudgeConfig)
    credentials: Credentials = Field(default_factory=Credentials)
    model_override: Optional[ModelOverride] = None
    # Shared transport for every adapter call; tests inject a MockTransport here.
    http_client: Optional[httpx.AsyncClient] = None


def resolve_provider_model(
    target: PromptTarget,
    target_version: Optional[int],
    override: Optional[ModelOverride],
) -> tuple[str, str]:
    """Effective (provider, model): override > version config > defaults."""
    version = target.resolve_version(target_version)
    config = version.llm_config if version else None
    provider = (override.provider if override else None) or (config.provider if config else None)
    model = (override.model if override else None) or (config.model if config else None)
    return provider or DEFAULT_PROVIDER, model or DEFAULT_MODEL


def resolve_prompt_version(ctx: ExecutionContext) -> PromptVersion:
    target = ctx.target
    if not isinstance(target, PromptTarget):
        raise TypeError("prompt execution needs a PromptTarget")
    version = target.resolve_version(ctx.target_version)
    if version is None:
        raise LookupError("No prompt version found")
    return version


def build_completion_request(version: PromptVersion, model: str, messages: list[Message]) -> CompletionRequest:
    cfg = version.llm_config
    return CompletionRequest(
        model=model,
        messages=messages,
        temperature=cfg.temperature,
        max_tokens=cfg.max_tokens,
        top_p=cfg.top_p,
        frequency_penalty=cfg.frequency_penalty,
        presence_penalty=cfg.presence_penalty,
    )


def describe(exc: BaseException) -> str:
    message = str(exc) or type(exc).__name__
    cause = exc.__cause__
    if cause is not None and str(cause) and str(cause) not in message:
        message += f" ({cause})"
    return message


async def apply_judge(ctx: ExecutionContext, test_case: TestCase, result: TestResult, summary: str) -> None:
    """Score ``result.output`` and run judge rules, failing the result on a miss."""
    judge = ctx.judge_config
    if not judge.enabled:
        return

    if judge.criteria:
        scored = await judge_output(
            summary,
            test_case.expected_output,
            result.output,
            judge,
            ctx.credentials,
            client=ctx.http_client,
        )
        result.judge_score = scored.score
        result.judge_scores = scored.scores
        result.judge_reasoning = scored.reasoning

        below = min_score_error(scored.score, judge.min_score)
        if below:
            result.validation_passed = False
            result.validation_errors.append(below)

    judge_rules = [*judge.validation_rules, *test_case.judge_validation_rules]
    if judge_rules:
        verdict = await validate_with_judge(
            summary,
            result.output,
            judge_rules,
            judge,
            ctx.credentials,
            client=ctx.http_client,
        )
        result.judge_validation_passed = verdict.passed
        result.judge_validation_results = verdict.results
        result.judge_validation_errors = verdict.errors
        result.judge_validation_warnings = verdict.warnings
        if not verdict.passed:
            result.validation_passed = False
            result.validation_errors.extend(verdict.errors)
