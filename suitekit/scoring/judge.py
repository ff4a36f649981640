"""LLM-as-judge scoring and rule checks, run through the regular adapter path."""

from __future__ import annotations

import json
import re
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from suitekit.adapters.registry import get_adapter
from suitekit.logging import get_logger
from suitekit.rounding import round_half_up
from suitekit.types import (
    CompletionRequest,
    Credentials,
    JudgeConfig,
    JudgeValidationRule,
    Message,
)

logger = get_logger(__name__)

DEFAULT_JUDGE_PROVIDER = "openai"
DEFAULT_JUDGE_MODEL = "gpt-4o-mini"
DEFAULT_MIN_SCORE = 0.7
SCORING_TEMPERATURE = 0.3
VALIDATION_TEMPERATURE = 0.1
JUDGE_MAX_TOKENS = 1024

SCORING_PROMPT = """You are an AI quality evaluator. Your task is to evaluate an AI response based on specific criteria.

**Input given to the AI:**
{input}

**Expected behavior/output:**
{expected}

**Actual response:**
{output}

**Evaluation criteria:**
{criteria}

For each criterion, provide a score from 0 to 10 and brief reasoning.
You MUST respond with ONLY valid JSON in exactly this format (no other text):
{{
  "scores": {{
    "criterion_name": {{ "score": 8, "reason": "Brief explanation" }}
  }},
  "overall_reasoning": "Summary of the evaluation"
}}"""

VALIDATION_PROMPT = """You are an AI compliance validator. Your task is to check if an AI response satisfies specific requirements.

**Input given to the AI:**
{input}

**Actual response:**
{output}

**Validation rules to check:**
{rules}

For each rule, determine if the response PASSES or FAILS the requirement.
You MUST respond with ONLY valid JSON in exactly this format (no other text):
{{
  "results": {{
    "rule_name": {{ "passed": true, "reason": "Brief explanation" }}
  }}
}}"""


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class JudgeScore(BaseModel):
    score: float = 0.0
    scores: dict[str, float] = Field(default_factory=dict)
    reasoning: str = ""


class JudgeValidation(BaseModel):
    passed: bool = True
    results: dict[str, bool] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def summarize_inputs(inputs: dict[str, str]) -> str:
    return "\n".join(f"{key}: {value}" for key, value in inputs.items())


def parse_judge_json(text: str) -> dict[str, Any]:
    """Extract the first balanced JSON object, tolerating markdown fences.

    Raises ValueError when no object can be decoded.
    """
    cleaned = re.sub(r"```(?:json)?", "", text).strip()
    start = cleaned.find("{")
    if start < 0:
        raise ValueError("No JSON found in judge response")
    depth = 0
    end = -1
    in_string = False
    escaped = False
    for i in range(start, len(cleaned)):
        ch = cleaned[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                end = i
                break
    if end <= start:
        raise ValueError("Unbalanced JSON in judge response")
    parsed = json.loads(cleaned[start : end + 1])
    if not isinstance(parsed, dict):
        raise ValueError("Judge response is not a JSON object")
    return parsed


def weighted_score(config: JudgeConfig, scores: dict[str, float]) -> float:
    """Weighted mean of the 0-10 criterion scores, normalised to 0..1."""
    total = 0.0
    total_weight = 0.0
    for criterion in config.criteria:
        if criterion.name in scores:
            total += (scores[criterion.name] / 10) * criterion.weight
            total_weight += criterion.weight
    if total_weight > 0 and total_weight != 1:
        total = total / total_weight
    return round_half_up(total, 2)


def min_score_error(score: float, min_score: Optional[float]) -> Optional[str]:
    threshold = DEFAULT_MIN_SCORE if min_score is None else min_score
    if threshold <= 0 or score >= threshold:
        return None
    actual_pct = int(round_half_up(score * 100))
    threshold_pct = int(round_half_up(threshold * 100))
    return f"Judge score {actual_pct}% is below minimum threshold of {threshold_pct}%"


async def _ask(
    config: JudgeConfig,
    prompt: str,
    temperature: float,
    credentials: Credentials,
    client: Optional[httpx.AsyncClient],
) -> str:
    provider = config.provider or DEFAULT_JUDGE_PROVIDER
    api_key = credentials.require(provider, "LLM judge")
    adapter = get_adapter(provider, client=client)
    request = CompletionRequest(
        model=config.model or DEFAULT_JUDGE_MODEL,
        messages=[Message(role="user", content=prompt)],
        temperature=temperature,
        max_tokens=JUDGE_MAX_TOKENS,
    )
    result = await adapter.complete(request, api_key)
    return result.content


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def judge_output(
    input_summary: str,
    expected_output: Optional[str],
    output: str,
    config: JudgeConfig,
    credentials: Credentials,
    client: Optional[httpx.AsyncClient] = None,
) -> JudgeScore:
    """Score ``output`` against the configured criteria with one provider call."""
    if not config.enabled or not config.criteria:
        return JudgeScore()

    criteria_text = "\n".join(
        f"{i}. {c.name} (weight: {c.weight:g}): {c.description}"
        for i, c in enumerate(config.criteria, start=1)
    )
    prompt = SCORING_PROMPT.format(
        input=input_summary,
        expected=expected_output or "Not specified",
        output=output,
        criteria=criteria_text,
    )
    text = await _ask(config, prompt, SCORING_TEMPERATURE, credentials, client)

    try:
        parsed = parse_judge_json(text)
    except ValueError as exc:
        logger.warning(f"Failed to parse judge response: {exc}")
        return JudgeScore(reasoning=f"Failed to parse judge response: {exc}")

    raw_scores = parsed.get("scores")
    if not isinstance(raw_scores, dict):
        raw_scores = {}
    scores: dict[str, float] = {}
    for criterion in config.criteria:
        entry = raw_scores.get(criterion.name)
        value = entry.get("score") if isinstance(entry, dict) else None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            scores[criterion.name] = value

    reasoning = parsed.get("overall_reasoning")
    return JudgeScore(
        score=weighted_score(config, scores),
        scores=scores,
        reasoning=reasoning if isinstance(reasoning, str) else "",
    )


async def validate_with_judge(
    input_summary: str,
    output: str,
    rules: list[JudgeValidationRule],
    config: JudgeConfig,
    credentials: Credentials,
    client: Optional[httpx.AsyncClient] = None,
) -> JudgeValidation:
    """Ask the judge for a pass/fail verdict per rule.

    ``fail`` rules that do not pass go to ``errors`` and fail the check;
    ``warning`` rules only add to ``warnings``.
    """
    if not rules:
        return JudgeValidation()

    rules_text = "\n".join(
        f"{i}. {rule.name}: {rule.description}" for i, rule in enumerate(rules, start=1)
    )
    prompt = VALIDATION_PROMPT.format(input=input_summary, output=output, rules=rules_text)
    text = await _ask(config, prompt, VALIDATION_TEMPERATURE, credentials, client)

    try:
        parsed = parse_judge_json(text)
    except ValueError as exc:
        logger.warning(f"Failed to parse judge validation response: {exc}")
        return JudgeValidation(passed=False, errors=[f"Failed to validate: {exc}"])

    raw_results = parsed.get("results")
    if not isinstance(raw_results, dict):
        raw_results = {}

    verdict = JudgeValidation()
    for rule in rules:
        entry = raw_results.get(rule.name)
        entry = entry if isinstance(entry, dict) else {}
        passed = entry.get("passed") is True
        verdict.results[rule.name] = passed
        if passed:
            continue

        message = rule.failure_message or f"Failed: {rule.name}"
        if entry.get("reason"):
            message += f" ({entry['reason']})"
        if rule.severity == "warning":
            verdict.warnings.append(message)
        else:
            verdict.errors.append(message)
            verdict.passed = False
    return verdict
