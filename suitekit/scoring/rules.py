"""Declarative validation rules evaluated against a single output."""

from __future__ import annotations

import json
import re
from typing import Any, Optional

from pydantic import BaseModel, Field

from suitekit.scoring.schema import validate_json_schema
from suitekit.types import ValidationRule

# A language tag only counts as one when a newline follows it.
_FENCE_ONLY = re.compile(r"^\s*```(?:[\w+-]+[ \t]*\n|\n?)(.*?)\n?[ \t]*```\s*$", re.DOTALL)
_FENCE_ANY = re.compile(r"```(?:[\w+-]+[ \t]*\n|\n?)(.*?)```", re.DOTALL)


class ValidationResult(BaseModel):
    passed: bool = True
    errors: list[str] = Field(default_factory=list)


def strip_code_fence(text: str) -> str:
    match = _FENCE_ONLY.match(text)
    return match.group(1) if match else text


def _parses(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


def find_json(text: str) -> Optional[Any]:
    """Locate an embedded JSON object or array, preferring a fenced block."""
    for match in _FENCE_ANY.finditer(text):
        candidate = match.group(1).strip()
        try:
            value = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(value, (dict, list)):
            return value

    decoder = json.JSONDecoder()
    for i, ch in enumerate(text):
        if ch not in "{[":
            continue
        try:
            value, _ = decoder.raw_decode(text, i)
        except ValueError:
            continue
        if isinstance(value, (dict, list)):
            return value
    return None


def _number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got {value!r}")
    return float(value)


def _check(rule: ValidationRule, output: str, response_time_ms: Optional[int]) -> Optional[str]:
    """Return the default failure message for ``rule`` or None when it holds."""
    kind = rule.type
    value = rule.value

    if kind == "contains":
        if str(value) not in output:
            return f'Must contain: "{value}"'
    elif kind == "excludes":
        if str(value) in output:
            return f'Must not contain: "{value}"'
    elif kind == "minLength":
        if len(output) < _number(value):
            return f"Output too short: minimum {value} characters required"
    elif kind == "maxLength":
        if len(output) > _number(value):
            return f"Output too long: maximum {value} characters allowed"
    elif kind == "regex":
        if not re.search(str(value), output):
            return f"Must match pattern: {value}"
    elif kind == "jsonSchema":
        return validate_json_schema(output, str(value))
    elif kind == "maxResponseTime":
        if response_time_ms is None:
            return None
        if response_time_ms > _number(value):
            return f"Response too slow: {response_time_ms}ms exceeds maximum {value}ms"
    elif kind == "isJson":
        if not _parses(strip_code_fence(output)):
            return "Output is not valid JSON"
    elif kind == "containsJson":
        if find_json(output) is None:
            return "Output does not contain valid JSON"
    else:
        raise ValueError(f"unknown rule type {kind!r}")
    return None


def validate(
    output: str,
    rules: list[ValidationRule],
    response_time_ms: Optional[int] = None,
) -> ValidationResult:
    """Evaluate every rule against ``output``; no short-circuit.

    A rule that cannot be evaluated (bad regex, non-numeric bound, ...) is
    reported as a failure rather than raised. ``severity`` is carried for
    callers and does not affect ``passed``.
    """
    errors: list[str] = []
    for rule in rules:
        try:
            failure = _check(rule, output, response_time_ms)
        except (re.error, TypeError, ValueError) as exc:
            errors.append(f"Validation rule error ({rule.type}): {exc}")
            continue
        if failure:
            errors.append(rule.message or failure)
    return ValidationResult(passed=not errors, errors=errors)
