"""Tests for the declarative validation rules."""

from suitekit.scoring.rules import find_json, strip_code_fence, validate
from suitekit.types import ValidationRule


def _rule(type_: str, value="", **kwargs) -> ValidationRule:
    return ValidationRule(type=type_, value=value, **kwargs)


def test_empty_rule_list_passes():
    result = validate("anything", [])
    assert result.passed
    assert result.errors == []


def test_contains_and_excludes_are_case_sensitive():
    result = validate("Hello World", [_rule("contains", "hello"), _rule("excludes", "World")])
    assert not result.passed
    assert result.errors == ['Must contain: "hello"', 'Must not contain: "World"']


def test_length_bounds_are_inclusive():
    output = "x" * 10
    result = validate(output, [_rule("minLength", 10), _rule("maxLength", 10)])
    assert result.passed


def test_length_violations():
    result = validate("abc", [_rule("minLength", 5)])
    assert result.errors == ["Output too short: minimum 5 characters required"]
    result = validate("abcdef", [_rule("maxLength", 3)])
    assert result.errors == ["Output too long: maximum 3 characters allowed"]


def test_regex_uses_search_semantics():
    assert validate("order #1234 shipped", [_rule("regex", r"#\d{4}")]).passed


def test_regex_mismatch_mentions_pattern():
    result = validate("no digits", [_rule("regex", r"\d+")])
    assert not result.passed
    assert "pattern" in result.errors[0]


def test_invalid_regex_is_reported_not_raised():
    result = validate("text", [_rule("regex", "([unclosed")])
    assert not result.passed
    assert result.errors[0].startswith("Validation rule error (regex):")


def test_non_numeric_length_is_reported():
    result = validate("text", [_rule("minLength", "lots")])
    assert not result.passed
    assert "Validation rule error (minLength)" in result.errors[0]


def test_max_response_time_skipped_without_latency():
    assert validate("ok", [_rule("maxResponseTime", 1000)]).passed
    for limit in ("", "fast", 0):
        assert validate("ok", [_rule("maxResponseTime", limit)]).passed, limit


def test_max_response_time_non_numeric_limit_is_a_rule_error():
    result = validate("ok", [_rule("maxResponseTime", "fast")], response_time_ms=10)
    assert not result.passed
    assert result.errors[0].startswith("Validation rule error (maxResponseTime)")


def test_max_response_time_message_contains_both_values():
    result = validate("ok", [_rule("maxResponseTime", 1000)], response_time_ms=2000)
    assert not result.passed
    assert "2000ms" in result.errors[0]
    assert "1000ms" in result.errors[0]


def test_max_response_time_at_limit_passes():
    assert validate("ok", [_rule("maxResponseTime", 1000)], response_time_ms=1000).passed


def test_is_json_accepts_any_value():
    for output in ('{"a": 1}', "[1, 2]", '"str"', "42", "true", "null"):
        assert validate(output, [_rule("isJson")]).passed, output


def test_is_json_fenced_and_unfenced_behave_the_same():
    raw = '{"answer": 42}'
    for output in (raw, f"```json\n{raw}\n```", f"```\n{raw}\n```"):
        assert validate(output, [_rule("isJson")]).passed, output

    for literal in ("true", "42", "null", '"str"', "[1]"):
        for output in (literal, f"```{literal}```", f"```json\n{literal}\n```"):
            assert validate(output, [_rule("isJson")]).passed, output

    bad = "{answer: 42}"
    for output in (bad, f"```json\n{bad}\n```"):
        result = validate(output, [_rule("isJson")])
        assert result.errors == ["Output is not valid JSON"]


def test_contains_json_finds_embedded_object():
    output = 'Sure! Here is the data: {"name": "Ada", "tags": ["x"]} hope that helps'
    assert validate(output, [_rule("containsJson")]).passed


def test_contains_json_prefers_fenced_block():
    output = 'Result {not json}\n```json\n[1, 2, 3]\n```\n'
    assert find_json(output) == [1, 2, 3]


def test_contains_json_failure_message():
    result = validate("just prose, no braces", [_rule("containsJson")])
    assert not result.passed
    assert "does not contain valid JSON" in result.errors[0]


def test_contains_json_ignores_bare_scalars():
    assert find_json("the answer is 42") is None


def test_strip_code_fence_leaves_plain_text_alone():
    assert strip_code_fence("plain") == "plain"
    assert strip_code_fence("```python\nprint(1)\n```") == "print(1)"


def test_custom_message_replaces_default():
    result = validate("abc", [_rule("contains", "xyz", message="needs xyz")])
    assert result.errors == ["needs xyz"]


def test_all_rules_evaluated_in_order():
    rules = [_rule("contains", "a"), _rule("contains", "b"), _rule("minLength", 100)]
    result = validate("zzz", rules)
    assert len(result.errors) == 3
    assert result.errors[0] == 'Must contain: "a"'
    assert result.errors[2].startswith("Output too short")


def test_warning_severity_still_reports_failure():
    result = validate("abc", [_rule("contains", "xyz", severity="warning")])
    assert not result.passed
    assert result.errors == ['Must contain: "xyz"']
