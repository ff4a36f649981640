"""Tests for variable substitution and path lookup."""

import json

from suitekit.templating import get_value_by_path, replace_variables, set_value_by_path


def test_replaces_all_occurrences_with_whitespace_tolerance():
    template = "{{name}} met {{ name }} and {{   other   }}"
    assert replace_variables(template, {"name": "Ada", "other": "Bob"}) == "Ada met Ada and Bob"


def test_unknown_placeholders_are_kept():
    assert replace_variables("{{found}} and {{missing}}", {"found": "yes"}) == "yes and {{missing}}"


def test_empty_template():
    assert replace_variables("", {"a": "b"}) == ""
    assert replace_variables(None, {"a": "b"}) == ""


def test_special_characters_in_values_are_literal():
    assert replace_variables("Price: {{p}}", {"p": "$100 \\1"}) == "Price: $100 \\1"
    assert replace_variables("{{p}}", {"p": ".*[a-z]+$"}) == ".*[a-z]+$"


def test_json_escaping_produces_valid_json():
    template = '{"data": "{{value}}"}'
    value = 'line1\nwith "quotes" and \\backslash\ttab'
    rendered = replace_variables(template, {"value": value}, escape_for_json=True)
    assert json.loads(rendered)["data"] == value


def test_no_escaping_by_default():
    assert replace_variables("Message: {{c}}", {"c": "a\nb"}) == "Message: a\nb"


def test_url_encoding():
    assert replace_variables("https://x.test/q?s={{q}}", {"q": "a b/c"}, url_encode=True) == (
        "https://x.test/q?s=a%20b%2Fc"
    )


def test_get_value_by_path():
    response = {
        "choices": [{"message": {"content": "hi"}, "finish_reason": "stop"}],
        "data": {"items": ["a", "b"], "nested": {"value": 1}, "none": None},
        "num": 42,
    }
    assert get_value_by_path(response, "choices[0].message.content") == "hi"
    assert get_value_by_path(response, "data.items[1]") == "b"
    assert get_value_by_path(response, "data.nested") == {"value": 1}
    assert get_value_by_path(response, "num") == 42
    assert get_value_by_path(response, "") is response


def test_get_value_by_path_missing_hops():
    obj = {"items": ["a"], "text": "not a list", "data": None}
    assert get_value_by_path(obj, "items[5]") is None
    assert get_value_by_path(obj, "text[0]") is None
    assert get_value_by_path(obj, "data.field") is None
    assert get_value_by_path(obj, "missing.deeper") is None


def test_set_value_by_path_creates_missing_hops():
    data = {"auth": {"scheme": "x"}}
    set_value_by_path(data, "auth.token", "t")
    set_value_by_path(data, "meta.trace.id", 7)
    set_value_by_path(data, "items[2].id", "c")
    set_value_by_path(data, "tags[0]", "first")

    assert data == {
        "auth": {"scheme": "x", "token": "t"},
        "meta": {"trace": {"id": 7}},
        "items": [None, None, {"id": "c"}],
        "tags": ["first"],
    }
    assert get_value_by_path(data, "items[2].id") == "c"
