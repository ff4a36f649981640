"""``{{ variable }}`` substitution and dotted-path lookup."""

from __future__ import annotations

import json
import re
from typing import Any, Mapping
from urllib.parse import quote

_INDEX_RE = re.compile(r"^(\w+)\[(\d+)\]$")


def _escape_json_string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)[1:-1]


def replace_variables(
    template: str | None,
    variables: Mapping[str, Any],
    escape_for_json: bool = False,
    url_encode: bool = False,
) -> str:
    """Replace each ``{{ key }}`` with its value. Unknown placeholders are kept."""
    if not template:
        return ""
    result = template
    for key, value in variables.items():
        text = "" if value is None else str(value)
        if escape_for_json:
            text = _escape_json_string(text)
        elif url_encode:
            text = quote(text, safe="")
        pattern = re.compile(r"\{\{\s*" + re.escape(key) + r"\s*\}\}")
        # callable replacement keeps backslashes in values literal
        result = pattern.sub(lambda _m, text=text: text, result)
    return result


def get_value_by_path(obj: Any, path: str) -> Any:
    """Walk ``data.items[0].name`` style paths. Returns None when any hop is missing."""
    if not path:
        return obj

    current = obj
    for part in path.split("."):
        if not isinstance(current, (dict, list)):
            return None
        match = _INDEX_RE.match(part)
        if match:
            key, index = match.group(1), int(match.group(2))
            current = current.get(key) if isinstance(current, dict) else None
            if not isinstance(current, list) or index >= len(current):
                return None
            current = current[index]
        elif isinstance(current, dict):
            current = current.get(part)
        else:
            return None
    return current


def _child(container: dict, key: str, index: int | None) -> Any:
    if index is None:
        if not isinstance(container.get(key), dict):
            container[key] = {}
        return container[key]
    items = container.get(key)
    if not isinstance(items, list):
        items = container[key] = []
    while len(items) <= index:
        items.append(None)
    if not isinstance(items[index], dict):
        items[index] = {}
    return items[index]


def set_value_by_path(obj: dict, path: str, value: Any) -> None:
    """Assign ``value`` at ``auth.token`` / ``items[0].id`` style paths, creating hops."""
    parts = path.split(".")
    current = obj
    for part in parts[:-1]:
        match = _INDEX_RE.match(part)
        if match:
            current = _child(current, match.group(1), int(match.group(2)))
        else:
            current = _child(current, part, None)

    last = parts[-1]
    match = _INDEX_RE.match(last)
    if not match:
        current[last] = value
        return
    key, index = match.group(1), int(match.group(2))
    items = current.get(key)
    if not isinstance(items, list):
        items = current[key] = []
    while len(items) <= index:
        items.append(None)
    items[index] = value
