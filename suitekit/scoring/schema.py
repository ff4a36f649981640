"""JSON Schema check behind the ``jsonSchema`` rule."""

from __future__ import annotations

import json
from typing import Any, Optional

from jsonschema.exceptions import SchemaError, ValidationError, best_match
from jsonschema.validators import validator_for

INVALID_JSON = "Output is not valid JSON"
INVALID_SCHEMA = "Invalid JSON schema definition"


def error_path(error: ValidationError) -> str:
    """``tags[1]`` style location of a validation error; empty at the root."""
    path = ""
    for part in error.absolute_path:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def check_schema(value: Any, schema: Any) -> Optional[str]:
    """Return the most relevant violation of ``schema`` by ``value``, or None.

    Raises ``SchemaError`` when the schema itself is invalid.
    """
    cls = validator_for(schema)
    cls.check_schema(schema)
    error = best_match(cls(schema).iter_errors(value))
    if error is None:
        return None
    path = error_path(error)
    return f"{path}: {error.message}" if path else error.message


def validate_json_schema(output: str, schema_text: str) -> Optional[str]:
    try:
        parsed = json.loads(output)
    except ValueError:
        return INVALID_JSON

    try:
        schema = json.loads(schema_text)
    except (TypeError, ValueError):
        return INVALID_SCHEMA
    if not isinstance(schema, (dict, bool)):
        return INVALID_SCHEMA

    try:
        return check_schema(parsed, schema)
    except SchemaError:
        return INVALID_SCHEMA
