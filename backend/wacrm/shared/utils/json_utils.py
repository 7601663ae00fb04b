"""
JSON Utility Functions
Common utilities for parsing JSON fragments embedded in provider payloads.
"""
import json
from typing import Any, Tuple


def parse_json_object(data: Any) -> Tuple[bool, Any]:
    """
    Parse a JSON document that is expected to be an object.

    Returns (ok, value): ok is False when the input is not valid JSON or does
    not decode to a dict; value is then the original input untouched.

    Examples:
        >>> parse_json_object('{"name": "Jane"}')
        (True, {'name': 'Jane'})

        >>> parse_json_object('not json')
        (False, 'not json')

        >>> parse_json_object({'already': 'parsed'})
        (True, {'already': 'parsed'})
    """
    if isinstance(data, dict):
        return True, data

    if not isinstance(data, str) or not data.strip():
        return False, data

    try:
        parsed = json.loads(data)
    except (json.JSONDecodeError, ValueError):
        return False, data

    if not isinstance(parsed, dict):
        return False, data
    return True, parsed


def json_type_name(value: Any) -> str:
    """JSON type name of a decoded value ("string", "number", ...)."""
    # bool before int: bool is a subclass of int
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    if value is None:
        return "null"
    return type(value).__name__
