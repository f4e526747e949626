"""
JSON Utility Functions
Lenient parsing for free-form JSON blobs stored on CRM records.
"""
import json
from typing import Any, Dict, Union

Primitive = Union[str, int, float, bool, None]


def safe_json_parse(data: Any, default: Any = None) -> Any:
    """
    Safely parse JSON data, handling strings and already-parsed objects.

    Examples:
        >>> safe_json_parse('{"key": "value"}')
        {'key': 'value'}

        >>> safe_json_parse('invalid json', default={})
        {}
    """
    if data is None:
        return default

    if isinstance(data, (dict, list)):
        return data

    if isinstance(data, str):
        if not data.strip():
            return default
        try:
            return json.loads(data)
        except (json.JSONDecodeError, ValueError, RecursionError):
            return default

    return default


def parse_primitive_object(data: Any) -> Dict[str, Primitive]:
    """
    Parse a JSON object and keep only its primitive-valued entries.

    Arrays, nested objects and malformed input all yield an empty or
    filtered dict; this never raises.
    """
    parsed = safe_json_parse(data, default={})
    if not isinstance(parsed, dict):
        return {}

    return {
        str(key): value
        for key, value in parsed.items()
        if value is None or isinstance(value, (str, int, float, bool))
    }
