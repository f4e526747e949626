import pytest

from task_messenger.shared.utils.json_utils import parse_primitive_object, safe_json_parse


@pytest.mark.parametrize("data, default, expected", [
    ('{"key": "value"}', None, {"key": "value"}),
    ("[1, 2]", None, [1, 2]),
    ({"a": 1}, None, {"a": 1}),
    ("invalid json", {}, {}),
    ("   ", "empty", "empty"),
    (None, "none", "none"),
    (42, "other", "other"),
])
def test_safe_json_parse(data, default, expected):
    assert safe_json_parse(data, default=default) == expected


def test_parse_primitive_object_drops_nested_values():
    data = '{"first_name": "Dana", "imei": 356789012345678, "vip": false, "n": null, "tags": ["a"], "x": {"y": 1}}'
    assert parse_primitive_object(data) == {"first_name": "Dana", "imei": 356789012345678, "vip": False, "n": None}


@pytest.mark.parametrize("data", ["[1, 2]", '"just a string"', "{broken", None])
def test_parse_primitive_object_non_objects(data):
    assert parse_primitive_object(data) == {}


def test_deeply_nested_input_falls_back_to_default():
    nested = "[" * 100000
    assert safe_json_parse(nested, default={}) == {}
    assert parse_primitive_object(nested) == {}
