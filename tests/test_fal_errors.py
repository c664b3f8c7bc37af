import json

import pytest

from pix.fal_errors import (
    TRUNCATE_AT,
    extract_fal_message,
    extract_fastapi_detail,
    format_fal_error_body,
)


def test_empty_body():
    assert format_fal_error_body(b"") == "(empty response body)"


def test_gateway_envelope_full():
    body = json.dumps(
        {"error": {"type": "validation_error", "message": "bad input", "request_id": "req-1"}}
    ).encode()
    assert format_fal_error_body(body) == "validation_error: bad input (request_id: req-1)"


def test_gateway_envelope_message_only():
    body = json.dumps({"error": {"message": "bad input"}}).encode()
    assert format_fal_error_body(body) == "bad input"


def test_gateway_without_message_falls_to_top_level_message():
    body = json.dumps({"error": {"type": "x"}, "message": "top level"}).encode()
    assert format_fal_error_body(body) == "top level"


def test_top_level_message():
    assert extract_fal_message({"message": "Unauthorized"}) == "Unauthorized"


def test_detail_string():
    body = json.dumps({"detail": "Forbidden"}).encode()
    assert format_fal_error_body(body) == "Forbidden"


def test_detail_list_with_loc():
    body = json.dumps(
        {
            "detail": [
                {
                    "type": "missing",
                    "loc": ["body", "image_url"],
                    "msg": "Field required",
                    "input": {"prompt": "a cat"},
                }
            ]
        }
    ).encode()
    assert format_fal_error_body(body) == "Field required: body.image_url"


def test_detail_list_skips_non_string_loc_parts():
    result = extract_fastapi_detail([{"msg": "bad", "loc": ["body", 0, "size"]}])
    assert result.startswith("bad: ")
    assert "0" not in result
    assert result.endswith("body.size")


def test_detail_list_joins_multiple_and_uses_message_fallback():
    result = extract_fastapi_detail(
        [{"msg": "first"}, "junk", {"message": "second"}, {"type": "nomsg"}]
    )
    assert result.split("; ") == ["first", "second"]


def test_detail_list_only_numeric_loc_keeps_message():
    assert extract_fastapi_detail([{"msg": "oops", "loc": [1, 2]}]) == "oops"


@pytest.mark.parametrize("detail", [None, 3, {"msg": "x"}, [], [{"loc": ["a"]}]])
def test_detail_unknown_shapes(detail):
    assert extract_fastapi_detail(detail) == ""


def test_unknown_object_returns_raw():
    body = b'{"foo": 1}'
    assert format_fal_error_body(body) == body.decode()


def test_non_json_returns_raw():
    body = b"<html>502 Bad Gateway</html>"
    assert format_fal_error_body(body) == body.decode()


def test_json_array_returns_raw():
    body = b'["not", "an", "object"]'
    assert format_fal_error_body(body) == body.decode()


def test_long_unknown_body_is_truncated():
    body = b"x" * (TRUNCATE_AT + 100)
    result = format_fal_error_body(body)
    assert result == "x" * TRUNCATE_AT + "... (truncated)"


def test_body_at_limit_not_truncated():
    body = b"y" * TRUNCATE_AT
    assert format_fal_error_body(body) == body.decode()


def test_long_json_with_message_not_truncated():
    body = json.dumps({"message": "m" * 1000}).encode()
    assert format_fal_error_body(body) == "m" * 1000