"""Tests for metrics record normalization and encoding."""
from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from apilytics.record import build_metrics_record, parse_size


def _build(**overrides):
    fields = {"path": "/foo/bar/123", "method": "GET", "time_millis": 42}
    fields.update(overrides)
    return build_metrics_record(**fields)


def test_minimal_request_omits_unobserved_fields() -> None:
    record = _build(status_code=200)

    assert record.to_payload() == {
        "path": "/foo/bar/123",
        "method": "GET",
        "statusCode": 200,
        "timeMillis": 42,
    }


def test_full_record_uses_camel_case_wire_names() -> None:
    record = _build(
        method="POST",
        query="key=val&other=123",
        status_code=201,
        request_size="17",
        response_size=5,
        user_agent="curl/8.4.0",
    )

    assert record.to_payload() == {
        "path": "/foo/bar/123",
        "query": "key=val&other=123",
        "method": "POST",
        "statusCode": 201,
        "requestSize": 17,
        "responseSize": 5,
        "userAgent": "curl/8.4.0",
        "timeMillis": 42,
    }


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("?a=1", "a=1"), ("a=1", "a=1"), (b"a=1&b=2", "a=1&b=2"), ("?", "")],
)
def test_query_leading_question_mark_is_stripped(raw, expected) -> None:
    assert _build(query=raw).to_payload()["query"] == expected


@pytest.mark.parametrize("raw", [None, "", b""])
def test_empty_query_is_omitted(raw) -> None:
    assert "query" not in _build(query=raw).to_payload()


def test_query_embedded_in_path_is_split_off() -> None:
    record = _build(path="/search?q=shoes&page=2")

    assert record.path == "/search"
    assert record.query == "q=shoes&page=2"


def test_explicit_query_wins_over_path_query() -> None:
    record = _build(path="/search?ignored=1", query="q=1")

    assert record.path == "/search"
    assert record.query == "q=1"


def test_zero_status_code_is_preserved() -> None:
    assert _build(status_code=0).to_payload()["statusCode"] == 0


@pytest.mark.parametrize("raw", [None, "teapot", True])
def test_missing_or_malformed_status_code_is_omitted(raw) -> None:
    assert "statusCode" not in _build(status_code=raw).to_payload()


def test_status_code_string_is_coerced() -> None:
    assert _build(status_code="404").status_code == 404


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(0, 0), ("0", 0), (" 128 ", 128), (b"64", 64), (1024, 1024), (2.0, 2)],
)
def test_parse_size_accepts_non_negative_whole_numbers(raw, expected) -> None:
    assert parse_size(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "abc", "-1", -5, 1.5, float("nan"), True, "1e3", "²"])
def test_parse_size_rejects_everything_else(raw) -> None:
    assert parse_size(raw) is None


def test_zero_sizes_stay_present_and_bad_sizes_are_omitted() -> None:
    payload = _build(request_size=0, response_size="not-a-number").to_payload()

    assert payload["requestSize"] == 0
    assert "responseSize" not in payload


def test_empty_user_agent_is_omitted() -> None:
    assert "userAgent" not in _build(user_agent="").to_payload()


def test_negative_elapsed_time_is_clamped() -> None:
    assert _build(time_millis=-3).time_millis == 0


def test_json_encoding_never_contains_null() -> None:
    body = _build().to_json()

    assert b"null" not in body
    assert json.loads(body) == {"path": "/foo/bar/123", "method": "GET", "timeMillis": 42}


def test_record_is_immutable() -> None:
    record = _build()

    with pytest.raises(ValidationError):
        record.path = "/other"  # type: ignore[misc]
