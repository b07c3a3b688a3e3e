"""Metrics record model and the builder normalizing raw request observations."""
from __future__ import annotations

import json
import math
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MetricsRecord(BaseModel):
    """Telemetry payload describing one observed request.

    Optional fields hold ``None`` when not observed and are omitted from the
    wire encoding, so a ``0`` status code or size stays distinguishable from
    a missing one.
    """

    path: str = Field(..., description="Request path without the query string.")
    query: str | None = Field(default=None, description="Query string without a leading '?'.")
    method: str = Field(..., description="HTTP method token, verbatim.")
    status_code: int | None = Field(default=None, description="Status code of the sent response.")
    request_size: int | None = Field(default=None, ge=0, description="Request body size in bytes.")
    response_size: int | None = Field(default=None, ge=0, description="Response body size in bytes.")
    user_agent: str | None = Field(default=None, description="Raw User-Agent header value.")
    time_millis: int = Field(..., ge=0, description="Elapsed milliseconds between request start and response end.")

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        """Return the wire representation with absent fields left out."""

        return self.model_dump(by_alias=True, exclude_none=True)

    def to_json(self) -> bytes:
        return json.dumps(self.to_payload(), separators=(",", ":")).encode("utf-8")


def _normalize_query(query: Any) -> str | None:
    if query is None:
        return None
    if isinstance(query, bytes):
        query = query.decode("latin-1")
    query = str(query)
    if not query:
        return None
    if query.startswith("?"):
        return query[1:]
    return query


def _coerce_status(status_code: Any) -> int | None:
    if status_code is None or isinstance(status_code, bool):
        return None
    if isinstance(status_code, int):
        return status_code
    try:
        return int(str(status_code).strip())
    except (TypeError, ValueError):
        return None


def parse_size(value: Any) -> int | None:
    """Parse a byte-size hint such as a ``Content-Length`` header value.

    Anything that is not a non-negative whole number yields ``None``; the
    result never defaults to ``0``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, bytes):
        value = value.decode("latin-1")
    if isinstance(value, int):
        size = value
    elif isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return None
        size = int(value)
    else:
        text = str(value).strip()
        if not (text.isascii() and text.isdigit()):
            return None
        size = int(text)
    return size if size >= 0 else None


def _coerce_millis(time_millis: Any) -> int:
    try:
        millis = int(time_millis)
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, millis)


def build_metrics_record(
    *,
    path: str,
    method: str,
    time_millis: int,
    query: Any = None,
    status_code: Any = None,
    request_size: Any = None,
    response_size: Any = None,
    user_agent: Any = None,
) -> MetricsRecord:
    """Validate and normalize raw request fields into a :class:`MetricsRecord`.

    Each optional field degrades to absent on its own when it is missing or
    malformed. A query string embedded in ``path`` is split off and used as
    the query when no explicit ``query`` was given.
    """

    raw_path = str(path or "")
    bare_path, separator, embedded_query = raw_path.partition("?")
    if query is None and separator:
        query = embedded_query

    return MetricsRecord(
        path=bare_path or "/",
        query=_normalize_query(query),
        method=str(method),
        status_code=_coerce_status(status_code),
        request_size=parse_size(request_size),
        response_size=parse_size(response_size),
        user_agent=str(user_agent) if user_agent else None,
        time_millis=_coerce_millis(time_millis),
    )
