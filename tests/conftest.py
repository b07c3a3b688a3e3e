"""Shared pytest configuration for the apilytics test suite."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Tuple

import pytest

from apilytics.config import get_settings
from apilytics.record import MetricsRecord


@dataclass
class RecordingSender:
    """Sender double capturing records instead of delivering them."""

    production: bool = False
    sent: List[Tuple[MetricsRecord, str, str]] = field(default_factory=list)

    def send(self, record: MetricsRecord, api_key: str, integration_tag: str) -> None:
        self.sent.append((record, api_key, integration_tag))

    @property
    def payloads(self) -> list[dict]:
        return [record.to_payload() for record, _, _ in self.sent]


class FixedTimer:
    """Timer handle double returning a preset elapsed time."""

    def __init__(self, millis: int) -> None:
        self.millis = millis
        self.stops = 0

    def stop(self) -> int:
        self.stops += 1
        return self.millis


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep host environment variables and cached settings out of the tests."""

    for name in ("APILYTICS_API_KEY", "APILYTICS_ENVIRONMENT", "ENVIRONMENT", "APILYTICS_TIMEOUT_SECONDS"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    try:
        yield
    finally:
        get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def recording_sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def fixed_timer(monkeypatch: pytest.MonkeyPatch) -> FixedTimer:
    """Make every observation report 42 elapsed milliseconds."""

    timer = FixedTimer(42)
    monkeypatch.setattr("apilytics.observer.start", lambda: timer)
    return timer
