"""Framework-neutral request observation shared by the bundled middlewares."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from apilytics.config import ApilyticsSettings, get_settings
from apilytics.logging import configure_diagnostics
from apilytics.metrics import record_report_outcome
from apilytics.record import build_metrics_record
from apilytics.sender import DEFAULT_INTEGRATION, ApilyticsSender, build_integration_tag
from apilytics.timer import TimerHandle, start

logger = logging.getLogger(__name__)


class ObservationState(str, Enum):
    """Lifecycle of a single observed request."""

    IDLE = "idle"
    OBSERVING = "observing"
    REPORTED = "reported"
    SKIPPED = "skipped"


@dataclass(slots=True)
class RequestInfo:
    """Request fields a middleware extracts from its framework's request object.

    Values are raw: sizes may be header strings and the query may carry a
    leading ``?``. Normalization happens when the record is built.
    """

    method: str
    path: str
    query: Any = None
    content_length: Any = None
    user_agent: Any = None


@dataclass(slots=True)
class ResponseInfo:
    """Response fields observed by the middleware, if any were produced."""

    status_code: Any = None
    content_length: Any = None


class RequestObserver:
    """Times one request and reports it at most once."""

    __slots__ = ("_client", "_timer", "state")

    def __init__(self, client: "Apilytics") -> None:
        self._client = client
        self._timer: TimerHandle | None = None
        self.state = ObservationState.IDLE

    def begin(self) -> None:
        if self.state is not ObservationState.IDLE:
            return
        if not self._client.enabled:
            self.state = ObservationState.SKIPPED
            return
        self._timer = start()
        self.state = ObservationState.OBSERVING

    def finish(self, request: RequestInfo, response: ResponseInfo | None = None) -> bool:
        """Stop the timer and report the request.

        Returns ``True`` only for the call that actually reported; later calls,
        and calls on a skipped observation, do nothing.
        """

        if self.state is not ObservationState.OBSERVING or self._timer is None:
            return False
        self.state = ObservationState.REPORTED
        self._client.report(request, response or ResponseInfo(), self._timer.stop())
        return True


class Apilytics:
    """Process-wide reporting client holding the immutable startup configuration.

    Without an API key the client is disabled and every observation is
    skipped without timing or network traffic.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        settings: ApilyticsSettings | None = None,
        integration: str = DEFAULT_INTEGRATION,
        integrated_library: str | None = None,
        sender: ApilyticsSender | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.api_key = api_key if api_key is not None else self.settings.api_key
        self.integration = integration
        self.integrated_library = integrated_library
        self.sender = sender or ApilyticsSender.from_settings(self.settings)
        configure_diagnostics(self.settings.is_production, self.settings.log_level)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def observe(self) -> RequestObserver:
        """Start observing a request."""

        observer = RequestObserver(self)
        observer.begin()
        return observer

    def report(self, request: RequestInfo, response: ResponseInfo, time_millis: int) -> None:
        """Build a record from the observed fields and hand it to the sender."""

        if not self.api_key:
            return
        try:
            record = build_metrics_record(
                path=request.path,
                method=request.method,
                time_millis=time_millis,
                query=request.query,
                status_code=response.status_code,
                request_size=request.content_length,
                response_size=response.content_length,
                user_agent=request.user_agent,
            )
            tag = build_integration_tag(self.integration, self.integrated_library)
            self.sender.send(record, self.api_key, tag)
        except Exception:
            record_report_outcome("dropped")
            if not self.settings.is_production:
                logger.error("Could not report Apilytics metrics for %s", request.path, exc_info=True)
