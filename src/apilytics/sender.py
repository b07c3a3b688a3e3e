"""Fire-and-forget delivery of metrics records to the Apilytics collector."""
from __future__ import annotations

import logging
import platform
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from apilytics.config import ApilyticsSettings, get_settings
from apilytics.metrics import record_report_outcome
from apilytics.record import MetricsRecord, build_metrics_record
from apilytics.version import __version__

logger = logging.getLogger(__name__)

COLLECTOR_URL = "https://www.apilytics.io/api/v1/middleware"
DEFAULT_INTEGRATION = "apilytics-python-core"
MAX_IN_FLIGHT = 64

_in_flight = threading.BoundedSemaphore(MAX_IN_FLIGHT)

Dispatcher = Callable[[Callable[[], None]], None]


def build_integration_tag(integration: str | None = None, integrated_library: str | None = None) -> str:
    """Return the ``Apilytics-Version`` header value for the calling integration.

    Example: ``apilytics-python-fastapi/1.0.0;python/3.12.1;fastapi/0.110.0``.
    """

    tag = f"{integration or DEFAULT_INTEGRATION}/{__version__};python/{platform.python_version()}"
    if integrated_library:
        tag += f";{integrated_library}"
    return tag


class DispatchRefused(RuntimeError):
    """Raised when too many deliveries are still running to start another."""


def dispatch_in_thread(task: Callable[[], None]) -> None:
    """Run ``task`` on a daemon thread so the caller never waits for it.

    At most ``MAX_IN_FLIGHT`` delivery threads run at once. When the collector
    is slow or unreachable each thread lives up to the request timeout, and
    further reports are refused (and dropped by the sender) until one ends.
    """

    semaphore = _in_flight
    if not semaphore.acquire(blocking=False):
        raise DispatchRefused(f"{MAX_IN_FLIGHT} Apilytics deliveries already in flight")

    def run() -> None:
        try:
            task()
        finally:
            semaphore.release()

    try:
        threading.Thread(target=run, name="apilytics-sender", daemon=True).start()
    except Exception:
        semaphore.release()
        raise


@dataclass(slots=True)
class ApilyticsSender:
    """Deliver metrics records without blocking the caller or raising.

    Every call to :meth:`send` results in at most one POST to the collector.
    Failures of any kind are counted, logged when not in production, and
    dropped; nothing is retried.
    """

    production: bool = False
    timeout_seconds: float = 5.0
    transport: httpx.BaseTransport | None = None
    dispatcher: Dispatcher = dispatch_in_thread

    @classmethod
    def from_settings(cls, settings: ApilyticsSettings, **overrides: Any) -> "ApilyticsSender":
        options: dict[str, Any] = {
            "production": settings.is_production,
            "timeout_seconds": settings.timeout_seconds,
        }
        options.update(overrides)
        return cls(**options)

    def send(self, record: MetricsRecord, api_key: str, integration_tag: str) -> None:
        """Hand ``record`` to the collector in the background."""

        try:
            body = record.to_json()
            headers = {
                "Content-Type": "application/json",
                "Content-Length": str(len(body)),
                "X-API-Key": api_key,
                "Apilytics-Version": integration_tag,
            }
            self.dispatcher(lambda: self._deliver(body, headers))
        except Exception:
            record_report_outcome("dropped")
            self._diagnose("Could not dispatch Apilytics metrics")

    def _deliver(self, body: bytes, headers: dict[str, str]) -> None:
        start = time.perf_counter()
        try:
            with httpx.Client(transport=self.transport, timeout=self.timeout_seconds) as client:
                # Stream so the collector's response body is never read.
                with client.stream("POST", COLLECTOR_URL, content=body, headers=headers) as response:
                    status_code = response.status_code
            if not 200 <= status_code < 300:
                raise httpx.HTTPStatusError(
                    f"Apilytics collector responded with status {status_code}",
                    request=response.request,
                    response=response,
                )
        except Exception:
            record_report_outcome("failed", time.perf_counter() - start)
            self._diagnose("Sending Apilytics metrics failed")
            return
        record_report_outcome("sent", time.perf_counter() - start)

    def _diagnose(self, message: str) -> None:
        if self.production:
            return
        logger.error(message, exc_info=True)


def send_apilytics_metrics(
    *,
    api_key: str,
    path: str,
    method: str,
    time_millis: int,
    query: str | None = None,
    status_code: int | None = None,
    request_size: int | None = None,
    response_size: int | None = None,
    user_agent: str | None = None,
    apilytics_integration: str | None = None,
    integrated_library: str | None = None,
    sender: ApilyticsSender | None = None,
) -> None:
    """Send API analytics data to Apilytics as a fire-and-forget background task.

    For use in code that does its own instrumentation instead of installing a
    middleware::

        stop = milli_second_timer()
        response = handler(request)
        send_apilytics_metrics(
            api_key="<your-api-key>",
            path=request.path,
            query=request.query_string,
            method=request.method,
            status_code=response.status_code,
            user_agent=request.headers.get("user-agent"),
            time_millis=stop(),
        )

    ``apilytics_integration`` and ``integrated_library`` are filled in by the
    bundled middlewares and need not be passed from user code.
    """

    try:
        if sender is None:
            sender = ApilyticsSender.from_settings(get_settings())
        record = build_metrics_record(
            path=path,
            method=method,
            time_millis=time_millis,
            query=query,
            status_code=status_code,
            request_size=request_size,
            response_size=response_size,
            user_agent=user_agent,
        )
        sender.send(record, api_key, build_integration_tag(apilytics_integration, integrated_library))
    except Exception:
        record_report_outcome("dropped")
        if sender is None or not sender.production:
            logger.error("Could not build Apilytics metrics for %s %s", method, path, exc_info=True)
