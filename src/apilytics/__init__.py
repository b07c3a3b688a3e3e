"""Apilytics reporting client: time requests and send their metrics in the background."""

from apilytics.config import ApilyticsSettings, get_settings
from apilytics.observer import Apilytics, ObservationState, RequestInfo, RequestObserver, ResponseInfo
from apilytics.record import MetricsRecord, build_metrics_record
from apilytics.sender import ApilyticsSender, build_integration_tag, send_apilytics_metrics
from apilytics.timer import TimerHandle, milli_second_timer
from apilytics.version import __version__

__all__ = [
    "Apilytics",
    "ApilyticsSender",
    "ApilyticsSettings",
    "MetricsRecord",
    "ObservationState",
    "RequestInfo",
    "RequestObserver",
    "ResponseInfo",
    "TimerHandle",
    "__version__",
    "build_integration_tag",
    "build_metrics_record",
    "get_settings",
    "milli_second_timer",
    "send_apilytics_metrics",
]
