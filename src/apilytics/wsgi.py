"""WSGI middleware reporting request metrics from thread-per-request hosts."""
from __future__ import annotations

from typing import Any, Callable, Iterable, Iterator

from apilytics.config import ApilyticsSettings
from apilytics.observer import Apilytics, ObservationState, RequestInfo, RequestObserver, ResponseInfo
from apilytics.sender import ApilyticsSender

INTEGRATION_NAME = "apilytics-python-wsgi"

WSGIApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]


class ApilyticsWSGIMiddleware:
    """Send API analytics data to Apilytics for every request of a WSGI app.

    The report is made when the server closes the response iterable, which
    happens exactly once after the body has been sent::

        app.wsgi_app = ApilyticsWSGIMiddleware(app.wsgi_app, api_key="<your-api-key>")
    """

    def __init__(
        self,
        app: WSGIApp,
        api_key: str | None = None,
        *,
        settings: ApilyticsSettings | None = None,
        sender: ApilyticsSender | None = None,
    ) -> None:
        self.app = app
        self._apilytics = Apilytics(api_key, settings=settings, integration=INTEGRATION_NAME, sender=sender)

    def __call__(self, environ: dict, start_response: Callable[..., Any]) -> Iterable[bytes]:
        if not self._apilytics.enabled:
            return self.app(environ, start_response)

        observer = self._apilytics.observe()
        response = ResponseInfo()

        def _start_response(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Any:
            response.status_code = _status_code(status)
            response.content_length = _header(headers, "content-length")
            return start_response(status, headers, exc_info)

        try:
            iterable = self.app(environ, _start_response)
        except Exception:
            _report(observer, environ, response)
            raise

        file_wrapper = environ.get("wsgi.file_wrapper")
        if isinstance(file_wrapper, type) and isinstance(iterable, file_wrapper):
            # Servers only take their sendfile path for their own wrapper type.
            if _report_on_close(iterable, lambda: _report(observer, environ, response)):
                return iterable
        if hasattr(iterable, "__len__"):
            return _SizedObservedResponse(iterable, observer, environ, response)
        return _ObservedResponse(iterable, observer, environ, response)


class _ObservedResponse:
    """Response iterable that counts body bytes and reports on ``close()``."""

    def __init__(
        self,
        iterable: Iterable[bytes],
        observer: RequestObserver,
        environ: dict,
        response: ResponseInfo,
    ) -> None:
        self._iterable = iterable
        self._observer = observer
        self._environ = environ
        self._response = response
        self._body_bytes = 0

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self._iterable:
            self._body_bytes += len(chunk)
            yield chunk

    def close(self) -> None:
        try:
            close = getattr(self._iterable, "close", None)
            if close is not None:
                close()
        finally:
            if self._response.content_length is None:
                self._response.content_length = self._body_bytes
            _report(self._observer, self._environ, self._response)


class _SizedObservedResponse(_ObservedResponse):
    """Observed response keeping the wrapped iterable's length visible.

    Servers such as wsgiref derive ``Content-Length`` from a single-item body.
    """

    def __len__(self) -> int:
        return len(self._iterable)  # type: ignore[arg-type]


def _report_on_close(iterable: Any, on_close: Callable[[], None]) -> bool:
    """Chain ``on_close`` after the iterable's own ``close()``, in place."""

    original = getattr(iterable, "close", None)

    def close() -> None:
        try:
            if original is not None:
                original()
        finally:
            on_close()

    try:
        iterable.close = close
    except (AttributeError, TypeError):
        return False
    return True


def _status_code(status: Any) -> str | None:
    try:
        return str(status).split(None, 1)[0]
    except (IndexError, TypeError):
        return None


def _header(headers: Any, name: str) -> str | None:
    try:
        for key, value in headers:
            if str(key).lower() == name:
                return value
    except (TypeError, ValueError):
        return None
    return None


def _request_info(environ: dict) -> RequestInfo:
    return RequestInfo(
        method=environ.get("REQUEST_METHOD", ""),
        path=environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", ""),
        query=environ.get("QUERY_STRING"),
        content_length=environ.get("CONTENT_LENGTH"),
        user_agent=environ.get("HTTP_USER_AGENT"),
    )


def _report(observer: RequestObserver, environ: dict, response: ResponseInfo) -> None:
    if observer.state is not ObservationState.OBSERVING:
        return
    try:
        request = _request_info(environ)
    except Exception:
        request = RequestInfo(method=str(environ.get("REQUEST_METHOD", "")), path=str(environ.get("PATH_INFO", "")))
    observer.finish(request, response)
