"""ASGI middleware reporting request metrics from FastAPI and Starlette apps."""
from __future__ import annotations

import fastapi
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from apilytics.config import ApilyticsSettings
from apilytics.observer import Apilytics, ObservationState, RequestInfo, RequestObserver, ResponseInfo
from apilytics.sender import ApilyticsSender

INTEGRATION_NAME = "apilytics-python-fastapi"


class ApilyticsMiddleware:
    """Send API analytics data to Apilytics for every HTTP request.

    The middleware is purely observational: messages pass through unchanged,
    and the report is made once the final response body message has been
    handed to the server::

        app = FastAPI()
        app.add_middleware(ApilyticsMiddleware, api_key="<your-api-key>")

    When no API key is given (explicitly or through ``APILYTICS_API_KEY``)
    requests are forwarded without any instrumentation.
    """

    def __init__(
        self,
        app: ASGIApp,
        api_key: str | None = None,
        *,
        settings: ApilyticsSettings | None = None,
        sender: ApilyticsSender | None = None,
    ) -> None:
        self.app = app
        self._apilytics = Apilytics(
            api_key,
            settings=settings,
            integration=INTEGRATION_NAME,
            integrated_library=f"fastapi/{fastapi.__version__}",
            sender=sender,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self._apilytics.enabled:
            await self.app(scope, receive, send)
            return

        observer = self._apilytics.observe()
        response = ResponseInfo()
        body_bytes = 0

        async def send_wrapper(message: Message) -> None:
            nonlocal body_bytes
            if message["type"] == "http.response.start":
                response.status_code = message.get("status")
                response.content_length = Headers(raw=message.get("headers", [])).get("content-length")
                await send(message)
                return
            await send(message)
            if message["type"] == "http.response.body":
                body_bytes += len(message.get("body", b""))
                if not message.get("more_body", False):
                    if response.content_length is None:
                        response.content_length = body_bytes
                    _report(observer, scope, response)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            # Reached without a final body message when the app raised.
            _report(observer, scope, response)


def _request_info(scope: Scope) -> RequestInfo:
    headers = Headers(scope=scope)
    return RequestInfo(
        method=scope.get("method", ""),
        path=scope.get("path", ""),
        query=scope.get("query_string", b""),
        content_length=headers.get("content-length"),
        user_agent=headers.get("user-agent"),
    )


def _report(observer: RequestObserver, scope: Scope, response: ResponseInfo) -> None:
    if observer.state is not ObservationState.OBSERVING:
        return
    try:
        request = _request_info(scope)
    except Exception:
        request = RequestInfo(method=str(scope.get("method", "")), path=str(scope.get("path", "")))
    observer.finish(request, response)
