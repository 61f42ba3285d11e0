"""ASGI middleware — security headers and request timing."""

from __future__ import annotations

import logging
import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.wide_event import clear_wide_event, get_wide_event, init_wide_event

logger = logging.getLogger("request")

SERVICE_NAME = "event-certificates-api"


class SecurityHeadersMiddleware:
    """Adds security headers to every HTTP response."""

    SECURITY_HEADERS: list[tuple[bytes, bytes]] = [
        (b"x-content-type-options", b"nosniff"),
        (b"x-frame-options", b"DENY"),
        (b"referrer-policy", b"strict-origin-when-cross-origin"),
        (b"strict-transport-security", b"max-age=31536000; includeSubDomains"),
    ]

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message.get("type") == "http.response.start":
                headers: list[tuple[bytes, bytes]] = list(message.get("headers", []))
                headers.extend(self.SECURITY_HEADERS)
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_wrapper)


class RequestTimingMiddleware:
    """Emits one wide event (canonical log line) per request.

    Errors and slow requests are always logged; fast successes only at DEBUG.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        path = scope.get("path", "")
        request_id = str(uuid.uuid4())

        wide_event = init_wide_event()
        wide_event["service_name"] = SERVICE_NAME
        wide_event["request_id"] = request_id
        wide_event["http_method"] = scope.get("method", "UNKNOWN")
        wide_event["http_path"] = path

        response_status: int | None = None

        async def send_wrapper(message: Message) -> None:
            nonlocal response_status

            if message.get("type") == "http.response.start":
                response_status = int(message.get("status", 0))
                headers: list[tuple[bytes, bytes]] = list(message.get("headers", []))
                duration_ms = (time.perf_counter() - start_time) * 1000
                headers.append(
                    (b"x-request-duration-ms", f"{duration_ms:.2f}".encode())
                )
                headers.append((b"x-request-id", request_id.encode()))
                message["headers"] = headers

            elif message.get("type") == "http.response.body" and not message.get(
                "more_body", False
            ):
                duration_ms = (time.perf_counter() - start_time) * 1000
                route = scope.get("route")

                event = get_wide_event()
                event["http_route"] = getattr(route, "path", None) or path
                event["http_status_code"] = response_status
                event["duration_ms"] = round(duration_ms, 2)
                event["outcome"] = (
                    "success" if response_status and response_status < 400 else "error"
                )

                if (
                    response_status is None
                    or response_status >= 400
                    or duration_ms > 1000
                ):
                    logger.info("request.completed", extra=dict(event))
                else:
                    logger.debug("request.completed", extra=dict(event))

                clear_wide_event()

            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            event = get_wide_event()
            event["duration_ms"] = round((time.perf_counter() - start_time) * 1000, 2)
            event["outcome"] = "exception"
            event["exception_type"] = type(exc).__name__
            logger.info("request.completed", extra=dict(event))
            clear_wide_event()
            raise
