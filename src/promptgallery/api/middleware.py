"""ASGI middleware for the Prompt Gallery API.

The application installs these around the router in the following order,
outermost first::

    SecurityHeadersMiddleware
    CORSMiddleware            (Starlette)
    BodySizeLimitMiddleware
    AccessLogMiddleware
    RateLimitMiddleware
    ErrorHandlingMiddleware
    router + exception handlers

Middleware that rejects a request renders the response itself through
:func:`promptgallery.core.errors.to_http`.  The app's exception handlers sit
inside every user middleware and never see those errors.  Exceptions the
handlers do not cover are rendered by :class:`ErrorHandlingMiddleware`, so
the 500 envelope still passes through the header middleware above it.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from promptgallery.core.errors import GalleryError, PayloadTooLargeError, to_http
from promptgallery.core.rate_limit import RateLimiter

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("promptgallery.access")

SECURITY_HEADERS: dict[str, str] = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


def error_response(exc: Exception) -> JSONResponse:
    """Render an error as a JSON response through :func:`to_http`."""
    http_error = to_http(exc)
    return JSONResponse(
        http_error.body,
        status_code=http_error.status_code,
        headers=http_error.headers,
    )


def client_address(scope: Scope, trust_proxy: bool = False) -> str:
    """Return the address identifying the caller of *scope*.

    Args:
        scope: ASGI connection scope.
        trust_proxy: Use the first ``X-Forwarded-For`` entry when present.

    Returns:
        Client IP address, or ``"unknown"`` when the server did not provide
        one.
    """
    if trust_proxy:
        forwarded = Headers(scope=scope).get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    client = scope.get("client")
    if client:
        return client[0]
    return "unknown"


class SecurityHeadersMiddleware:
    """Add hardening headers to every HTTP response.

    Headers already set by an inner layer are left untouched.
    """

    def __init__(self, app: ASGIApp, headers: dict[str, str] | None = None) -> None:
        self.app = app
        self.headers = SECURITY_HEADERS if headers is None else headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for name, value in self.headers.items():
                    if name not in response_headers:
                        response_headers.append(name, value)
            await send(message)

        await self.app(scope, receive, send_with_headers)


class BodySizeLimitMiddleware:
    """Reject request bodies larger than ``max_body_bytes`` with a 413.

    A declared ``Content-Length`` above the limit is rejected before any
    body is read.  Otherwise the body is buffered up to the limit and then
    replayed to the application as a single ``http.request`` message.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.max_body_bytes:
            await self._reject(scope, receive, send)
            return

        chunks: list[bytes] = []
        received = 0
        disconnect: Message | None = None
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                disconnect = message
                break
            body = message.get("body", b"")
            received += len(body)
            if received > self.max_body_bytes:
                await self._reject(scope, receive, send)
                return
            chunks.append(body)
            if not message.get("more_body", False):
                break

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                if disconnect is not None:
                    return disconnect
                return {"type": "http.request", "body": b"".join(chunks), "more_body": False}
            return await receive()

        await self.app(scope, replay, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        limit_mb = self.max_body_bytes / (1024 * 1024)
        error = PayloadTooLargeError(f"Request body exceeds the {limit_mb:g}MB limit")
        await error_response(error)(scope, receive, send)


class AccessLogMiddleware:
    """Log one line per request in Apache combined log format."""

    def __init__(self, app: ASGIApp, trust_proxy: bool = False) -> None:
        self.app = app
        self.trust_proxy = trust_proxy

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        status_code = 500
        content_length = "-"

        async def send_and_record(message: Message) -> None:
            nonlocal status_code, content_length
            if message["type"] == "http.response.start":
                status_code = message["status"]
                content_length = Headers(scope=message).get("content-length", "-")
            await send(message)

        try:
            await self.app(scope, receive, send_and_record)
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            access_logger.info(
                format_access_line(scope, status_code, content_length, self.trust_proxy)
                + f" {elapsed_ms:.1f}ms"
            )


def format_access_line(
    scope: Scope,
    status_code: int,
    content_length: str,
    trust_proxy: bool = False,
    now: datetime | None = None,
) -> str:
    """Format a request as an Apache combined log line (without timing)."""
    headers = Headers(scope=scope)
    now = now or datetime.now(timezone.utc)
    path = scope.get("path", "")
    query = scope.get("query_string", b"").decode("latin-1")
    target = f"{path}?{query}" if query else path
    request_line = f"{scope.get('method', '-')} {target} HTTP/{scope.get('http_version', '1.1')}"
    return (
        f"{client_address(scope, trust_proxy)} - - "
        f"[{now.strftime('%d/%b/%Y:%H:%M:%S %z')}] "
        f'"{request_line}" {status_code} {content_length} '
        f'"{headers.get("referer", "-")}" "{headers.get("user-agent", "-")}"'
    )


class RateLimitMiddleware:
    """Apply a :class:`RateLimiter` per client address.

    Allowed responses carry ``RateLimit-Limit``, ``RateLimit-Remaining`` and
    ``RateLimit-Reset`` headers.  Rejected requests get a 429 envelope with
    ``Retry-After``.
    """

    def __init__(self, app: ASGIApp, limiter: RateLimiter, trust_proxy: bool = False) -> None:
        self.app = app
        self.limiter = limiter
        self.trust_proxy = trust_proxy

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            decision = self.limiter.hit(client_address(scope, self.trust_proxy))
        except GalleryError as e:
            await error_response(e)(scope, receive, send)
            return

        async def send_with_quota(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                response_headers["RateLimit-Limit"] = str(decision.limit)
                response_headers["RateLimit-Remaining"] = str(decision.remaining)
                response_headers["RateLimit-Reset"] = str(decision.reset_after)
            await send(message)

        await self.app(scope, receive, send_with_quota)


class ErrorHandlingMiddleware:
    """Render exceptions no exception handler claimed as a 500 envelope.

    Installed innermost so the response still receives security, CORS and
    rate-limit headers.  If the response has already started the exception
    propagates unchanged.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_and_track(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_and_track)
        except Exception as e:
            if response_started:
                raise
            logger.exception(f"Unhandled error on {scope.get('method')} {scope.get('path')}")
            await error_response(e)(scope, receive, send)
