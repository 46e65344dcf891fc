"""Correlation ID middleware.

Every HTTP request runs with a correlation ID bound in the logging context,
taken from the ``X-Correlation-ID`` request header when the caller supplies a
usable one, generated otherwise, and echoed back on the response.

Written as plain ASGI middleware; Starlette's BaseHTTPMiddleware runs the
endpoint in a separate task, which breaks asyncpg connections bound to the
request's loop.
"""

import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from shiftwatch.logging_config import correlation_id_ctx, get_logger

logger = get_logger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"

# Longer caller-supplied IDs are replaced with a generated one
MAX_CORRELATION_ID_LENGTH = 128


def _incoming_correlation_id(scope: Scope) -> str | None:
    for name, value in scope.get("headers", []):
        if name == b"x-correlation-id":
            decoded = value.decode("latin-1").strip()
            if decoded and len(decoded) <= MAX_CORRELATION_ID_LENGTH:
                return decoded
            return None
    return None


class CorrelationIdMiddleware:
    """Bind a correlation ID for the lifetime of each HTTP request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        correlation_id = _incoming_correlation_id(scope) or str(uuid.uuid4())
        token = correlation_id_ctx.set(correlation_id)

        method = scope.get("method", "")
        path = scope.get("path", "")
        status_code: int | None = None
        started = time.perf_counter()

        async def send_with_header(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status")
                headers = list(message.get("headers", []))
                headers.append(
                    (CORRELATION_ID_HEADER.lower().encode(), correlation_id.encode())
                )
                message = {**message, "headers": headers}
            await send(message)

        try:
            await self.app(scope, receive, send_with_header)
            logger.info(
                "Request completed",
                method=method,
                path=path,
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
        except Exception:
            logger.exception(
                "Request failed",
                method=method,
                path=path,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise
        finally:
            correlation_id_ctx.reset(token)
