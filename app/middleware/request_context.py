"""Request ID and correlation ID middleware.

Generates or forwards X-Request-ID and X-Correlation-ID, echoes both on the
response and binds the request ID to log records for the duration of the
request. Client-provided values are sanitized (length + character set) to
prevent log injection. Raw ASGI (no BaseHTTPMiddleware).
"""

import re
import uuid
from typing import Callable

from app.shared.telemetry.logging import bind_request_id, reset_request_id

# Safe for logging: alphanumeric, hyphen, underscore; max length to avoid abuse.
REQUEST_ID_MAX_LENGTH = 64
REQUEST_ID_ALLOWED_PATTERN = re.compile(
    r"^[a-zA-Z0-9_-]{1," + str(REQUEST_ID_MAX_LENGTH) + r"}$"
)


def _get_header(scope: dict, name: str) -> str | None:
    """Return first header value for name (case-insensitive). Headers are (bytes, bytes)."""
    want = name.lower().encode()
    for k, v in scope.get("headers", []):
        if k.lower() == want:
            return v.decode("utf-8", errors="replace")
    return None


def _sanitize(raw: str | None) -> str | None:
    """Return raw if valid and safe, else None."""
    if not raw or not REQUEST_ID_ALLOWED_PATTERN.match(raw.strip()):
        return None
    return raw.strip()


def RequestContextMiddleware(
    app: Callable,
    request_id_header: str = "X-Request-ID",
    correlation_id_header: str = "X-Correlation-ID",
) -> Callable:
    """Add or forward request and correlation IDs on each request and response. Raw ASGI."""

    async def asgi_app(scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await app(scope, receive, send)
            return
        request_id = _sanitize(_get_header(scope, request_id_header)) or str(uuid.uuid4())
        correlation_id = _sanitize(_get_header(scope, correlation_id_header)) or request_id
        state = scope.setdefault("state", {})
        state["request_id"] = request_id
        state["correlation_id"] = correlation_id

        async def send_wrapper(message: dict) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((request_id_header.encode(), request_id.encode()))
                headers.append((correlation_id_header.encode(), correlation_id.encode()))
                message["headers"] = headers
            await send(message)

        token = bind_request_id(request_id)
        try:
            await app(scope, receive, send_wrapper)
        finally:
            reset_request_id(token)

    return asgi_app
