"""Sync error classification: map a raw failure to a structured ErrorInfo.

Rules are evaluated in a fixed priority order and the first match wins:
network, auth, rate_limit, provider, invalid_data, unknown. A later rule
never overrides an earlier, more specific one (a 401 is always auth).
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from app.application.services.backoff_policy import MAX_RETRY_AFTER_SECONDS
from app.domain.enums import ErrorKind
from app.domain.value_objects.sync import ErrorInfo
from app.shared.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_RETRY_SECONDS = 60.0
PROVIDER_RETRY_SECONDS = 300.0

_NETWORK_EXCEPTIONS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    httpx.TransportError,
)
_NETWORK_MARKERS = (
    "econnrefused",
    "econnreset",
    "etimedout",
    "enotfound",
    "connection refused",
    "connection reset",
    "timed out",
    "timeout",
    "dns",
    "name or service not known",
    "fetch failed",
    "network",
)
_AUTH_MARKERS = ("unauthorized", "invalid_grant", "access denied", "forbidden")
_RATE_LIMIT_MARKERS = ("rate limit", "rate-limit", "too many requests")
_PROVIDER_MARKERS = ("maintenance", "service unavailable")
_INVALID_DATA_MARKERS = ("malformed",)


@dataclass(frozen=True)
class _Signals:
    """Normalized view of a raw error."""

    message: str
    lowered: str
    status: int | None
    headers: Mapping[str, str]
    exc: BaseException | None


def _extract_status(raw: Any) -> int | None:
    response = getattr(raw, "response", None)
    for candidate in (
        getattr(raw, "status_code", None),
        getattr(raw, "status", None),
        getattr(response, "status_code", None) if response is not None else None,
    ):
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            return candidate
    return None


def _extract_headers(raw: Any) -> Mapping[str, str]:
    headers = getattr(raw, "headers", None)
    if headers is None:
        response = getattr(raw, "response", None)
        headers = getattr(response, "headers", None) if response is not None else None
    if not headers:
        return {}
    try:
        return {str(k).lower(): str(v) for k, v in dict(headers).items()}
    except (TypeError, ValueError):
        return {}


def _signals(raw: Any) -> _Signals:
    if isinstance(raw, BaseException):
        message = str(raw) or raw.__class__.__name__
        exc: BaseException | None = raw
    else:
        message = str(getattr(raw, "message", None) or raw or "")
        exc = None
    return _Signals(
        message=message,
        lowered=message.lower(),
        status=_extract_status(raw),
        headers=_extract_headers(raw),
        exc=exc,
    )


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Parse a Retry-After header: delta-seconds or an HTTP date.

    None if absent, invalid or non-finite; capped at MAX_RETRY_AFTER_SECONDS.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = ensure_utc(parsedate_to_datetime(value))
        except (TypeError, ValueError, IndexError):
            logger.debug("Ignoring unparseable Retry-After header: %r", value)
            return None
        if when is None:
            return None
        seconds = (when - (now or utc_now())).total_seconds()
    if not math.isfinite(seconds):
        logger.debug("Ignoring non-finite Retry-After header: %r", value)
        return None
    return min(max(seconds, 0.0), MAX_RETRY_AFTER_SECONDS)


def _has_status(signals: _Signals, *codes: int) -> bool:
    return signals.status is not None and signals.status in codes


def _mentions(signals: _Signals, markers: tuple[str, ...]) -> bool:
    return any(marker in signals.lowered for marker in markers)


def _is_network(s: _Signals) -> bool:
    # A status code means the provider answered; that is never a transport failure.
    if s.status is not None:
        return False
    if s.exc is not None and isinstance(s.exc, _NETWORK_EXCEPTIONS):
        return True
    return _mentions(s, _NETWORK_MARKERS)


def _is_auth(s: _Signals) -> bool:
    return _has_status(s, 401, 403) or _mentions(s, _AUTH_MARKERS)


def _is_rate_limit(s: _Signals) -> bool:
    return _has_status(s, 429) or _mentions(s, _RATE_LIMIT_MARKERS)


def _is_provider(s: _Signals) -> bool:
    return _has_status(s, 503) or _mentions(s, _PROVIDER_MARKERS)


def _is_invalid_data(s: _Signals) -> bool:
    return _has_status(s, 400) or _mentions(s, _INVALID_DATA_MARKERS)


def _network_info(s: _Signals) -> ErrorInfo:
    return ErrorInfo(
        kind=ErrorKind.NETWORK,
        message=s.message,
        user_message="Network connection to the email provider failed.",
        action_message="The sync will retry automatically.",
        retryable=True,
    )


def _auth_info(s: _Signals) -> ErrorInfo:
    return ErrorInfo(
        kind=ErrorKind.AUTH,
        message=s.message,
        user_message="Authentication with the email provider failed.",
        action_message="Reconnect the account to resume syncing.",
        retryable=False,
    )


def _rate_limit_info(s: _Signals) -> ErrorInfo:
    retry_after = parse_retry_after(s.headers.get("retry-after"))
    return ErrorInfo(
        kind=ErrorKind.RATE_LIMIT,
        message=s.message,
        user_message="The email provider is rate limiting requests.",
        action_message="The sync will resume after the provider's cool-down.",
        retryable=True,
        retry_after_seconds=(
            retry_after if retry_after is not None else DEFAULT_RATE_LIMIT_RETRY_SECONDS
        ),
    )


def _provider_info(s: _Signals) -> ErrorInfo:
    return ErrorInfo(
        kind=ErrorKind.PROVIDER,
        message=s.message,
        user_message="The email provider is temporarily unavailable.",
        action_message="The sync will retry in a few minutes.",
        retryable=True,
        retry_after_seconds=PROVIDER_RETRY_SECONDS,
    )


def _invalid_data_info(s: _Signals) -> ErrorInfo:
    return ErrorInfo(
        kind=ErrorKind.INVALID_DATA,
        message=s.message,
        user_message="The email provider returned data that could not be processed.",
        action_message="Contact support if this keeps happening.",
        retryable=False,
    )


def _unknown_info(s: _Signals) -> ErrorInfo:
    return ErrorInfo(
        kind=ErrorKind.UNKNOWN,
        message=s.message or "Unknown error occurred",
        user_message="The sync failed for an unexpected reason.",
        action_message="The sync will retry automatically.",
        retryable=True,
    )


# Ordered: first matching rule wins.
_RULES: tuple[tuple[Callable[[_Signals], bool], Callable[[_Signals], ErrorInfo]], ...] = (
    (_is_network, _network_info),
    (_is_auth, _auth_info),
    (_is_rate_limit, _rate_limit_info),
    (_is_provider, _provider_info),
    (_is_invalid_data, _invalid_data_info),
)


def classify_error(raw: Any) -> ErrorInfo:
    """Classify a raw failure (exception, executor error string, or error object).

    Reads HTTP status (status_code / status / response.status_code), the
    Retry-After header, exception type and message text.
    """
    signals = _signals(raw)
    for matches, build in _RULES:
        if matches(signals):
            return build(signals)
    return _unknown_info(signals)


class ErrorClassifier:
    """Injectable wrapper around classify_error."""

    def classify(self, raw: Any) -> ErrorInfo:
        """Return the ErrorInfo for raw."""
        info = classify_error(raw)
        logger.debug(
            "Classified sync error as %s (retryable=%s): %s",
            info.kind.value,
            info.retryable,
            info.message,
        )
        return info
