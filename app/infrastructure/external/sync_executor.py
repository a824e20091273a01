"""HTTP sync executor: delegates the provider round-trip to a sync worker service.

The worker receives {account_id, mode, cursor, folders, since, limit} and
answers {success, cursor, error, items_total, items_failed}. Non-2xx
answers become SyncExecutorException carrying status and headers so the
error classifier sees 401/429/503 and Retry-After.
"""

from contextlib import asynccontextmanager
from typing import Any

import httpx

from app.application.dtos.sync import SyncExecutionResult, SyncRequest
from app.domain.exceptions import SyncExecutorException
from app.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

SYNC_PATH = "/sync"


def _request_payload(request: SyncRequest) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "account_id": request.account_id,
        "mode": request.mode.value,
        "cursor": request.cursor,
    }
    if request.folders:
        payload["folders"] = list(request.folders)
    if request.since:
        payload["since"] = request.since
    if request.limit is not None:
        payload["limit"] = request.limit
    return payload


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error") or body.get("message") or body.get("detail")
        if isinstance(error, dict):
            error = error.get("message")
        if error:
            return str(error)
    text = response.text.strip()
    return text[:500] if text else f"Sync executor returned HTTP {response.status_code}"


def _as_int(value: Any) -> int | None:
    """Coerce a numeric body field ("12", 12.0, 12) to int; None when missing or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            logger.warning("Ignoring non-numeric sync executor field: %r", value)
            return None


def _to_result(body: dict[str, Any]) -> SyncExecutionResult:
    error = body.get("error")
    if isinstance(error, dict):
        # Provider failure reported inside a 200: keep its status for classification.
        headers = error.get("headers")
        error = SyncExecutorException(
            str(error.get("message") or "Sync failed"),
            status_code=_as_int(error.get("status_code")),
            headers=headers if isinstance(headers, dict) else None,
        )
    return SyncExecutionResult(
        success=bool(body.get("success")),
        cursor=body.get("cursor"),
        error=error,
        items_total=_as_int(body.get("items_total")),
        items_failed=_as_int(body.get("items_failed")),
    )


class HttpSyncExecutor:
    """ISyncExecutor over HTTP (httpx). Transport errors propagate as httpx.TransportError."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 300.0,
        token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = base_url.rstrip("/") + SYNC_PATH
        self._timeout = timeout_seconds
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._shared_http = http_client

    @asynccontextmanager
    async def _http_cm(self):
        """Yield shared HTTP client or a short-lived one (connection reuse when shared)."""
        if self._shared_http is not None:
            yield self._shared_http
            return
        async with httpx.AsyncClient() as client:
            yield client

    async def execute(self, request: SyncRequest) -> SyncExecutionResult:
        """POST the request to the worker and map its answer."""
        async with self._http_cm() as client:
            response = await client.post(
                self._url,
                json=_request_payload(request),
                headers=self._headers,
                timeout=self._timeout,
            )
        if response.is_error:
            message = _error_message(response)
            logger.warning(
                "Sync executor returned HTTP %d for account %s: %s",
                response.status_code,
                request.account_id,
                message,
            )
            raise SyncExecutorException(
                message,
                status_code=response.status_code,
                headers=dict(response.headers),
            )
        try:
            body = response.json()
        except ValueError as e:
            raise SyncExecutorException("Sync executor returned malformed JSON") from e
        if not isinstance(body, dict):
            raise SyncExecutorException("Sync executor returned malformed JSON")
        return _to_result(body)
