"""Tests for the HTTP sync executor against httpx.MockTransport."""

import json

import httpx
import pytest

from app.application.dtos.sync import SyncRequest
from app.application.services.error_classifier import classify_error
from app.application.use_cases.sync.process_queue import partial_failure_rate
from app.domain.enums import ErrorKind, SyncMode
from app.domain.exceptions import SyncExecutorException
from app.infrastructure.external.sync_executor import HttpSyncExecutor

REQUEST = SyncRequest(
    account_id="acc-1",
    mode=SyncMode.INCREMENTAL,
    cursor="history-100",
    folders=("INBOX", "Sent"),
    limit=200,
)


def _executor(handler, token: str | None = "worker-token") -> tuple[HttpSyncExecutor, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpSyncExecutor("http://worker.local/", token=token, http_client=client), client


async def test_posts_request_and_maps_result() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"success": True, "cursor": "history-200", "items_total": 12, "items_failed": 1},
        )

    executor, client = _executor(handler)
    async with client:
        result = await executor.execute(REQUEST)

    assert seen["url"] == "http://worker.local/sync"
    assert seen["auth"] == "Bearer worker-token"
    assert seen["body"] == {
        "account_id": "acc-1",
        "mode": "incremental",
        "cursor": "history-100",
        "folders": ["INBOX", "Sent"],
        "limit": 200,
    }
    assert result.success is True
    assert result.cursor == "history-200"
    assert (result.items_total, result.items_failed) == (12, 1)


async def test_no_token_sends_no_authorization() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "Authorization" not in request.headers
        return httpx.Response(200, json={"success": True})

    executor, client = _executor(handler, token=None)
    async with client:
        assert (await executor.execute(REQUEST)).success is True


async def test_http_error_carries_status_and_retry_after() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            429, json={"error": "Too many requests"}, headers={"Retry-After": "45"}
        )

    executor, client = _executor(handler)
    async with client:
        with pytest.raises(SyncExecutorException) as exc_info:
            await executor.execute(REQUEST)

    exc = exc_info.value
    assert exc.status_code == 429
    assert exc.message == "Too many requests"
    info = classify_error(exc)
    assert info.kind == ErrorKind.RATE_LIMIT
    assert info.retry_after_seconds == 45


async def test_http_error_with_plain_text_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream maintenance")

    executor, client = _executor(handler)
    async with client:
        with pytest.raises(SyncExecutorException) as exc_info:
            await executor.execute(REQUEST)
    assert exc_info.value.message == "upstream maintenance"
    assert classify_error(exc_info.value).kind == ErrorKind.PROVIDER


async def test_malformed_json() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>")

    executor, client = _executor(handler)
    async with client:
        with pytest.raises(SyncExecutorException, match="malformed"):
            await executor.execute(REQUEST)


async def test_failure_reported_in_body_keeps_provider_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"success": False, "error": {"message": "Token expired", "status_code": 401}},
        )

    executor, client = _executor(handler)
    async with client:
        result = await executor.execute(REQUEST)

    assert result.success is False
    assert isinstance(result.error, SyncExecutorException)
    assert classify_error(result.error).kind == ErrorKind.AUTH



async def test_numeric_fields_sent_as_strings_are_coerced() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "success": False,
                "items_total": "12",
                "items_failed": "3",
                "error": {"message": "Token expired", "status_code": "401"},
            },
        )

    executor, client = _executor(handler)
    async with client:
        result = await executor.execute(REQUEST)

    assert (result.items_total, result.items_failed) == (12, 3)
    assert partial_failure_rate(result) == 0.25
    assert result.error.status_code == 401
    assert classify_error(result.error).kind == ErrorKind.AUTH


async def test_non_numeric_fields_are_dropped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "success": True,
                "items_total": "lots",
                "items_failed": [1],
                "error": {"message": "odd", "status_code": "n/a", "headers": "Retry-After: 5"},
            },
        )

    executor, client = _executor(handler)
    async with client:
        result = await executor.execute(REQUEST)

    assert (result.items_total, result.items_failed) == (None, None)
    assert partial_failure_rate(result) == 0.0
    assert result.error.status_code is None
    assert result.error.headers == {}


async def test_transport_error_propagates() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    executor, client = _executor(handler)
    async with client:
        with pytest.raises(httpx.ConnectError) as exc_info:
            await executor.execute(REQUEST)
    assert classify_error(exc_info.value).kind == ErrorKind.NETWORK
