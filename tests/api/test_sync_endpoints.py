"""API tests for sync endpoints (in-memory backend, fake executor)."""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from app.application.dtos.sync import SyncExecutionResult
from app.domain.enums import AccountSyncStatus, SyncJobStatus
from app.infrastructure.composition import SyncContainer
from app.infrastructure.persistence.memory import InMemorySyncStore
from app.shared.utils.datetime import utc_now
from tests.fakes import FakeExecutor


@pytest.fixture
def account(store: InMemorySyncStore):
    return store.add_account(
        "user-1", "ada@example.com", cursor="history-1", last_sync_at=utc_now() - timedelta(hours=1)
    )


async def test_get_account_state(client: AsyncClient, account) -> None:
    response = await client.get(f"/api/v1/sync/accounts/{account.id}")
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == account.id
    assert data["sync_status"] == "idle"
    assert data["has_cursor"] is True
    assert "cursor" not in data


async def test_get_unknown_account_returns_404(client: AsyncClient) -> None:
    response = await client.get("/api/v1/sync/accounts/missing")
    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "RESOURCE_NOT_FOUND"
    assert body["details"]["resource_type"] == "email_account"


async def test_get_schedule(client: AsyncClient, account) -> None:
    response = await client.get(
        f"/api/v1/sync/accounts/{account.id}/schedule", params={"mode": "conservative"}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["account_id"] == account.id
    assert data["priority"] == 4
    assert data["immediate"] is False
    assert data["reason"] == "Conservative mode - minimal syncing"


async def test_get_schedule_rejects_unknown_mode(client: AsyncClient, account) -> None:
    response = await client.get(
        f"/api/v1/sync/accounts/{account.id}/schedule", params={"mode": "turbo"}
    )
    assert response.status_code == 422


async def test_enqueue_job_and_conflict(
    client: AsyncClient, account, admin_headers: dict[str, str]
) -> None:
    response = await client.post(
        f"/api/v1/sync/accounts/{account.id}/jobs",
        json={"job_type": "full", "priority": 1, "metadata": {"folders": ["INBOX"]}},
        headers=admin_headers,
    )
    assert response.status_code == 202
    job = response.json()
    assert job["status"] == "pending"
    assert job["job_type"] == "full"
    assert job["priority"] == 1
    assert job["metadata"]["folders"] == ["INBOX"]

    again = await client.post(
        f"/api/v1/sync/accounts/{account.id}/jobs", json={}, headers=admin_headers
    )
    assert again.status_code == 409
    assert again.json()["error"] == "JOB_ALREADY_QUEUED"
    assert again.json()["details"]["existing_job_id"] == job["id"]


async def test_enqueue_invalid_priority_returns_422(
    client: AsyncClient, account, admin_headers: dict[str, str]
) -> None:
    response = await client.post(
        f"/api/v1/sync/accounts/{account.id}/jobs", json={"priority": 9}, headers=admin_headers
    )
    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION_ERROR"


async def test_enqueue_unknown_account_returns_404(
    client: AsyncClient, admin_headers: dict[str, str]
) -> None:
    response = await client.post(
        "/api/v1/sync/accounts/missing/jobs", json={}, headers=admin_headers
    )
    assert response.status_code == 404


async def test_list_get_and_cancel_jobs(
    client: AsyncClient, account, admin_headers: dict[str, str]
) -> None:
    created = await client.post(
        f"/api/v1/sync/accounts/{account.id}/jobs", json={}, headers=admin_headers
    )
    job_id = created.json()["id"]

    listed = await client.get(f"/api/v1/sync/accounts/{account.id}/jobs")
    assert listed.status_code == 200
    assert [j["id"] for j in listed.json()] == [job_id]

    fetched = await client.get(f"/api/v1/sync/jobs/{job_id}")
    assert fetched.status_code == 200
    assert fetched.json()["account_id"] == account.id

    cancelled = await client.delete(
        f"/api/v1/sync/accounts/{account.id}/jobs", headers=admin_headers
    )
    assert cancelled.status_code == 200
    assert cancelled.json() == {"account_id": account.id, "cancelled": 1}

    after = (await client.get(f"/api/v1/sync/jobs/{job_id}")).json()
    assert after["status"] == "failed"
    assert after["error_message"] == "Cancelled by user"


async def test_get_unknown_job_returns_404(client: AsyncClient) -> None:
    response = await client.get("/api/v1/sync/jobs/missing")
    assert response.status_code == 404


async def test_reset_cursor(
    client: AsyncClient, account, admin_headers: dict[str, str], store: InMemorySyncStore
) -> None:
    response = await client.post(
        f"/api/v1/sync/accounts/{account.id}/cursor/reset", headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["has_cursor"] is False
    assert store.accounts[account.id].cursor is None


async def test_adapt_frequency(
    client: AsyncClient, account, admin_headers: dict[str, str]
) -> None:
    response = await client.post(
        f"/api/v1/sync/accounts/{account.id}/adapt-frequency", headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json() == {"account_id": account.id, "sync_priority": 3}


async def test_auto_schedule(
    client: AsyncClient, store: InMemorySyncStore, admin_headers: dict[str, str]
) -> None:
    store.add_account("user-7", "new@example.com")
    store.add_account("user-7", "recent@example.com", last_sync_at=utc_now())
    response = await client.post("/api/v1/sync/users/user-7/auto-schedule", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {
        "user_id": "user-7",
        "scheduled": 1,
        "immediate": 1,
        "skipped": 0,
        "errors": 0,
    }


async def test_process_queue(
    client: AsyncClient,
    account,
    executor: FakeExecutor,
    admin_headers: dict[str, str],
    store: InMemorySyncStore,
) -> None:
    executor.outcomes.append(SyncExecutionResult(success=True, cursor="history-2"))
    created = await client.post(
        f"/api/v1/sync/accounts/{account.id}/jobs", json={}, headers=admin_headers
    )

    response = await client.post("/api/v1/sync/queue/process", headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {"processed": 1, "succeeded": 1, "failed": 0, "requeued_stale": 0}
    assert store.jobs[created.json()["id"]].status == SyncJobStatus.COMPLETED
    state = store.accounts[account.id]
    assert state.sync_status == AccountSyncStatus.SUCCESS
    assert state.cursor == "history-2"


async def test_process_queue_without_executor_returns_503(
    client: AsyncClient, container: SyncContainer, admin_headers: dict[str, str]
) -> None:
    container.dispatcher = None
    response = await client.post("/api/v1/sync/queue/process", headers=admin_headers)
    assert response.status_code == 503
    assert response.json()["error"] == "SERVICE_UNAVAILABLE"


async def test_cleanup(
    client: AsyncClient, account, admin_headers: dict[str, str], container: SyncContainer
) -> None:
    job = await container.job_queue.enqueue(account.id)
    await container.job_queue.start(job.id)
    await container.job_queue.complete(job.id)

    response = await client.post(
        "/api/v1/sync/queue/cleanup", params={"older_than_days": 0}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json() == {"deleted": 1, "older_than_days": 0}

    default = await client.post("/api/v1/sync/queue/cleanup", headers=admin_headers)
    assert default.json() == {"deleted": 0, "older_than_days": 7}
