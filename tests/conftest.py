"""Pytest configuration and fixtures for mailsync.

Uses app.main:app for HTTP tests with the in-memory backend wired onto
app.state.sync, and app.infrastructure.persistence.database for
Postgres-dependent fixtures. All imports use app.*.
"""

import os

# Settings are read when app.main is imported; defaults for a DB-less run.
os.environ.setdefault("DATABASE_BACKEND", "memory")
os.environ.setdefault("SYNC_ADMIN_KEY", "test-sync-admin-key")
os.environ.setdefault("SYNC_WEBHOOK_SECRET", "test-webhook-secret")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

import app.infrastructure.persistence.database as database  # noqa: E402
from app.application.services.backoff_policy import BackoffPolicy  # noqa: E402
from app.application.services.cursor_store import CursorStore  # noqa: E402
from app.application.services.job_queue import JobQueue  # noqa: E402
from app.core.config import get_settings  # noqa: E402
from app.core.limiter import limiter  # noqa: E402
from app.infrastructure.composition import SyncContainer, build_sync_container  # noqa: E402
from app.infrastructure.persistence.memory import (  # noqa: E402
    InMemoryEmailAccountRepository,
    InMemorySyncJobRepository,
    InMemorySyncStore,
)
from app.main import app  # noqa: E402
from tests.fakes import FakeExecutor  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings_and_limits():
    """Each test starts with settings from the current env and empty rate-limit counters."""
    get_settings.cache_clear()
    limiter.reset()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store() -> InMemorySyncStore:
    """Empty in-memory backend."""
    return InMemorySyncStore()


@pytest.fixture
def account_repo(store: InMemorySyncStore) -> InMemoryEmailAccountRepository:
    return InMemoryEmailAccountRepository(store)


@pytest.fixture
def job_repo(store: InMemorySyncStore) -> InMemorySyncJobRepository:
    return InMemorySyncJobRepository(store)


@pytest.fixture
def backoff() -> BackoffPolicy:
    """Backoff without jitter: attempt n waits exactly 5 * 2^(n-1) seconds."""
    return BackoffPolicy(base_seconds=5.0, max_seconds=3600.0, random_fn=lambda: 0.5)


@pytest.fixture
def job_queue(job_repo: InMemorySyncJobRepository, backoff: BackoffPolicy) -> JobQueue:
    return JobQueue(job_repo, backoff, default_max_retries=5)


@pytest.fixture
def cursor_store(account_repo: InMemoryEmailAccountRepository) -> CursorStore:
    return CursorStore(account_repo)


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def container(store: InMemorySyncStore, executor: FakeExecutor) -> SyncContainer:
    """Memory-backed container with the fake executor and no inter-job delay."""
    settings = get_settings().model_copy(
        update={"database_backend": "memory", "sync_inter_job_delay_seconds": 0.0}
    )
    return build_sync_container(settings, executor=executor, memory_store=store)


@pytest.fixture
async def client(container: SyncContainer) -> AsyncClient:
    """Async HTTP client against the FastAPI app (ASGI), wired to the test container."""
    app.state.sync = container
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.state.sync = None


@pytest.fixture
def admin_headers() -> dict[str, str]:
    """Headers accepted by the trigger endpoints."""
    return {"X-Sync-Admin-Key": os.environ["SYNC_ADMIN_KEY"]}


@pytest.fixture
async def session_factory():
    """SQL session factory for repository integration tests.

    Requires DATABASE_BACKEND=postgres and DATABASE_URL with migrations
    applied (alembic upgrade head). Skips when Postgres is not configured.
    Use @pytest.mark.requires_db to mark tests that need this fixture; run
    without DB via: pytest -m 'not requires_db'.
    """
    database._ensure_engine()
    if database.AsyncSessionLocal is None:
        pytest.skip(
            "Postgres not configured: set DATABASE_BACKEND=postgres and DATABASE_URL, "
            "then run: alembic upgrade head"
        )
    yield database.AsyncSessionLocal
    await database.dispose_engine()
