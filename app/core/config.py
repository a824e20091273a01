"""Application configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Backend-specific requirements (e.g. DATABASE_URL for
postgres) are validated at load time.
"""

from functools import lru_cache

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DATABASE_BACKENDS = ("postgres", "memory")
SCHEDULE_MODES = ("aggressive", "balanced", "conservative")


class Settings(BaseSettings):
    """Application settings loaded from environment and .env.

    Everything has a default; validate_backends_and_sync enforces the
    combinations that only fail at runtime otherwise.
    """

    # App
    app_name: str = "mailsync"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database: "postgres" (SQLAlchemy + Alembic) or "memory" (in-process, dev/tests)
    database_backend: str = "postgres"
    database_url: str = ""
    database_echo: bool = False
    # Optional pool/driver overrides (None = use defaults in database.py)
    db_pool_size: int | None = None
    db_max_overflow: int | None = None
    db_command_timeout: int | None = None
    db_disable_jit: bool = True

    # CORS
    allowed_origins: str = "http://localhost:3000,http://localhost:8080"

    # Request / middleware
    request_id_header: str = "X-Request-ID"
    correlation_id_header: str = "X-Correlation-ID"

    # Trigger endpoints (enqueue, cancel, cursor reset, auto-schedule, process,
    # cleanup) require X-Sync-Admin-Key; they answer 503 while this is unset.
    sync_admin_key: SecretStr | None = None
    # Push notifications: if set, POST /sync/accounts/{id}/webhook must send
    # X-Webhook-Signature-256: sha256=<hex(hmac_sha256(secret, body))>.
    sync_webhook_secret: SecretStr | None = None

    # Job queue and retries
    sync_max_retries: int = 5
    sync_backoff_base_seconds: float = 5.0
    sync_backoff_max_seconds: float = 3600.0
    sync_job_retention_days: int = 7

    # Scheduler
    sync_default_mode: str = "balanced"

    # Dispatcher
    sync_job_timeout_seconds: float = 1800.0  # deadline per job and reaper cutoff
    sync_inter_job_delay_seconds: float = 0.1
    sync_partial_failure_threshold: float = 0.25
    # When True, non-retryable errors (auth, invalid data) fail the job immediately.
    sync_fail_fast_non_retryable: bool = False
    # Background worker started by the app lifespan.
    sync_worker_enabled: bool = False
    sync_worker_poll_seconds: float = 30.0

    # Sync executor (HTTP worker that talks to the mail provider)
    sync_executor_url: str | None = None
    sync_executor_timeout_seconds: float = 300.0
    sync_executor_token: SecretStr | None = None

    # Redis (job progress pub/sub)
    redis_enabled: bool = False
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: SecretStr | None = None

    # OpenTelemetry
    telemetry_enabled: bool = False
    telemetry_exporter: str = "console"
    telemetry_otlp_endpoint: str | None = None
    telemetry_sample_rate: float = 1.0
    telemetry_environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_backends_and_sync(self) -> "Settings":
        """Validate backend choice and sync tuning values.

        - Postgres: DATABASE_URL required.
        - Memory: nothing required; state is lost on restart.
        """
        if self.database_backend not in DATABASE_BACKENDS:
            raise ValueError(
                f"database_backend must be one of {DATABASE_BACKENDS}, got: {self.database_backend!r}"
            )
        if self.database_backend == "postgres" and not self.database_url:
            raise ValueError(
                "DATABASE_URL is required when database_backend is 'postgres'. "
                "Set in environment or .env file, or use DATABASE_BACKEND=memory."
            )
        if self.sync_default_mode not in SCHEDULE_MODES:
            raise ValueError(
                f"sync_default_mode must be one of {SCHEDULE_MODES}, got: {self.sync_default_mode!r}"
            )
        if self.sync_max_retries < 0:
            raise ValueError("sync_max_retries must be >= 0")
        if self.sync_backoff_base_seconds <= 0:
            raise ValueError("sync_backoff_base_seconds must be > 0")
        if self.sync_backoff_max_seconds < self.sync_backoff_base_seconds:
            raise ValueError(
                "sync_backoff_max_seconds must be >= sync_backoff_base_seconds"
            )
        if not 0.0 <= self.sync_partial_failure_threshold <= 1.0:
            raise ValueError("sync_partial_failure_threshold must be between 0 and 1")
        if self.sync_job_timeout_seconds <= 0:
            raise ValueError("sync_job_timeout_seconds must be > 0")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
