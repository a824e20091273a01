"""Redis Pub/Sub for sync job lifecycle events.

Publishes one message per job stage change (started, completed,
retry_scheduled, failed) on a per-account channel so dashboards and
clients can follow a sync without polling the queue.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

import redis.asyncio as redis

from app.core.config import get_settings
from app.domain.enums import SyncStage
from app.shared.utils.datetime import utc_now

if TYPE_CHECKING:
    from app.application.dtos.sync import SyncJobResult

logger = logging.getLogger(__name__)


@dataclass
class SyncJobEvent:
    """Job event payload for Redis."""

    job_id: str
    account_id: str
    job_type: str
    stage: SyncStage
    status: str
    retry_count: int
    max_retries: int
    timestamp: str
    scheduled_for: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON publish."""
        data = asdict(self)
        data["stage"] = self.stage.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncJobEvent:
        """Deserialize from Redis message."""
        data = dict(data)
        data["stage"] = SyncStage(data["stage"])
        return cls(**data)

    @classmethod
    def from_job(
        cls, job: SyncJobResult, stage: SyncStage, error: str | None = None
    ) -> SyncJobEvent:
        return cls(
            job_id=job.id,
            account_id=job.account_id,
            job_type=job.job_type.value,
            stage=stage,
            status=job.status.value,
            retry_count=job.retry_count,
            max_retries=job.max_retries,
            timestamp=utc_now().isoformat(),
            scheduled_for=(
                job.scheduled_for.isoformat() if stage == SyncStage.RETRY_SCHEDULED else None
            ),
            error=error,
        )


class SyncProgressPublisher:
    """Publishes job events to Redis. Implements ISyncProgressPublisher.

    Publishing is best effort: when Redis is down the dispatcher carries on
    and publish_job_event returns False.
    """

    CHANNEL_PREFIX = "sync_jobs"

    def __init__(self, redis_client: redis.Redis | None = None) -> None:
        """Initialize. Pass redis_client for DI/testing."""
        self.redis = redis_client
        self.settings = get_settings()
        self._connected = redis_client is not None

    async def connect(self) -> None:
        """Establish Redis connection. Call on app startup."""
        if self._connected:
            return
        if self.redis is None:
            try:
                self.redis = redis.Redis(
                    host=self.settings.redis_host,
                    port=self.settings.redis_port,
                    db=self.settings.redis_db,
                    password=self.settings.redis_password.get_secret_value() if self.settings.redis_password else None,
                    decode_responses=True,
                    socket_connect_timeout=5,
                )
                await self.redis.ping()
                self._connected = True
                logger.info("Redis pub/sub connected")
            except (redis.ConnectionError, redis.TimeoutError) as e:
                logger.warning("Redis pub/sub connection failed: %s", e)
                self._connected = False
                self.redis = None

    async def disconnect(self) -> None:
        """Close Redis connection. Call on app shutdown."""
        if self.redis:
            await self.redis.aclose()
            self._connected = False
            logger.info("Redis pub/sub disconnected")

    def is_available(self) -> bool:
        """Return True if Redis is connected."""
        return self._connected and self.redis is not None

    def channel_for(self, account_id: str) -> str:
        """Channel name for an account."""
        return f"{self.CHANNEL_PREFIX}:{account_id}"

    async def publish(self, event: SyncJobEvent) -> bool:
        """Publish a job event on the account's channel.

        Returns:
            True if published, False if Redis unavailable or the publish failed.
        """
        if not self.is_available() or self.redis is None:
            logger.debug("Redis not available, skipping publish")
            return False
        try:
            channel = self.channel_for(event.account_id)
            await self.redis.publish(channel, json.dumps(event.to_dict()))
            logger.debug("Published job event to %s: %s", channel, event.stage.value)
        except Exception:
            logger.exception("Failed to publish sync job event")
            return False
        else:
            return True

    async def publish_job_event(
        self, job: SyncJobResult, stage: SyncStage, error: str | None = None
    ) -> bool:
        """Publish a job stage change."""
        return await self.publish(SyncJobEvent.from_job(job, stage, error))


_publisher: SyncProgressPublisher | None = None


def get_sync_publisher() -> SyncProgressPublisher | None:
    """Return the global job event publisher (set at startup)."""
    return _publisher


def set_sync_publisher(publisher: SyncProgressPublisher | None) -> None:
    """Set the global job event publisher."""
    global _publisher
    _publisher = publisher
