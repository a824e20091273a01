"""Messaging: Redis pub/sub for sync job lifecycle events."""

from app.infrastructure.messaging.redis_pubsub import (
    SyncJobEvent,
    SyncProgressPublisher,
    get_sync_publisher,
    set_sync_publisher,
)

__all__ = [
    "SyncJobEvent",
    "SyncProgressPublisher",
    "get_sync_publisher",
    "set_sync_publisher",
]
