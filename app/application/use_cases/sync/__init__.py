"""Sync orchestration use cases: scheduling and queue dispatch."""

from app.application.use_cases.sync.process_queue import SyncDispatcher, build_sync_request
from app.application.use_cases.sync.schedule_sync import SyncScheduler, determine_schedule

__all__ = [
    "SyncDispatcher",
    "SyncScheduler",
    "build_sync_request",
    "determine_schedule",
]
