"""Application use cases: one entry point per workflow."""

from app.application.use_cases.sync import SyncDispatcher, SyncScheduler

__all__ = [
    "SyncDispatcher",
    "SyncScheduler",
]
