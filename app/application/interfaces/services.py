"""Service interfaces (ports) for the application layer.

Protocols define contracts for collaborators the sync core calls but does
not implement (DIP).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from app.domain.enums import SyncStage

if TYPE_CHECKING:
    from app.application.dtos.sync import SyncExecutionResult, SyncJobResult, SyncRequest


# Sync executor interface
class ISyncExecutor(Protocol):
    """Protocol for the provider round-trip (external collaborator).

    Implementations either return a result with success=False and an error,
    or raise; the dispatcher treats both as a failed attempt.
    """

    async def execute(self, request: SyncRequest) -> SyncExecutionResult:
        """Run one sync for request.account_id and report the outcome."""


# Progress publisher interface
class ISyncProgressPublisher(Protocol):
    """Protocol for publishing job lifecycle events (e.g. Redis pub/sub)."""

    async def publish_job_event(
        self,
        job: SyncJobResult,
        stage: SyncStage,
        error: str | None = None,
    ) -> bool:
        """Publish a job stage change. Return True if delivered."""
