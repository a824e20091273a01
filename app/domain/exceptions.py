"""Domain exceptions for the sync orchestrator.

Defines domain-level exceptions that represent business rule violations.
These exceptions are independent of infrastructure concerns. Presentation
layer maps them to HTTP responses in exception handlers.
"""

from collections.abc import Mapping
from typing import Any


class MailSyncException(Exception):
    """Base exception for all sync orchestrator errors.

    All custom exceptions should inherit from this class to allow
    consistent error handling and logging. Presentation layer maps
    these to HTTP responses using message, error_code, and details.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. field, resource_id).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON body used by the API exception handler."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(MailSyncException):
    """Raised when input validation fails (e.g. invalid format or range)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize with message and optional field name.

        Args:
            message: Description of the validation failure.
            field: Optional field or attribute that failed validation.
        """
        details = {"field": field} if field else {}
        super().__init__(message, "VALIDATION_ERROR", details)


class AuthenticationException(MailSyncException):
    """Raised when a caller fails to authenticate (e.g. bad admin key or webhook signature)."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message, "AUTHENTICATION_ERROR")


class ResourceNotFoundException(MailSyncException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource_type: str, resource_id: str) -> None:
        """Initialize with resource type and id.

        Args:
            resource_type: Type of resource (e.g. 'email_account', 'sync_job').
            resource_id: The ID that was not found.
        """
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            "RESOURCE_NOT_FOUND",
            {"resource_type": resource_type, "resource_id": resource_id},
        )


class JobAlreadyQueuedException(MailSyncException):
    """Raised when enqueueing for an account that already has a pending or in-progress job.

    Callers should treat this as "sync already in flight", not a fatal error.
    """

    def __init__(self, account_id: str, existing_job_id: str | None = None) -> None:
        details: dict[str, Any] = {"account_id": account_id}
        if existing_job_id:
            details["existing_job_id"] = existing_job_id
        super().__init__(
            "Sync job already queued or in progress",
            "JOB_ALREADY_QUEUED",
            details,
        )


class InvalidJobTransitionException(MailSyncException):
    """Raised when a job status change is not allowed from its current status."""

    def __init__(self, job_id: str, current_status: str, target_status: str) -> None:
        super().__init__(
            f"Cannot move sync job {job_id} from {current_status} to {target_status}",
            "INVALID_JOB_TRANSITION",
            {
                "job_id": job_id,
                "current_status": current_status,
                "target_status": target_status,
            },
        )


class SqlNotConfiguredException(MailSyncException):
    """Raised when an operation requires Postgres but the backend is not configured."""

    def __init__(self) -> None:
        super().__init__(
            message="This operation requires a SQL database that is not configured.",
            error_code="SERVICE_UNAVAILABLE",
        )


class SyncExecutorNotConfiguredException(MailSyncException):
    """Raised when queue processing is requested but no sync executor URL is set."""

    def __init__(self) -> None:
        super().__init__(
            message="Queue processing requires SYNC_EXECUTOR_URL to be configured.",
            error_code="SERVICE_UNAVAILABLE",
        )


class SyncExecutorException(MailSyncException):
    """Raised by executor adapters when the provider round-trip fails.

    Carries the HTTP status and response headers (when there was a response)
    so the error classifier can read status codes and Retry-After.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        self.headers = dict(headers or {})
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, "SYNC_EXECUTOR_ERROR", details)
