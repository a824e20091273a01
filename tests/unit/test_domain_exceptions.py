"""Tests for domain exceptions (error_code, message, details) and their HTTP mapping."""

import pytest

from app.core.exception_handlers import status_for
from app.domain.exceptions import (
    AuthenticationException,
    InvalidJobTransitionException,
    JobAlreadyQueuedException,
    MailSyncException,
    ResourceNotFoundException,
    SqlNotConfiguredException,
    SyncExecutorException,
    SyncExecutorNotConfiguredException,
    ValidationException,
)


def test_base_exception_default_error_code() -> None:
    """Base MailSyncException uses class name as error_code when not provided."""
    exc = MailSyncException("Something failed")
    assert exc.message == "Something failed"
    assert exc.error_code == "MailSyncException"
    assert exc.details == {}
    assert str(exc) == "Something failed"


def test_to_dict_shape() -> None:
    """to_dict is the API error body."""
    exc = MailSyncException("Oops", error_code="CUSTOM", details={"key": "value"})
    assert exc.to_dict() == {
        "error": "CUSTOM",
        "message": "Oops",
        "details": {"key": "value"},
    }


def test_validation_exception_with_field() -> None:
    exc = ValidationException("Invalid priority", field="priority")
    assert exc.error_code == "VALIDATION_ERROR"
    assert exc.details == {"field": "priority"}


def test_resource_not_found() -> None:
    exc = ResourceNotFoundException("email_account", "acc-1")
    assert exc.message == "email_account not found: acc-1"
    assert exc.error_code == "RESOURCE_NOT_FOUND"
    assert exc.details == {"resource_type": "email_account", "resource_id": "acc-1"}


def test_job_already_queued_carries_existing_job() -> None:
    exc = JobAlreadyQueuedException("acc-1", "job-9")
    assert exc.error_code == "JOB_ALREADY_QUEUED"
    assert exc.details == {"account_id": "acc-1", "existing_job_id": "job-9"}


def test_job_already_queued_without_existing_job() -> None:
    """The SQL backend may not know which job won the race."""
    exc = JobAlreadyQueuedException("acc-1")
    assert exc.details == {"account_id": "acc-1"}


def test_invalid_transition_details() -> None:
    exc = InvalidJobTransitionException("job-1", "completed", "in_progress")
    assert "completed" in exc.message and "in_progress" in exc.message
    assert exc.details["current_status"] == "completed"


def test_sync_executor_exception_keeps_status_and_headers() -> None:
    exc = SyncExecutorException("Too many requests", status_code=429, headers={"Retry-After": "30"})
    assert exc.status_code == 429
    assert exc.headers == {"Retry-After": "30"}
    assert exc.details == {"status_code": 429}


@pytest.mark.parametrize(
    ("exc", "status"),
    [
        (ResourceNotFoundException("sync_job", "x"), 404),
        (AuthenticationException(), 401),
        (ValidationException("bad"), 400),
        (JobAlreadyQueuedException("a"), 409),
        (InvalidJobTransitionException("j", "failed", "completed"), 409),
        (SqlNotConfiguredException(), 503),
        (SyncExecutorNotConfiguredException(), 503),
        (SyncExecutorException("boom"), 502),
        (MailSyncException("other"), 400),
    ],
)
def test_http_status_mapping(exc: MailSyncException, status: int) -> None:
    assert status_for(exc) == status
