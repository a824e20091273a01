"""Application services: error classification, backoff, cursor store, job queue."""

from app.application.services.backoff_policy import BackoffPolicy, compute_delay
from app.application.services.cursor_store import CursorStore
from app.application.services.error_classifier import ErrorClassifier, classify_error
from app.application.services.job_queue import JobQueue

__all__ = [
    "BackoffPolicy",
    "CursorStore",
    "ErrorClassifier",
    "JobQueue",
    "classify_error",
    "compute_delay",
]
