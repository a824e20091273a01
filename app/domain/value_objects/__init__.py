"""Domain value objects and shared value types."""

from app.domain.value_objects.sync import AccountActivity, ErrorInfo, Schedule

__all__ = [
    "AccountActivity",
    "ErrorInfo",
    "Schedule",
]
