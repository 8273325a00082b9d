"""Typed errors raised by the progression engine and its stores.

Every error carries a stable ``error_code`` and an ``is_retryable`` hint so
callers can split terminal failures (bad event, missing record) from
transient ones (contention, storage outage) without string matching.
"""

from datetime import date
from typing import Any


class ProgressionError(Exception):
    """Base class for all progression errors."""

    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        is_retryable: bool | None = None,
        error_code: str | None = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.is_retryable = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code = error_code or self.__class__.__name__
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a JSON-friendly dict."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"


class InvalidEvent(ProgressionError):
    """Unknown event kind or malformed payload. Rejected before any I/O."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details=details, error_code="INVALID_EVENT")


class OutOfOrderEvent(ProgressionError):
    """Activity date is earlier than the last recorded activity date."""

    def __init__(self, last_activity_date: date, activity_date: date) -> None:
        self.last_activity_date = last_activity_date
        self.activity_date = activity_date
        super().__init__(
            f"Activity on {activity_date.isoformat()} precedes last recorded "
            f"activity on {last_activity_date.isoformat()}",
            details={
                "last_activity_date": last_activity_date.isoformat(),
                "activity_date": activity_date.isoformat(),
            },
            error_code="OUT_OF_ORDER_EVENT",
        )


class ProgressionNotFound(ProgressionError):
    """No progression record exists for the user."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(
            f"No progression record for user {user_id}",
            details={"user_id": user_id},
            error_code="PROGRESSION_NOT_FOUND",
        )


class ProgressionAlreadyExists(ProgressionError):
    """A progression record was created twice for the same user."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(
            f"Progression record for user {user_id} already exists",
            details={"user_id": user_id},
            error_code="PROGRESSION_ALREADY_EXISTS",
        )


class VersionConflict(ProgressionError):
    """Stored version no longer matches the version the caller loaded."""

    DEFAULT_RETRYABLE = True

    def __init__(self, user_id: int, expected_version: int) -> None:
        self.user_id = user_id
        self.expected_version = expected_version
        super().__init__(
            f"Version conflict for user {user_id} (expected {expected_version})",
            details={"user_id": user_id, "expected_version": expected_version},
            error_code="VERSION_CONFLICT",
        )


class ConcurrentUpdateExceeded(ProgressionError):
    """Every compare-and-swap attempt lost to a concurrent writer."""

    DEFAULT_RETRYABLE = True

    def __init__(self, user_id: int, attempts: int) -> None:
        self.user_id = user_id
        self.attempts = attempts
        super().__init__(
            f"Gave up updating user {user_id} after {attempts} conflicting attempts",
            details={"user_id": user_id, "attempts": attempts},
            error_code="CONCURRENT_UPDATE_EXCEEDED",
        )


class StorageUnavailable(ProgressionError):
    """The backing store failed for infrastructure reasons."""

    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        super().__init__(
            f"Storage unavailable during {operation}: {reason}",
            details={"operation": operation},
            error_code="STORAGE_UNAVAILABLE",
        )


class ProgressionStateRejected(ProgressionError):
    """The store refused a state that breaks a table constraint."""

    def __init__(self, user_id: int, reason: str) -> None:
        self.user_id = user_id
        super().__init__(
            f"Store rejected progression state for user {user_id}: {reason}",
            details={"user_id": user_id},
            error_code="PROGRESSION_STATE_REJECTED",
        )


class CatalogConfigurationError(ProgressionError):
    """The badge catalog definition list is invalid."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details=details, error_code="CATALOG_CONFIGURATION")
