"""Error taxonomy with user-facing messages and a bounded diagnostic log.

Classification order:
1. HTTP status carried by the error (4xx user, 5xx system).
2. Keywords in the message (network conditions, validation failures).
3. Everything else is unknown, the only non-recoverable category.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Final

import structlog

from jpycwatch.constants.resilience import MAX_ERROR_LOGS
from jpycwatch.core.exceptions import RetryExhaustedError

log = structlog.get_logger(__name__)


class ErrorType(str, Enum):
    """Error categories."""

    USER_ERROR = "USER_ERROR"
    SYSTEM_ERROR = "SYSTEM_ERROR"
    BUSINESS_LOGIC_ERROR = "BUSINESS_LOGIC_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


SYSTEM_ERROR_KEYWORDS: Final[tuple[str, ...]] = (
    "timeout",
    "timed out",
    "network",
    "connection",
    "unavailable",
    "failed to fetch",
)
BUSINESS_LOGIC_ERROR_KEYWORDS: Final[tuple[str, ...]] = (
    "validation",
    "invalid",
    "integrity",
    "constraint",
    "required",
)

# (message prefix, user message, recoverable)
_TEMPLATES: Final[dict[ErrorType, tuple[str, str, bool]]] = {
    ErrorType.USER_ERROR: (
        "The request was rejected",
        "Please check your input. If the problem persists, try again.",
        True,
    ),
    ErrorType.SYSTEM_ERROR: (
        "A system error occurred",
        "Please try again in a moment. Contact support if the problem continues.",
        True,
    ),
    ErrorType.BUSINESS_LOGIC_ERROR: (
        "Data validation failed",
        "Some data could not be validated. Please check that it is in the expected format.",
        True,
    ),
    ErrorType.UNKNOWN_ERROR: (
        "An unexpected error occurred",
        "An unexpected error occurred. Please contact support if the problem persists.",
        False,
    ),
}


@dataclass
class ErrorLog:
    """One classified error.

    Attributes:
        type: Category.
        message: Diagnostic message (category prefix + original message).
        user_message: Fixed text suitable for end users.
        operation: Name of the operation that failed.
        timestamp: When the error was classified.
        recoverable: False only for unknown errors.
        original_error: The exception that was classified.
    """

    type: ErrorType
    message: str
    user_message: str
    operation: str
    recoverable: bool
    original_error: BaseException
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "user_message": self.user_message,
            "operation": self.operation,
            "timestamp": self.timestamp,
            "recoverable": self.recoverable,
            "error_class": type(self.original_error).__name__,
        }


def _http_status(error: BaseException) -> int | None:
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def categorize_error(error: BaseException) -> ErrorType:
    """Map an exception to its category.

    Retry exhaustion is classified by the error that caused it.
    """
    if isinstance(error, RetryExhaustedError):
        return categorize_error(error.last_error)

    status = _http_status(error)
    if status is not None:
        if 400 <= status < 500:
            return ErrorType.USER_ERROR
        if 500 <= status < 600:
            return ErrorType.SYSTEM_ERROR

    message = str(error).lower()
    if any(keyword in message for keyword in SYSTEM_ERROR_KEYWORDS):
        return ErrorType.SYSTEM_ERROR
    if any(keyword in message for keyword in BUSINESS_LOGIC_ERROR_KEYWORDS):
        return ErrorType.BUSINESS_LOGIC_ERROR
    return ErrorType.UNKNOWN_ERROR


def handle_error(error: BaseException, operation: str) -> ErrorLog:
    """Classify ``error`` and build its log record."""
    error_type = categorize_error(error)
    prefix, user_message, recoverable = _TEMPLATES[error_type]
    return ErrorLog(
        type=error_type,
        message=f"{prefix}: {error}",
        user_message=user_message,
        operation=operation,
        recoverable=recoverable,
        original_error=error,
    )


class ErrorClassifier:
    """Classifies errors and keeps the most recent ones in memory.

    The log holds at most ``max_logs`` entries, dropping the oldest first.
    It is never persisted.
    """

    def __init__(self, max_logs: int = MAX_ERROR_LOGS) -> None:
        self._logs: deque[ErrorLog] = deque(maxlen=max_logs)

    def log_error(self, error_log: ErrorLog) -> None:
        self._logs.append(error_log)
        log.error(
            "error_classified",
            operation=error_log.operation,
            type=error_log.type.value,
            recoverable=error_log.recoverable,
            error=str(error_log.original_error),
        )

    def handle(self, error: BaseException, operation: str) -> ErrorLog:
        """Classify ``error`` and record it."""
        error_log = handle_error(error, operation)
        self.log_error(error_log)
        return error_log

    def get_error_logs(self) -> list[ErrorLog]:
        return list(self._logs)

    def clear_error_logs(self) -> None:
        self._logs.clear()


_error_classifier: ErrorClassifier | None = None


def get_error_classifier() -> ErrorClassifier:
    """Get or create the process-wide classifier and its error log."""
    global _error_classifier

    if _error_classifier is None:
        _error_classifier = ErrorClassifier()

    return _error_classifier


def reset_error_classifier() -> None:
    """Reset the singleton (for testing)."""
    global _error_classifier
    _error_classifier = None
