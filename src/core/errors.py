"""Error taxonomy for the lifecycle engine."""

from enum import Enum


class ErrorCategory(Enum):
    """Categories of failures the engine distinguishes."""

    TRANSIENT_STORE = "transient_store"
    DATA_INTEGRITY = "data_integrity"
    BATCH_FAILURE = "batch_failure"
    NOTIFICATION_FAILURE = "notification_failure"
    UNKNOWN = "unknown"


class DatabaseError(RuntimeError):
    """Document store operation failed."""


class RecordNotFoundError(DatabaseError, KeyError):
    """Requested document does not exist."""

    def __str__(self) -> str:
        # KeyError quotes its message; keep the plain text
        return str(self.args[0]) if self.args else ""


class BatchCommitError(DatabaseError):
    """An atomic batch write was rolled back."""


class TriggerFailedError(RuntimeError):
    """A scheduled trigger invocation failed and must be reported upstream."""

    def __init__(self, trigger: str, cause: str) -> None:
        self.trigger = trigger
        self.cause = cause
        super().__init__(f"Trigger '{trigger}' failed: {cause}")


_TRANSIENT_PHRASES = (
    "database is locked",
    "timeout",
    "timed out",
    "connection",
    "unavailable",
    "disk i/o error",
)

_TRANSIENT_TYPES = {"ConnectionError", "TimeoutError", "OperationalError"}


def is_transient(exception: BaseException) -> bool:
    """Return True if the error is worth retrying at single-call granularity."""
    if isinstance(exception, RecordNotFoundError | BatchCommitError):
        return False
    if isinstance(exception, ConnectionError | TimeoutError):
        return True

    error_str = str(exception).lower()
    exception_type = type(exception).__name__
    cause = exception.__cause__
    if cause is not None and type(cause).__name__ in _TRANSIENT_TYPES:
        return True
    return exception_type in _TRANSIENT_TYPES or any(phrase in error_str for phrase in _TRANSIENT_PHRASES)


def classify_store_error(exception: BaseException) -> ErrorCategory:
    """Classify a failure raised while talking to the document store.

    Args:
        exception: The exception raised by a store call

    Returns:
        The matching ErrorCategory
    """
    if isinstance(exception, BatchCommitError):
        return ErrorCategory.BATCH_FAILURE
    if isinstance(exception, RecordNotFoundError):
        return ErrorCategory.DATA_INTEGRITY
    if is_transient(exception):
        return ErrorCategory.TRANSIENT_STORE
    return ErrorCategory.UNKNOWN
