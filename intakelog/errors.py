"""
Domain errors raised by the validator, services and stores.

Every error carries a `status_code` so the transports can map it to a
response in one place. None of these are fatal to the process and none
are retried by the service layer.
"""

from typing import Optional


class ConsumptionError(Exception):
    """Base class for all errors surfaced to callers."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidEventError(ConsumptionError):
    """A submitted event failed structural or domain validation."""

    def __init__(self, field: Optional[str], reason: str = "missing or invalid"):
        if field:
            message = f"Invalid event: {field} {reason}"
        else:
            message = f"Invalid event: {reason}"
        super().__init__(message)
        self.field = field


class InvalidQueryError(ConsumptionError):
    """A list/summarize filter was malformed (e.g. a bad date bound)."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid query: {field} {reason}")
        self.field = field


class BatchTooLargeError(ConsumptionError):
    """A log_consumption batch exceeded `MAX_BATCH_SIZE`."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Too many events in one request: {size} (max {limit})")
        self.size = size
        self.limit = limit


class UnknownOperationError(ConsumptionError):
    """The caller asked for an operation that is not exposed."""

    def __init__(self, name: Optional[str]):
        super().__init__(f"Unknown or missing tool: {name!r}" if name else "Unknown or missing tool")
        self.name = name


class StorageFailureError(ConsumptionError):
    """The backing store could not complete a read or write."""

    status_code = 500

    def __init__(self, operation: str, cause: Exception):
        super().__init__(f"Storage failure during {operation}: {cause}")
        self.operation = operation
        self.cause = cause
