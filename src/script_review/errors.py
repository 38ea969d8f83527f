"""Error taxonomy shared by every component.

Each exception carries a closed `ErrorKind`. Callers branch on the kind (or the
subclass), never on message text. `http_status` mirrors how the HTTP surface
renders the error.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    INVALID_ARGUMENT = "invalid_argument"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    FAILED_PRECONDITION = "failed_precondition"
    UPSTREAM_ERROR = "upstream_error"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    INTERNAL = "internal"


_HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_ARGUMENT: 400,
    ErrorKind.PAYLOAD_TOO_LARGE: 413,
    ErrorKind.FAILED_PRECONDITION: 422,
    ErrorKind.UPSTREAM_ERROR: 502,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.INTERNAL: 500,
}


class ReviewError(Exception):
    """Base exception for all classified errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    retryable: bool = False

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.kind]

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.kind.value, "message": self.message}


class InvalidArgumentError(ReviewError):
    """Bad input; not retryable."""

    kind = ErrorKind.INVALID_ARGUMENT


class PayloadTooLargeError(ReviewError):
    """Input exceeds a size limit; the caller must reduce it."""

    kind = ErrorKind.PAYLOAD_TOO_LARGE

    def __init__(self, what: str, size: int, limit: int) -> None:
        super().__init__(f"{what} too large: {size} chars (maximum {limit} chars)")
        self.size = size
        self.limit = limit


class FailedPreconditionError(ReviewError):
    """Produced results are unusable; retryable after caller action."""

    kind = ErrorKind.FAILED_PRECONDITION
    retryable = True


class UpstreamError(ReviewError):
    """Provider-side failure (rate limit, quota, timeout, outage)."""

    kind = ErrorKind.UPSTREAM_ERROR
    retryable = True


class NotFoundError(ReviewError):
    kind = ErrorKind.NOT_FOUND


class PermissionDeniedError(ReviewError):
    kind = ErrorKind.PERMISSION_DENIED


class InternalError(ReviewError):
    kind = ErrorKind.INTERNAL


def to_http_error(exc: Exception) -> tuple[int, dict[str, Any]]:
    """Render any exception as `(status, body)`; unclassified errors become internal."""
    if isinstance(exc, ReviewError):
        return exc.http_status, exc.to_dict()
    return 500, {"code": ErrorKind.INTERNAL.value, "message": "Internal error"}
