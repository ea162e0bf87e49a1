"""Exception hierarchy for the ledger functions.

Every error carries a machine-readable ``code`` (the callable-function
error codes the apps switch on) and a short ``error`` label. The message is
for people and must not be used for control flow.
"""

from enum import StrEnum


class ErrorCode(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    INVALID_ARGUMENT = "invalid-argument"
    NOT_FOUND = "not-found"
    PERMISSION_DENIED = "permission-denied"
    FAILED_PRECONDITION = "failed-precondition"
    RESOURCE_EXHAUSTED = "resource-exhausted"
    ABORTED = "aborted"


class KidTimeError(Exception):
    """Base class for all KidTime ledger errors."""

    code: ErrorCode = ErrorCode.FAILED_PRECONDITION
    error: str = "Request failed"

    def __init__(self, message: str, error: str | None = None):
        super().__init__(message)
        self.message = message
        if error is not None:
            self.error = error


class UnauthenticatedError(KidTimeError):
    """Raised when an operation is called without a signed-in caller."""

    code = ErrorCode.UNAUTHENTICATED
    error = "Sign in required"


class InvalidArgumentError(KidTimeError):
    """Raised when a payload fails validation."""

    code = ErrorCode.INVALID_ARGUMENT
    error = "Invalid argument"


class NotFoundError(KidTimeError):
    """Raised when a request, child or submission lookup fails."""

    code = ErrorCode.NOT_FOUND
    error = "Not found"


class PermissionDeniedError(KidTimeError):
    """Raised when the caller may not act on the target child."""

    code = ErrorCode.PERMISSION_DENIED
    error = "Permission denied"


class FailedPreconditionError(KidTimeError):
    """Raised when a record is not in a state that allows the operation."""

    code = ErrorCode.FAILED_PRECONDITION
    error = "Failed precondition"


class ResourceExhaustedError(KidTimeError):
    """Raised when a daily limit has been reached."""

    code = ErrorCode.RESOURCE_EXHAUSTED
    error = "Daily limit exceeded"
