"""User email domain exceptions.

每个异常类定义自己的 http_status_code 和 error_code，请求层据此转换为用户可见的结果。
Verification failures are security signals; callers must not swallow them.
"""

from fastapi import status

from eloquentlog.core.domain.exceptions import (
    DomainException,
    DuplicateEntityError,
    EntityNotFoundError,
    InvalidStateError,
)


class UserEmailNotFoundError(EntityNotFoundError):
    """Raised when a user email record is not found."""

    def __init__(self, user_email_id: int | None = None) -> None:
        super().__init__("UserEmail", user_email_id)


class EmailAlreadyClaimedError(DuplicateEntityError):
    """Raised when the address already belongs to another record."""

    error_code = "EMAIL_ALREADY_CLAIMED"

    def __init__(self, email: str) -> None:
        super().__init__("UserEmail", "email", email)


class IdentificationNotPendingError(InvalidStateError):
    """Raised when issuing a token for a record that is already identified."""

    error_code = "IDENTIFICATION_NOT_PENDING"

    def __init__(self, user_email_id: int | None = None) -> None:
        super().__init__(
            f"UserEmail with id '{user_email_id}' is already identified"
        )


class IdentificationError(DomainException):
    """Base class for failures of a presented identification token."""

    error_code = "IDENTIFICATION_FAILED"
    reason: str = "failed"


class AlreadyIdentifiedError(IdentificationError):
    """Raised when the record has already been identified."""

    http_status_code = status.HTTP_409_CONFLICT
    error_code = "ALREADY_IDENTIFIED"
    reason = "already_identified"

    def __init__(self) -> None:
        super().__init__("Email has already been identified")


class NoPendingTokenError(IdentificationError):
    """Raised when no identification token has been issued."""

    error_code = "NO_PENDING_TOKEN"
    reason = "no_pending_token"

    def __init__(self) -> None:
        super().__init__("No identification token has been issued")


class TokenMismatchError(IdentificationError):
    """Raised when the presented token is not the active one."""

    error_code = "TOKEN_MISMATCH"
    reason = "token_mismatch"

    def __init__(self) -> None:
        super().__init__("Invalid identification token")


class TokenExpiredError(IdentificationError):
    """Raised when the active token has expired."""

    http_status_code = status.HTTP_410_GONE
    error_code = "TOKEN_EXPIRED"
    reason = "token_expired"

    def __init__(self) -> None:
        super().__init__("Identification token has expired")


class TransportError(DomainException):
    """Raised when the mail transport fails to deliver a message."""

    http_status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "EMAIL_TRANSPORT_ERROR"


class QueueUnavailableError(DomainException):
    """Raised when the job queue broker cannot be reached."""

    http_status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "QUEUE_UNAVAILABLE"


class JobNotFoundError(EntityNotFoundError):
    """Raised when acknowledging a job the queue no longer holds as claimed."""

    def __init__(self, job_id: str) -> None:
        super().__init__("Job", job_id)


class MissingEmailAddressError(InvalidStateError):
    """Raised when issuing a token for a record without an address."""

    error_code = "MISSING_EMAIL_ADDRESS"

    def __init__(self, user_email_id: int | None = None) -> None:
        super().__init__(f"UserEmail with id '{user_email_id}' has no email address")
