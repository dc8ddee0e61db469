from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    DOMAIN_ERROR = "domain_error"
    NETWORK_ERROR = "network_error"
    SERVER_ERROR = "server_error"
    AUTH_EXPIRED = "auth_expired"
    SESSION_EXPIRED = "session_expired"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    VALIDATION_ERROR = "validation_error"
    STORAGE_ERROR = "storage_error"


GENERIC_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NETWORK_ERROR: "Unable to reach the server. Check your connection and try again later.",
    ErrorKind.SERVER_ERROR: "Something went wrong on our side. Try again later.",
    ErrorKind.AUTH_EXPIRED: "Your access has expired. Try again.",
    ErrorKind.SESSION_EXPIRED: "Your session has expired. Sign in again.",
    ErrorKind.PAYLOAD_TOO_LARGE: "This image is too large. Pick one up to 5MB.",
    ErrorKind.VALIDATION_ERROR: "Check the highlighted fields.",
    ErrorKind.STORAGE_ERROR: "Could not save your session on this device.",
}


class GymClientError(RuntimeError):
    """Base error carrying the classification assigned where the failure was detected."""

    kind: ErrorKind = ErrorKind.SERVER_ERROR

    def __init__(self, message: str, kind: ErrorKind | None = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def user_message(self) -> str:
        """Text safe to show in a transient notification."""
        if self.kind is ErrorKind.DOMAIN_ERROR:
            return str(self)
        return GENERIC_MESSAGES.get(self.kind, GENERIC_MESSAGES[ErrorKind.SERVER_ERROR])


class ApiHttpError(GymClientError):
    def __init__(self, status_code: int, message: str, kind: ErrorKind):
        super().__init__(message, kind)
        self.status_code = status_code


class CredentialStoreError(GymClientError):
    kind = ErrorKind.STORAGE_ERROR


class SessionExpiredError(GymClientError):
    kind = ErrorKind.SESSION_EXPIRED


class PayloadTooLargeError(GymClientError):
    kind = ErrorKind.PAYLOAD_TOO_LARGE

    def __init__(self, size: int, limit: int):
        super().__init__(f"Payload of {size} bytes exceeds the {limit} byte limit")
        self.size = size
        self.limit = limit

    @property
    def user_message(self) -> str:
        return f"This image is too large. Pick one up to {self.limit // (1024 * 1024)}MB."


class ValidationError(GymClientError):
    kind = ErrorKind.VALIDATION_ERROR

    def __init__(self, errors: dict[str, str]):
        super().__init__("Invalid fields: " + ", ".join(sorted(errors)))
        self.errors = dict(errors)


class PostRegistrationSignInError(GymClientError):
    """The account was created but the follow-up sign-in failed."""

    def __init__(self, cause: GymClientError):
        super().__init__(
            f"Account created but sign-in failed: {cause}",
            cause.kind,
        )
        self.cause = cause

    @property
    def user_message(self) -> str:
        return f"Your account was created, but we could not sign you in. {self.cause.user_message}"
