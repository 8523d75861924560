"""Exception taxonomy shared by the clients and the service layer."""

from __future__ import annotations

from typing import Optional


class NextStepError(Exception):
    """Base class for every error raised by this package."""


class ProviderError(NextStepError):
    """
    Raised when the identity provider fails.

    ``code`` follows the provider's ``auth/...`` naming so call sites can branch
    on specific conditions such as an expired token or rate limiting.
    """

    def __init__(self, message: str, *, code: str = "auth/internal-error") -> None:
        self.code = code
        super().__init__(message)


class NoIdentityError(ProviderError):
    """Raised when a token is requested without an authenticated identity."""

    def __init__(self, message: str = "No authenticated identity available.") -> None:
        super().__init__(message, code="auth/no-current-user")


class StoreError(NextStepError):
    """Raised when the document store rejects or fails an operation."""

    def __init__(self, message: str, *, code: str = "unknown") -> None:
        self.code = code
        super().__init__(message)


class StoreDeniedError(StoreError):
    """The store is reachable but policy denies the operation."""

    def __init__(self, message: str, *, code: str = "permission-denied") -> None:
        super().__init__(message, code=code)


class StoreUnavailableError(StoreError):
    """The store could not be reached or is temporarily unavailable."""

    def __init__(self, message: str, *, code: str = "unavailable") -> None:
        super().__init__(message, code=code)


class DocumentNotFoundError(StoreError):
    """A partial update targeted a document that does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="not-found")


class MalformedTokenError(NextStepError):
    """A bearer token could not be decoded locally."""


class FormValidationError(NextStepError):
    """User input failed validation."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(message)


class RedirectError(NextStepError):
    """A secure redirect could not be prepared."""


class RedemptionError(NextStepError):
    """A premium verification code could not be redeemed."""


AUTH_ERROR_MESSAGES: dict[str, str] = {
    "auth/email-already-in-use": "Email is already registered",
    "auth/invalid-email": "Invalid email address",
    "auth/weak-password": "Password is too weak",
    "auth/user-not-found": "No account found with this email",
    "auth/wrong-password": "Incorrect password",
    "auth/too-many-requests": "Too many login attempts. Please try again later.",
    "auth/network-request-failed": "Network error. Please check your connection.",
    "auth/internal-error": "An internal error occurred. Please try again.",
    "auth/invalid-credential": "Invalid login credentials",
    "auth/operation-not-allowed": "This login method is not enabled",
    "auth/user-disabled": "This account has been disabled",
    "auth/requires-recent-login": "Please log in again to continue",
    "auth/id-token-expired": "Session expired. Please log in again",
    "auth/no-current-user": "You must be logged in to continue",
    "permission-denied": "Missing or insufficient permissions",
    "resource-exhausted": "Database operation limit exceeded, please try again later",
    "unauthenticated": "Authentication required",
    "unavailable": "Service is currently unavailable, please try again later",
    "not-found": "The requested document was not found",
    "already-exists": "This document already exists",
    "deadline-exceeded": "Operation timed out",
    "cancelled": "Operation was cancelled",
    "data-loss": "Unrecoverable data loss or corruption",
    "unknown": "An unknown error occurred",
    "invalid-argument": "Invalid argument provided to operation",
    "failed-precondition": "Operation was rejected because the system is not in a state required",
    "aborted": "The operation was aborted",
}


def map_auth_error(error: Optional[BaseException]) -> str:
    """Return a user-facing message for a provider or store error."""
    code = getattr(error, "code", None)
    if code and code in AUTH_ERROR_MESSAGES:
        return AUTH_ERROR_MESSAGES[code]
    message = str(error) if error is not None else ""
    return message or "An unexpected error occurred"


__all__ = [
    "AUTH_ERROR_MESSAGES",
    "DocumentNotFoundError",
    "FormValidationError",
    "MalformedTokenError",
    "NextStepError",
    "NoIdentityError",
    "ProviderError",
    "RedemptionError",
    "RedirectError",
    "StoreDeniedError",
    "StoreError",
    "StoreUnavailableError",
    "map_auth_error",
]
