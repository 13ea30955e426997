"""Exception types raised by the atweet OAuth core.

Only lightweight, **data-carrying** exceptions live here so that web/CLI layers
can transform them into HTTP responses or user-friendly messages.
"""

from __future__ import annotations


class AtweetError(Exception):
    """Base class for every error raised by the OAuth core."""


class ConfigurationError(AtweetError):
    """Raised at construction time when the client id or redirect URL is missing."""


class CsrfMismatchError(AtweetError):
    """Raised when a callback ``state`` does not match the session value."""


class StorageError(AtweetError):
    """Raised when the credential store cannot be locked or written."""


class ProviderTransportError(AtweetError):
    """Raised by the HTTP transport on network failures and non-2xx responses."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code: int | None = status_code


class AuthExpiredError(ProviderTransportError):
    """The provider rejected the bearer token (HTTP 401)."""

    def __init__(self, message: str = "Access token expired or revoked.") -> None:
        super().__init__(message, status_code=401)


class PermissionDeniedError(AtweetError):
    """Raised when a caller may not read the internal access endpoint."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason: str = reason

    def to_payload(self) -> dict[str, str]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {"error": "unauthorized"}
