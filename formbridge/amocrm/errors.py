"""amoCRM error hierarchy."""

from __future__ import annotations


class AmoError(Exception):
    """Base exception for amoCRM errors."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        self.message = message
        self.status_code = status_code
        self.body = body
        super().__init__(self.message)


class AmoConfigError(AmoError):
    """A required setting is missing (no usable access token)."""


class AmoAuthError(AmoError):
    """amoCRM rejected our credentials even after a refresh."""


class OAuthError(AmoAuthError):
    """The token endpoint refused an exchange or refresh."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        error_code: str | None = None,
    ):
        super().__init__(message, status_code, body)
        self.error_code = error_code


class AmoRequestError(AmoError):
    """Any other non-2xx response from amoCRM."""
