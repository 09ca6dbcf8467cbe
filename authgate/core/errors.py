"""Exception types raised by the credential core.

Only lightweight, data-carrying exceptions live here so that the HTTP layer
can transform them into responses.  Every exception exposes a stable
machine-readable ``error_code`` plus a human ``description``; neither ever
contains a stack trace, a secret or an internal identifier.

``InvalidGrant`` and the token-validation family additionally carry an
internal ``reason`` which is meant for logs only.
"""

from __future__ import annotations

from typing import Optional


class AuthError(Exception):
    """Base class for all credential lifecycle failures."""

    error_code: str = "server_error"
    status_code: int = 500
    default_description: str = "The request could not be processed."

    def __init__(
        self,
        description: Optional[str] = None,
        *,
        reason: Optional[str] = None,
    ) -> None:
        self.description: str = description or self.default_description
        self.reason: Optional[str] = reason
        super().__init__(self.description)

    def to_payload(self) -> dict[str, str]:
        """Return a JSON-serialisable payload without internal detail."""
        return {"error": self.error_code, "error_description": self.description}


class InvalidRequest(AuthError):
    """Malformed or incomplete input."""

    error_code = "invalid_request"
    status_code = 400
    default_description = "The request is missing a parameter or is malformed."


class UnsupportedGrantType(AuthError):
    error_code = "unsupported_grant_type"
    status_code = 400
    default_description = "Only the authorization_code grant type is supported."


class InvalidClient(AuthError):
    """Unknown client or bad client credentials."""

    error_code = "invalid_client"
    status_code = 401
    default_description = "Client authentication failed."


class InvalidRedirect(AuthError):
    """Redirect URI does not match the client's registration."""

    error_code = "invalid_redirect_uri"
    status_code = 400
    default_description = "The redirect URI does not match the registered URI."


class InvalidGrant(AuthError):
    """Authorization code or refresh token is absent, expired or already used.

    The three causes are deliberately indistinguishable outside the process;
    ``reason`` records which one applied for the logs.
    """

    error_code = "invalid_grant"
    status_code = 400
    default_description = "The provided grant is invalid, expired, or has already been used."


class TokenValidationError(AuthError):
    """Base for every way a presented token can fail validation."""

    error_code = "invalid_token"
    status_code = 401
    default_description = "The access token is invalid."


class MalformedToken(TokenValidationError):
    pass


class SignatureInvalid(TokenValidationError):
    pass


class TokenExpired(TokenValidationError):
    pass


class TokenRevoked(TokenValidationError):
    pass


class InvalidToken(TokenValidationError):
    """Opaque access token is unknown or expired."""


class StoreUnavailable(AuthError):
    """Backing store failed or timed out; retryable, not a credential decision."""

    error_code = "temporarily_unavailable"
    status_code = 503
    default_description = "The service is temporarily unavailable. Please retry."
    retryable = True
