"""Exception hierarchy for the OAuth2 authorization code grant.

Provides specific exception types for different failure modes so callers can
tell caller bugs, malformed server responses and server-reported failures
apart. Transport failures are not wrapped: ``httpx.HTTPError`` propagates
unchanged.
"""

from __future__ import annotations


class OAuth2Error(Exception):
    """Base exception for all OAuth2 related errors."""

    pass


class GrantStateError(OAuth2Error, RuntimeError):
    """Raised when a grant operation is called out of order.

    This is a programming error in the caller, not a protocol failure.
    """

    pass


class AuthorizationResponseError(OAuth2Error):
    """Raised when the authorization callback is malformed or invalid."""

    pass


class StateValidationError(AuthorizationResponseError):
    """Raised when OAuth state parameter validation fails.

    This indicates either a missing state parameter or a state mismatch,
    which could indicate a CSRF attack or authorization server issue.
    """

    pass


class TokenResponseError(OAuth2Error):
    """Raised when the token endpoint returns a malformed response."""

    pass


class ExpirationError(OAuth2Error):
    """Raised when credentials have expired and cannot be refreshed."""

    def __init__(self, expires_at: float | None):
        self.expires_at = expires_at
        super().__init__(
            f"OAuth2 credentials have expired and can't be refreshed "
            f"(expired at {expires_at})."
        )


class RefreshError(OAuth2Error, RuntimeError):
    """Raised when a refresh is requested for credentials that can't be refreshed.

    Like ``GrantStateError`` this is a caller error, not a protocol failure.
    """

    pass


class AuthorizationError(OAuth2Error):
    """Raised when the authorization server reports an error.

    Carries the RFC 6749 error code plus the optional human readable
    description and information URI, suitable for showing to end users.
    """

    def __init__(
        self,
        error: str,
        description: str | None = None,
        uri: str | None = None,
    ):
        self.error = error
        self.description = description
        self.uri = uri
        super().__init__(str(self))

    def __str__(self) -> str:
        message = f"OAuth authorization error ({self.error})"
        if self.description:
            message += f": {self.description}"
        if self.uri:
            message += f" ({self.uri})"
        return message
