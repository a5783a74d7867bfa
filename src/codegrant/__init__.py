"""OAuth2 authorization code grant with PKCE for httpx clients."""

from codegrant.client import OAuth2Client
from codegrant.grant import AuthorizationCodeGrant
from codegrant.models.config import GrantConfig
from codegrant.models.errors import (
    AuthorizationError,
    AuthorizationResponseError,
    ExpirationError,
    GrantStateError,
    OAuth2Error,
    RefreshError,
    StateValidationError,
    TokenResponseError,
)
from codegrant.models.flow import GrantState, GrantStep
from codegrant.models.tokens import Credentials

__all__ = [
    "AuthorizationCodeGrant",
    "AuthorizationError",
    "AuthorizationResponseError",
    "Credentials",
    "ExpirationError",
    "GrantConfig",
    "GrantState",
    "GrantStateError",
    "GrantStep",
    "OAuth2Client",
    "OAuth2Error",
    "RefreshError",
    "StateValidationError",
    "TokenResponseError",
]
