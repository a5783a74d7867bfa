"""Token request and credential models for the OAuth2 authorization code grant.

Contains the token endpoint request bodies (RFC 6749 Sections 4.1.3 and 6)
and the credentials produced by a successful exchange.
"""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass, field
from urllib.parse import quote_plus

from pydantic import BaseModel


def basic_auth_header(identifier: str, secret: str) -> str:
    """Build an HTTP Basic ``Authorization`` header value for client auth.

    RFC 6749 Section 2.3.1 requires both parts to be form-urlencoded before
    they are joined.
    """
    user_pass = f"{quote_plus(identifier)}:{quote_plus(secret)}"
    encoded = base64.b64encode(user_pass.encode("utf-8")).decode("ascii")
    return f"Basic {encoded}"


@dataclass(frozen=True)
class ClientAuthentication:
    """How the client authenticates itself at the token endpoint."""

    client_id: str | None
    client_secret: str | None = None
    basic_auth: bool = True

    def apply(self, headers: dict[str, str], data: dict[str, str]) -> None:
        """Add client credentials to a token request, in place.

        With basic auth and a secret the credentials go into the
        ``Authorization`` header. Otherwise ``client_id`` is always sent in
        the body, even without a secret, plus ``client_secret`` if one is set.
        """
        use_basic_auth = (
            self.basic_auth
            and self.client_id is not None
            and self.client_secret is not None
        )
        if use_basic_auth:
            headers["Authorization"] = basic_auth_header(
                self.client_id, self.client_secret
            )
        else:
            if self.client_id is not None:
                data["client_id"] = self.client_id
            if self.client_secret is not None:
                data["client_secret"] = self.client_secret


@dataclass(frozen=True)
class TokenRequest:
    """OAuth2 token exchange request parameters (RFC 6749 Section 4.1.3).

    Includes the PKCE code_verifier (RFC 7636).
    """

    token_endpoint: str
    code: str
    redirect_uri: str | None
    code_verifier: str
    client: ClientAuthentication
    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for an application/x-www-form-urlencoded body.

        Client credentials are not included here, see ``build``.
        """
        data = {
            "grant_type": self.grant_type,
            "code": self.code,
            "code_verifier": self.code_verifier,
        }
        if self.redirect_uri is not None:
            data["redirect_uri"] = self.redirect_uri
        return data

    def build(self) -> tuple[dict[str, str], dict[str, str]]:
        """Return the ``(headers, form_data)`` pair to POST."""
        headers: dict[str, str] = {"Accept": "application/json"}
        data = self.to_form_data()
        self.client.apply(headers, data)
        return headers, data


@dataclass(frozen=True)
class RefreshTokenRequest:
    """OAuth2 refresh token request parameters (RFC 6749 Section 6)."""

    token_endpoint: str
    refresh_token: str
    client: ClientAuthentication
    scopes: list[str] = field(default_factory=list)
    delimiter: str = " "
    grant_type: str = "refresh_token"

    def to_form_data(self) -> dict[str, str]:
        data = {
            "grant_type": self.grant_type,
            "refresh_token": self.refresh_token,
        }
        if self.scopes:
            data["scope"] = self.delimiter.join(self.scopes)
        return data

    def build(self) -> tuple[dict[str, str], dict[str, str]]:
        headers: dict[str, str] = {"Accept": "application/json"}
        data = self.to_form_data()
        self.client.apply(headers, data)
        return headers, data


class Credentials(BaseModel):
    """Credentials issued by the token endpoint.

    Owned by the caller once the exchange completes; serialize with
    ``to_json`` to keep them between runs.
    """

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    token_endpoint: str | None = None
    scopes: list[str] | None = None
    expires_at: float | None = None  # Unix timestamp

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False  # No expiry means token doesn't expire
        return time.time() >= self.expires_at

    @property
    def can_refresh(self) -> bool:
        return self.refresh_token is not None and self.token_endpoint is not None

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> Credentials:
        return cls.model_validate_json(data)
