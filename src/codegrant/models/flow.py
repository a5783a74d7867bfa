"""Authorization flow models for the OAuth2 authorization code grant.

Contains the grant lifecycle state, the authorization request that builds the
redirect URL, the parsed authorization callback, and the resumable step
snapshot.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel

from codegrant.models.errors import (
    AuthorizationError,
    AuthorizationResponseError,
    GrantStateError,
)
from codegrant.primitives.parameters import check_error_uri
from codegrant.primitives.pkce import CODE_CHALLENGE_METHOD
from codegrant.services.security import validate_state


class GrantState(str, Enum):
    """Lifecycle states of an authorization code grant.

    The lifecycle only moves forward (initial -> awaiting_response ->
    finished) until it is explicitly reset.
    """

    INITIAL = "initial"
    AWAITING_RESPONSE = "awaiting_response"
    FINISHED = "finished"

    def ensure_can_request_url(self) -> None:
        if self is not GrantState.INITIAL:
            raise GrantStateError("The authorization URL has already been generated.")

    def ensure_can_handle_response(self) -> None:
        if self is GrantState.INITIAL:
            raise GrantStateError("The authorization URL has not yet been generated.")
        if self is GrantState.FINISHED:
            raise GrantStateError("The authorization code has already been received.")


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters (RFC 6749 Section 4.1.1, RFC 7636)."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    code_challenge: str
    code_challenge_method: str = CODE_CHALLENGE_METHOD
    state: str | None = None
    scopes: tuple[str, ...] = ()
    delimiter: str = " "

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL.

        Query parameters already present on the authorization endpoint are
        kept; protocol parameters with the same name replace them.
        """
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "code_challenge": self.code_challenge,
            "code_challenge_method": self.code_challenge_method,
        }

        if self.state is not None:
            params["state"] = self.state
        if self.scopes:
            params["scope"] = self.delimiter.join(self.scopes)

        parts = urlsplit(self.authorization_endpoint)
        query = dict(parse_qsl(parts.query, keep_blank_values=True))
        query.update(params)

        return urlunsplit(parts._replace(query=urlencode(query)))


@dataclass(frozen=True)
class AuthorizationResponse:
    """Query parameters delivered to the redirect URI by the authorization server."""

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> AuthorizationResponse:
        return cls(
            code=params.get("code"),
            state=params.get("state"),
            error=params.get("error"),
            error_description=params.get("error_description"),
            error_uri=params.get("error_uri"),
        )

    def is_error(self) -> bool:
        return self.error is not None

    def validate(self, expected_state: str | None, endpoint: str = "") -> str:
        """Validate the callback and return the authorization code.

        Checks run in a fixed order and the first failure wins: state first
        (only when one was sent), then a server-reported error, then the
        presence of the code.

        Args:
            expected_state: State sent in the authorization request, if any
            endpoint: Authorization endpoint, used in error messages

        Returns:
            The authorization code

        Raises:
            StateValidationError: If the state is missing or doesn't match
            AuthorizationError: If the server reported an error
            AuthorizationResponseError: If the code is missing or the
                ``error_uri`` isn't a valid URI
        """
        if expected_state is not None:
            validate_state(expected_state, self.state, endpoint)

        if self.is_error():
            if self.error_uri is not None:
                try:
                    check_error_uri(self.error_uri)
                except ValueError as e:
                    raise AuthorizationResponseError(
                        f'Invalid OAuth response for "{endpoint}": {e}.'
                    ) from e
            raise AuthorizationError(
                self.error, self.error_description, self.error_uri
            )

        if self.code is None:
            raise AuthorizationResponseError(
                f'Invalid OAuth response for "{endpoint}": did not contain '
                'required parameter "code".'
            )

        return self.code


class GrantStep(BaseModel):
    """Resumable snapshot of an in-flight grant.

    Holds just enough to finish a flow in another process. Client
    credentials and endpoints are not included; they must be supplied again
    when the grant is reconstructed. Every field is optional so partial
    snapshots can be restored.
    """

    state: GrantState | None = None
    state_string: str | None = None
    redirect_uri: str | None = None
    code_verifier: str | None = None
