"""OAuth2 authorization code grant with PKCE.

Drives the flow end to end: building the authorization URL, validating the
authorization server's callback, exchanging the authorization code at the
token endpoint, and returning an authenticated ``OAuth2Client``.

Typical use::

    grant = AuthorizationCodeGrant(client_id, authorization_endpoint, token_endpoint)
    url = grant.get_authorization_url(redirect_uri, scopes=["read"], state=state)
    # ... send the resource owner to ``url``, receive the redirect ...
    client = await grant.handle_authorization_response(query_params)

A grant is meant for a single flow at a time and is not safe to share
between concurrent callback deliveries.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

import httpx

from codegrant.client import CredentialsRefreshedCallback, OAuth2Client
from codegrant.models.config import GrantConfig
from codegrant.models.errors import AuthorizationError
from codegrant.models.flow import (
    AuthorizationRequest,
    AuthorizationResponse,
    GrantState,
    GrantStep,
)
from codegrant.models.tokens import ClientAuthentication, TokenRequest
from codegrant.primitives.parameters import GetParameters
from codegrant.primitives.pkce import derive_code_challenge, generate_code_verifier
from codegrant.services.tokens import exchange_code_for_token

logger = logging.getLogger(__name__)


class AuthorizationCodeGrant:
    """Obtains credentials via the OAuth2 authorization code grant (RFC 6749 4.1).

    Call ``get_authorization_url`` to get the URL the resource owner should be
    sent to. Once they are redirected back, call
    ``handle_authorization_response`` with the redirect's query parameters, or
    ``handle_authorization_code`` with a code obtained out of band, to get an
    ``OAuth2Client``.
    """

    def __init__(
        self,
        client_id: str,
        authorization_endpoint: str,
        token_endpoint: str,
        *,
        secret: str | None = None,
        delimiter: str = " ",
        basic_auth: bool = True,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        on_credentials_refreshed: CredentialsRefreshedCallback | None = None,
        get_parameters: GetParameters | None = None,
        code_verifier: str | None = None,
        allowed_token_types: Iterable[str] = ("Bearer",),
    ):
        """Initialize the grant.

        Args:
            client_id: Client identifier issued by the authorization server
            authorization_endpoint: URL the resource owner is sent to
            token_endpoint: URL used to exchange the code for credentials
            secret: Client secret, if the client has one
            delimiter: Scope delimiter; some providers don't use a space
            basic_auth: Send client credentials with HTTP Basic auth instead
                of in the request body
            http_client: Transport shared by the grant and the clients it
                creates; a new one is created if omitted
            timeout: HTTP timeout in seconds for a client created here
            on_credentials_refreshed: Passed to the created ``OAuth2Client``
            get_parameters: Parser for non-standard token responses
            code_verifier: Caller-supplied PKCE verifier (RFC 7636 4.1); a
                random one is generated and managed by the grant if omitted
            allowed_token_types: Acceptable ``token_type`` values
        """
        self.client_id = client_id
        self.secret = secret
        self.authorization_endpoint = authorization_endpoint
        self.token_endpoint = token_endpoint

        self._delimiter = delimiter
        self._basic_auth = basic_auth
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=timeout)
        self._http_client = http_client
        self._on_credentials_refreshed = on_credentials_refreshed
        self._get_parameters = get_parameters
        self._allowed_token_types = tuple(allowed_token_types)

        self._code_verifier = (
            code_verifier if code_verifier is not None else generate_code_verifier()
        )
        self._is_code_verifier_generated = code_verifier is None

        self._state = GrantState.INITIAL
        self._redirect_uri: str | None = None
        self._scopes: list[str] | None = None
        self._state_string: str | None = None

    @classmethod
    def from_config(
        cls,
        config: GrantConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        on_credentials_refreshed: CredentialsRefreshedCallback | None = None,
        get_parameters: GetParameters | None = None,
        code_verifier: str | None = None,
    ) -> AuthorizationCodeGrant:
        """Create a grant from a ``GrantConfig``."""
        return cls(
            config.client_id,
            config.authorization_endpoint,
            config.token_endpoint,
            secret=config.client_secret,
            delimiter=config.delimiter,
            basic_auth=config.basic_auth,
            http_client=http_client,
            timeout=config.timeout,
            on_credentials_refreshed=on_credentials_refreshed,
            get_parameters=get_parameters,
            code_verifier=code_verifier,
            allowed_token_types=config.allowed_token_types,
        )

    @property
    def state(self) -> GrantState:
        return self._state

    @property
    def code_verifier(self) -> str:
        return self._code_verifier

    @property
    def redirect_uri(self) -> str | None:
        return self._redirect_uri

    @property
    def state_string(self) -> str | None:
        return self._state_string

    def get_authorization_url(
        self,
        redirect_uri: str,
        scopes: Iterable[str] | None = None,
        state: str | None = None,
    ) -> str:
        """Return the URL the resource owner should be sent to.

        The authorization server redirects back to ``redirect_uri`` with
        query parameters to be passed to ``handle_authorization_response``.

        Args:
            redirect_uri: Client-controlled URI to redirect back to
            scopes: Scopes to request; the server may grant fewer
            state: Opaque CSRF protection value echoed back in the callback

        Returns:
            The authorization URL

        Raises:
            GrantStateError: If called more than once without ``reset``
        """
        self._state.ensure_can_request_url()
        self._state = GrantState.AWAITING_RESPONSE

        if self._is_code_verifier_generated:
            self._code_verifier = generate_code_verifier()

        self._redirect_uri = redirect_uri
        self._scopes = list(scopes) if scopes is not None else []
        self._state_string = state

        request = AuthorizationRequest(
            authorization_endpoint=self.authorization_endpoint,
            client_id=self.client_id,
            redirect_uri=redirect_uri,
            code_challenge=derive_code_challenge(self._code_verifier),
            state=state,
            scopes=tuple(self._scopes),
            delimiter=self._delimiter,
        )

        logger.debug(f"Generated authorization URL for client {self.client_id}")
        return request.build_authorization_url()

    async def handle_authorization_response(
        self, parameters: Mapping[str, str]
    ) -> OAuth2Client:
        """Process the query parameters of the redirect back from the server.

        The grant is finished after this call whatever the outcome; a
        callback can't be processed twice.

        Args:
            parameters: Query parameters of the redirect, as exact strings

        Returns:
            OAuth2Client: Client authenticated with the issued credentials

        Raises:
            GrantStateError: If no URL was generated yet or the grant is finished
            StateValidationError: If ``state`` is missing or doesn't match
            AuthorizationError: If the server reported an error
            AuthorizationResponseError: If the callback has no ``code``
            TokenResponseError: If the token response is malformed
            httpx.HTTPError: If the token request fails
        """
        self._begin_response()

        response = AuthorizationResponse.from_params(parameters)
        try:
            code = response.validate(self._state_string, self.authorization_endpoint)
        except AuthorizationError as e:
            logger.warning(f"Authorization callback contained error: {e}")
            raise

        return await self._handle_authorization_code(code)

    async def handle_authorization_code(self, authorization_code: str) -> OAuth2Client:
        """Process an authorization code obtained out of band.

        Prefer ``handle_authorization_response``, which validates the whole
        callback. This is for servers that let the user paste the code into
        a command-line application.

        Raises:
            GrantStateError: If no URL was generated yet or the grant is finished
            AuthorizationError: If the token endpoint reports an error
            TokenResponseError: If the token response is malformed
            httpx.HTTPError: If the token request fails
        """
        self._begin_response()
        return await self._handle_authorization_code(authorization_code)

    def _begin_response(self) -> None:
        self._state.ensure_can_handle_response()
        self._state = GrantState.FINISHED

    async def _handle_authorization_code(self, authorization_code: str) -> OAuth2Client:
        token_request = TokenRequest(
            token_endpoint=self.token_endpoint,
            code=authorization_code,
            redirect_uri=self._redirect_uri,
            code_verifier=self._code_verifier,
            client=ClientAuthentication(
                client_id=self.client_id,
                client_secret=self.secret,
                basic_auth=self._basic_auth,
            ),
        )

        credentials = await exchange_code_for_token(
            self._http_client,
            token_request,
            scopes=self._scopes,
            delimiter=self._delimiter,
            get_parameters=self._get_parameters,
            allowed_token_types=self._allowed_token_types,
        )

        return OAuth2Client(
            credentials,
            client_id=self.client_id,
            secret=self.secret,
            basic_auth=self._basic_auth,
            http_client=self._http_client,
            on_credentials_refreshed=self._on_credentials_refreshed,
            delimiter=self._delimiter,
            get_parameters=self._get_parameters,
            allowed_token_types=self._allowed_token_types,
        )

    def snapshot(self) -> GrantStep:
        """Capture the in-flight step so it can be resumed elsewhere."""
        return GrantStep(
            state=self._state,
            state_string=self._state_string,
            redirect_uri=self._redirect_uri,
            code_verifier=self._code_verifier,
        )

    def restore(self, step: GrantStep) -> None:
        """Restore a step captured with ``snapshot``.

        Fields that are None in ``step`` leave the current values untouched.
        """
        if step.state is not None:
            self._state = step.state
        if step.state_string is not None:
            self._state_string = step.state_string
        if step.redirect_uri is not None:
            self._redirect_uri = step.redirect_uri
        if step.code_verifier is not None:
            self._code_verifier = step.code_verifier

        logger.debug(
            f"Restored grant for client {self.client_id} in state {self._state.value}"
        )

    def reset(self) -> None:
        """Return the grant to its initial state for a new authorization attempt.

        Clears the CSRF state, redirect URI and scopes of the previous attempt
        and regenerates the code verifier unless the caller supplied it.
        """
        self._state = GrantState.INITIAL
        self._state_string = None
        self._redirect_uri = None
        self._scopes = None

        if self._is_code_verifier_generated:
            self._code_verifier = generate_code_verifier()

    async def close(self) -> None:
        """Close the underlying HTTP client.

        The client is shared with every ``OAuth2Client`` this grant created,
        so they can't be used afterwards.
        """
        await self._http_client.aclose()
