"""Authenticated HTTP client backed by OAuth2 credentials.

Attaches the access token to outgoing requests and refreshes expired
credentials transparently when a refresh token is available.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Iterable
from typing import Any

import httpx

from codegrant.models.errors import AuthorizationError, ExpirationError, RefreshError
from codegrant.models.tokens import (
    ClientAuthentication,
    Credentials,
    RefreshTokenRequest,
)
from codegrant.primitives.parameters import GetParameters
from codegrant.services.tokens import refresh_credentials

logger = logging.getLogger(__name__)

CredentialsRefreshedCallback = Callable[[Credentials], None]

# auth-param = token "=" ( token / quoted-string ), RFC 7235 Section 2.1
_AUTH_PARAM = re.compile(r'([!#$%&\'*+\-.^_`|~\w]+)\s*=\s*("(?:[^"\\]|\\.)*"|[^\s,]+)')


def parse_bearer_challenge(header: str) -> dict[str, str] | None:
    """Parse the parameters of a ``Bearer`` WWW-Authenticate challenge.

    Returns:
        The challenge's auth-params, or None if there's no Bearer challenge
    """
    match = re.search(r"(?:^|,)\s*Bearer(?:\s+|$)", header, re.IGNORECASE)
    if match is None:
        return None

    params: dict[str, str] = {}
    for name, value in _AUTH_PARAM.findall(header[match.end() :]):
        if value.startswith('"'):
            value = re.sub(r"\\(.)", r"\1", value[1:-1])
        params[name.lower()] = value
    return params


class OAuth2Client:
    """HTTP client that authenticates requests with OAuth2 credentials.

    Shares its ``httpx.AsyncClient`` with the grant that created it; closing
    either one closes the transport for both.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        client_id: str | None = None,
        secret: str | None = None,
        basic_auth: bool = True,
        http_client: httpx.AsyncClient | None = None,
        on_credentials_refreshed: CredentialsRefreshedCallback | None = None,
        delimiter: str = " ",
        get_parameters: GetParameters | None = None,
        allowed_token_types: Iterable[str] = ("Bearer",),
    ):
        self.client_id = client_id
        self.secret = secret
        self._credentials = credentials
        self._basic_auth = basic_auth
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=30.0)
        self._http_client = http_client
        self._on_credentials_refreshed = on_credentials_refreshed
        self._delimiter = delimiter
        self._get_parameters = get_parameters
        self._allowed_token_types = tuple(allowed_token_types)
        self._refresh_lock = asyncio.Lock()

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send an authenticated request.

        Extra keyword arguments are passed to ``httpx.AsyncClient.request``.

        Raises:
            ExpirationError: If the credentials expired and can't be refreshed
            AuthorizationError: If the server rejects the token with a Bearer
                challenge carrying an error
        """
        if self._credentials.is_expired:
            if not self._credentials.can_refresh:
                raise ExpirationError(self._credentials.expires_at)
            await self.refresh_credentials()

        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {self._credentials.access_token}"

        response = await self._http_client.request(
            method, url, headers=headers, **kwargs
        )

        if response.status_code == 401:
            self._raise_for_bearer_challenge(response)

        return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def refresh_credentials(
        self, new_scopes: list[str] | None = None
    ) -> Credentials:
        """Refresh the credentials now, even if they haven't expired.

        Concurrent callers without ``new_scopes`` share a single refresh
        request; a call with ``new_scopes`` always sends its own.

        Args:
            new_scopes: Scopes to request instead of the currently granted ones

        Returns:
            The refreshed credentials

        Raises:
            RefreshError: If the credentials have no refresh token or endpoint,
                or a secret was given without a client id
        """
        stale = self._credentials
        async with self._refresh_lock:
            if new_scopes is None and self._credentials is not stale:
                return self._credentials  # Another task already refreshed

            current = self._credentials
            if not current.can_refresh:
                raise RefreshError(
                    "Credentials can't be refreshed: no refresh token or "
                    "token endpoint."
                )
            if self.client_id is None and self.secret is not None:
                raise RefreshError("A client secret was given without a client id.")

            refresh_request = RefreshTokenRequest(
                token_endpoint=current.token_endpoint,
                refresh_token=current.refresh_token,
                client=ClientAuthentication(
                    client_id=self.client_id,
                    client_secret=self.secret,
                    basic_auth=self._basic_auth,
                ),
                scopes=new_scopes or current.scopes or [],
                delimiter=self._delimiter,
            )
            self._credentials = await refresh_credentials(
                self._http_client,
                refresh_request,
                get_parameters=self._get_parameters,
                allowed_token_types=self._allowed_token_types,
            )

        if self._on_credentials_refreshed is not None:
            self._on_credentials_refreshed(self._credentials)

        return self._credentials

    def _raise_for_bearer_challenge(self, response: httpx.Response) -> None:
        header = response.headers.get("www-authenticate")
        if not header:
            return

        params = parse_bearer_challenge(header)
        if params is None or "error" not in params:
            return

        logger.warning(f"Request rejected by resource server: {params['error']}")
        raise AuthorizationError(
            params["error"], params.get("error_description"), params.get("error_uri")
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http_client.aclose()
