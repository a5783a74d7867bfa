"""OAuth2 token endpoint interactions.

Sends authorization code and refresh token requests, and turns token
endpoint responses (RFC 6749 Section 5) into ``Credentials``. Transport
errors raised by httpx are propagated unchanged; this module never retries.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from typing import Any

import httpx

from codegrant.models.errors import AuthorizationError, TokenResponseError
from codegrant.models.tokens import Credentials, RefreshTokenRequest, TokenRequest
from codegrant.primitives.parameters import (
    GetParameters,
    check_error_uri,
    parse_json_parameters,
)

logger = logging.getLogger(__name__)

# Subtracted from expires_in to absorb clock skew and request latency
EXPIRATION_GRACE_SECONDS = 10


async def exchange_code_for_token(
    http_client: httpx.AsyncClient,
    token_request: TokenRequest,
    *,
    scopes: list[str] | None = None,
    delimiter: str = " ",
    get_parameters: GetParameters | None = None,
    allowed_token_types: Iterable[str] = ("Bearer",),
) -> Credentials:
    """Exchange an authorization code for credentials.

    Makes exactly one POST to the token endpoint.

    Args:
        http_client: Shared HTTP client used as transport
        token_request: Token exchange request parameters
        scopes: Scopes requested in the authorization URL
        delimiter: Scope delimiter used by the server
        get_parameters: Parser for the response body
        allowed_token_types: Acceptable ``token_type`` values

    Returns:
        Credentials: Parsed and validated credentials

    Raises:
        httpx.HTTPError: If the request itself fails
        AuthorizationError: If the token endpoint reports an error
        TokenResponseError: If the response is malformed
    """
    logger.debug(f"Exchanging authorization code at {token_request.token_endpoint}")

    start_time = time.time()
    headers, form_data = token_request.build()

    # Log request details (without sensitive data)
    logger.debug(
        f"Token request: grant_type={form_data['grant_type']}, "
        f"basic_auth={'Authorization' in headers}"
    )

    response = await http_client.post(
        token_request.token_endpoint, headers=headers, data=form_data
    )

    credentials = handle_access_token_response(
        response,
        token_request.token_endpoint,
        start_time,
        scopes,
        delimiter,
        get_parameters=get_parameters,
        allowed_token_types=allowed_token_types,
    )
    logger.info("Token exchange successful")
    return credentials


async def refresh_credentials(
    http_client: httpx.AsyncClient,
    refresh_request: RefreshTokenRequest,
    *,
    get_parameters: GetParameters | None = None,
    allowed_token_types: Iterable[str] = ("Bearer",),
) -> Credentials:
    """Refresh credentials using a refresh token.

    If the server doesn't issue a new refresh token, the old one is kept.
    """
    logger.debug(f"Refreshing access token at {refresh_request.token_endpoint}")

    start_time = time.time()
    headers, form_data = refresh_request.build()

    response = await http_client.post(
        refresh_request.token_endpoint, headers=headers, data=form_data
    )

    credentials = handle_access_token_response(
        response,
        refresh_request.token_endpoint,
        start_time,
        refresh_request.scopes or None,
        refresh_request.delimiter,
        get_parameters=get_parameters,
        allowed_token_types=allowed_token_types,
    )
    if credentials.refresh_token is None:
        credentials = credentials.model_copy(
            update={"refresh_token": refresh_request.refresh_token}
        )

    logger.info("Successfully refreshed access token")
    return credentials


def handle_access_token_response(
    response: httpx.Response,
    token_endpoint: str,
    start_time: float,
    scopes: list[str] | None,
    delimiter: str,
    *,
    get_parameters: GetParameters | None = None,
    allowed_token_types: Iterable[str] = ("Bearer",),
) -> Credentials:
    """Turn a token endpoint response into credentials.

    Args:
        response: HTTP response from the token endpoint
        token_endpoint: Token endpoint URL, used for error messages
        start_time: Unix timestamp taken just before the request was sent
        scopes: Requested scopes, used when the response has no ``scope``
        delimiter: Scope delimiter used by the server
        get_parameters: Parser for the response body
        allowed_token_types: Acceptable ``token_type`` values (case-insensitive)

    Returns:
        Credentials: Validated credentials

    Raises:
        AuthorizationError: If the response is an OAuth2 error response
        TokenResponseError: If the response is malformed
    """
    get_parameters = get_parameters or parse_json_parameters

    if response.status_code != 200:
        _handle_error_response(response, token_endpoint, get_parameters)

    try:
        parameters = _parse(response, get_parameters)

        for name in ("access_token", "token_type"):
            if name not in parameters:
                raise ValueError(f'did not contain required parameter "{name}"')
            if not isinstance(parameters[name], str):
                raise ValueError(
                    f'required parameter "{name}" was not a string, '
                    f'was "{parameters[name]}"'
                )

        token_type = parameters["token_type"]
        allowed = {t.lower() for t in allowed_token_types}
        if token_type.lower() not in allowed:
            raise ValueError(f'unknown token type "{token_type}"')

        expires_in = _parse_expires_in(parameters.get("expires_in"))

        for name in ("refresh_token", "id_token", "scope"):
            value = parameters.get(name)
            if value is not None and not isinstance(value, str):
                raise ValueError(f'parameter "{name}" was not a string, was "{value}"')

    except ValueError as e:
        raise TokenResponseError(
            f'Invalid OAuth response for "{token_endpoint}": {e}.\n\n{response.text}'
        ) from e

    scope = parameters.get("scope")
    granted_scopes = scope.split(delimiter) if scope is not None else scopes

    expires_at = None
    if expires_in is not None:
        expires_at = start_time + expires_in - EXPIRATION_GRACE_SECONDS

    return Credentials(
        access_token=parameters["access_token"],
        refresh_token=parameters.get("refresh_token"),
        id_token=parameters.get("id_token"),
        token_endpoint=token_endpoint,
        scopes=granted_scopes,
        expires_at=expires_at,
    )


def _handle_error_response(
    response: httpx.Response, token_endpoint: str, get_parameters: GetParameters
) -> None:
    """Raise the error described by a non-200 token endpoint response.

    RFC 6749 Section 5.2 mandates 400 or 401 for error responses; anything
    else means the server is broken or nonconforming.
    """
    if response.status_code not in (400, 401):
        reason = f" {response.reason_phrase}" if response.reason_phrase else ""
        raise TokenResponseError(
            f'OAuth request for "{token_endpoint}" failed with status '
            f"{response.status_code}{reason}.\n\n{response.text}"
        )

    try:
        parameters = _parse(response, get_parameters)

        if "error" not in parameters:
            raise ValueError('did not contain required parameter "error"')
        if not isinstance(parameters["error"], str):
            raise ValueError(
                f'required parameter "error" was not a string, '
                f'was "{parameters["error"]}"'
            )
        for name in ("error_description", "error_uri"):
            value = parameters.get(name)
            if value is not None and not isinstance(value, str):
                raise ValueError(f'parameter "{name}" was not a string, was "{value}"')
        if parameters.get("error_uri") is not None:
            check_error_uri(parameters["error_uri"])

    except ValueError as e:
        raise TokenResponseError(
            f'Invalid OAuth response for "{token_endpoint}": {e}.\n\n{response.text}'
        ) from e

    logger.warning(
        f"Token request failed with {response.status_code}: "
        f"{parameters['error']} - {parameters.get('error_description')}"
    )
    raise AuthorizationError(
        parameters["error"],
        parameters.get("error_description"),
        parameters.get("error_uri"),
    )


def _parse(response: httpx.Response, get_parameters: GetParameters) -> dict[str, Any]:
    return get_parameters(response.headers.get("content-type"), response.text)


def _parse_expires_in(value: Any) -> int | None:
    if value is None:
        return None
    # bool is an int subclass but never a valid lifetime
    if isinstance(value, bool):
        raise ValueError(f'parameter "expires_in" was not an int, was "{value}"')
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(float(value))
        except (ValueError, OverflowError):
            raise ValueError(
                f'parameter "expires_in" could not be parsed as int, was "{value}"'
            ) from None
    raise ValueError(f'parameter "expires_in" was not an int, was "{value}"')
