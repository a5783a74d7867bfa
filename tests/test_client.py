"""Tests for the authenticated OAuth2 client handle."""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from codegrant.client import OAuth2Client, parse_bearer_challenge
from codegrant.models.errors import (
    AuthorizationError,
    ExpirationError,
    OAuth2Error,
    RefreshError,
)
from codegrant.models.tokens import Credentials

TOKEN_ENDPOINT = "https://auth.example.com/token"


def make_credentials(**overrides) -> Credentials:
    params = {
        "access_token": "access-token-xyz",
        "refresh_token": "refresh-token-abc",
        "token_endpoint": TOKEN_ENDPOINT,
        "scopes": ["read"],
        "expires_at": time.time() + 3600,
    }
    params.update(overrides)
    return Credentials(**params)


class TestAuthenticatedRequests:
    def setup_method(self):
        self.http_client = AsyncMock()
        self.http_client.request.return_value = httpx.Response(200, json={"ok": True})
        self.http_client.post.return_value = httpx.Response(
            200, json={"access_token": "new-access", "token_type": "Bearer"}
        )

    async def slow_token_response(self, *args, **kwargs) -> httpx.Response:
        await asyncio.sleep(0)
        return httpx.Response(
            200, json={"access_token": "new-access", "token_type": "Bearer"}
        )

    async def test_request_attaches_bearer_token(self):
        client = OAuth2Client(make_credentials(), http_client=self.http_client)

        response = await client.get(
            "https://api.example.com/me", headers={"X-Trace": "1"}
        )

        assert response.status_code == 200
        call_args = self.http_client.request.call_args
        assert call_args[0] == ("GET", "https://api.example.com/me")
        assert call_args[1]["headers"] == {
            "X-Trace": "1",
            "Authorization": "Bearer access-token-xyz",
        }
        self.http_client.post.assert_not_called()

    async def test_expired_credentials_are_refreshed_first(self):
        # Arrange
        on_refreshed = MagicMock()
        client = OAuth2Client(
            make_credentials(expires_at=time.time() - 1),
            client_id="client-123",
            secret="secret",
            basic_auth=False,
            http_client=self.http_client,
            on_credentials_refreshed=on_refreshed,
        )

        # Act
        await client.get("https://api.example.com/me")

        # Assert
        form_data = self.http_client.post.call_args[1]["data"]
        assert form_data == {
            "grant_type": "refresh_token",
            "refresh_token": "refresh-token-abc",
            "scope": "read",
            "client_id": "client-123",
            "client_secret": "secret",
        }
        assert client.credentials.access_token == "new-access"
        assert client.credentials.refresh_token == "refresh-token-abc"
        on_refreshed.assert_called_once_with(client.credentials)
        headers = self.http_client.request.call_args[1]["headers"]
        assert headers["Authorization"] == "Bearer new-access"

    async def test_expired_without_refresh_token_raises(self):
        client = OAuth2Client(
            make_credentials(expires_at=time.time() - 1, refresh_token=None),
            http_client=self.http_client,
        )

        with pytest.raises(ExpirationError):
            await client.get("https://api.example.com/me")

        self.http_client.request.assert_not_called()

    async def test_refresh_with_new_scopes(self):
        client = OAuth2Client(
            make_credentials(), client_id="client-123", http_client=self.http_client
        )

        credentials = await client.refresh_credentials(["read", "write"])

        assert self.http_client.post.call_args[1]["data"]["scope"] == "read write"
        assert credentials.scopes == ["read", "write"]

    async def test_refresh_without_refresh_token_raises(self):
        client = OAuth2Client(
            make_credentials(refresh_token=None), http_client=self.http_client
        )

        with pytest.raises(RefreshError) as exc_info:
            await client.refresh_credentials()

        assert isinstance(exc_info.value, OAuth2Error)
        self.http_client.post.assert_not_called()

    async def test_secret_without_client_id_raises(self):
        client = OAuth2Client(
            make_credentials(), secret="secret", http_client=self.http_client
        )

        with pytest.raises(RefreshError, match="without a client id"):
            await client.refresh_credentials()

    async def test_concurrent_refreshes_share_one_request(self):
        self.http_client.post.side_effect = self.slow_token_response
        client = OAuth2Client(make_credentials(), http_client=self.http_client)

        first, second = await asyncio.gather(
            client.refresh_credentials(), client.refresh_credentials()
        )

        assert self.http_client.post.call_count == 1
        assert first is second

    async def test_concurrent_refresh_with_new_scopes_sends_its_own_request(self):
        # Arrange
        self.http_client.post.side_effect = self.slow_token_response
        client = OAuth2Client(make_credentials(), http_client=self.http_client)

        # Act
        _, rescoped = await asyncio.gather(
            client.refresh_credentials(),
            client.refresh_credentials(["read", "write"]),
        )

        # Assert
        assert self.http_client.post.call_count == 2
        second_call = self.http_client.post.call_args_list[1]
        assert second_call[1]["data"]["scope"] == "read write"
        assert rescoped.scopes == ["read", "write"]
        assert client.credentials is rescoped

    async def test_bearer_challenge_error_raises_authorization_error(self):
        self.http_client.request.return_value = httpx.Response(
            401,
            headers={
                "WWW-Authenticate": 'Bearer realm="api", error="invalid_token", '
                'error_description="The access token expired"'
            },
        )
        client = OAuth2Client(make_credentials(), http_client=self.http_client)

        with pytest.raises(AuthorizationError) as exc_info:
            await client.get("https://api.example.com/me")

        assert exc_info.value.error == "invalid_token"
        assert exc_info.value.description == "The access token expired"

    async def test_plain_401_is_returned(self):
        self.http_client.request.return_value = httpx.Response(401)
        client = OAuth2Client(make_credentials(), http_client=self.http_client)

        response = await client.get("https://api.example.com/me")

        assert response.status_code == 401


class TestParseBearerChallenge:
    def test_parses_quoted_and_token_params(self):
        params = parse_bearer_challenge(
            'Bearer realm="example", error=invalid_token, error_description="a \\"b\\""'
        )

        assert params == {
            "realm": "example",
            "error": "invalid_token",
            "error_description": 'a "b"',
        }

    def test_non_bearer_challenge_returns_none(self):
        assert parse_bearer_challenge('Basic realm="example"') is None
