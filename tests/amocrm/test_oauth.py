"""Tests for the amoCRM OAuth token client."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from formbridge.amocrm.errors import OAuthError
from formbridge.amocrm.oauth import TOKEN_PATH, AmoOAuthClient, OAuthTokens

from tests.conftest import SAMPLE_BASE_URL


@pytest.fixture
def oauth_client(mock_http_client):
    return AmoOAuthClient(
        base_url=SAMPLE_BASE_URL,
        client_id="client_123",
        client_secret="secret_456",
        redirect_uri="https://bridge.example.com/amocrm/callback",
        http_client=mock_http_client,
    )


class TestExchangeCode:
    """Authorization code exchange."""

    @pytest.mark.asyncio
    async def test_exchange_code_success(self, oauth_client, mock_http_client, mock_response):
        """Should post the grant and parse the token pair."""
        mock_http_client.post.return_value = mock_response({
            "token_type": "Bearer",
            "expires_in": 86400,
            "access_token": "access_1",
            "refresh_token": "refresh_1",
        })

        tokens = await oauth_client.exchange_code("auth_code_xyz")

        assert tokens == OAuthTokens(access_token="access_1", refresh_token="refresh_1", expires_in=86400)
        url = mock_http_client.post.call_args.args[0]
        body = mock_http_client.post.call_args.kwargs["json"]
        assert url == f"{SAMPLE_BASE_URL}{TOKEN_PATH}"
        assert body == {
            "client_id": "client_123",
            "client_secret": "secret_456",
            "redirect_uri": "https://bridge.example.com/amocrm/callback",
            "grant_type": "authorization_code",
            "code": "auth_code_xyz",
        }

    @pytest.mark.asyncio
    async def test_exchange_code_failure(self, oauth_client, mock_http_client, mock_response):
        """Non-200 raises OAuthError carrying the response."""
        mock_http_client.post.return_value = mock_response({"hint": "Authorization code has expired"}, 400)

        with pytest.raises(OAuthError) as exc_info:
            await oauth_client.exchange_code("stale")

        assert exc_info.value.error_code == "exchange_failed"
        assert exc_info.value.status_code == 400
        assert "expired" in exc_info.value.body


class TestRefreshTokens:
    """Refresh token grant."""

    @pytest.mark.asyncio
    async def test_refresh_success(self, oauth_client, mock_http_client, mock_response):
        mock_http_client.post.return_value = mock_response({
            "access_token": "access_2",
            "refresh_token": "refresh_2",
        })

        tokens = await oauth_client.refresh_tokens("refresh_1")

        assert tokens.access_token == "access_2"
        assert tokens.refresh_token == "refresh_2"
        assert tokens.expires_in == 86400
        body = mock_http_client.post.call_args.kwargs["json"]
        assert body["grant_type"] == "refresh_token"
        assert body["refresh_token"] == "refresh_1"

    @pytest.mark.asyncio
    async def test_refresh_failure(self, oauth_client, mock_http_client, mock_response):
        mock_http_client.post.return_value = mock_response({"title": "Unauthorized"}, 401)

        with pytest.raises(OAuthError) as exc_info:
            await oauth_client.refresh_tokens("revoked")

        assert exc_info.value.error_code == "refresh_failed"

    @pytest.mark.asyncio
    async def test_missing_keys_in_response(self, oauth_client, mock_http_client, mock_response):
        """A 200 without both tokens is rejected."""
        mock_http_client.post.return_value = mock_response({"access_token": "only_access"})

        with pytest.raises(OAuthError) as exc_info:
            await oauth_client.refresh_tokens("refresh_1")

        assert exc_info.value.error_code == "invalid_response"


class TestStandaloneClient:
    @pytest.mark.asyncio
    async def test_uses_temporary_client_when_none_injected(self, mock_response):
        """Without an injected client a short-lived AsyncClient is used."""
        client = AmoOAuthClient(
            base_url=SAMPLE_BASE_URL,
            client_id="id",
            client_secret="secret",
            redirect_uri="https://bridge.example.com/cb",
        )
        temp = MagicMock()
        temp.post = AsyncMock(return_value=mock_response({"access_token": "a", "refresh_token": "r"}))
        temp.__aenter__ = AsyncMock(return_value=temp)
        temp.__aexit__ = AsyncMock(return_value=False)

        with patch("formbridge.amocrm.oauth.httpx.AsyncClient", return_value=temp):
            tokens = await client.refresh_tokens("r0")

        assert tokens.access_token == "a"
        temp.__aexit__.assert_awaited_once()
