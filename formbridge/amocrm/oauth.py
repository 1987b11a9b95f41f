"""OAuth 2.0 token endpoint client for amoCRM integrations.

amoCRM issues short-lived access tokens and single-use refresh tokens: every
refresh returns a new pair and the old refresh token stops working, so the
caller must persist both values from each response.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from .errors import OAuthError

TOKEN_PATH = "/oauth2/access_token"


@dataclass
class OAuthTokens:
    """Token pair returned by amoCRM."""

    access_token: str
    refresh_token: str
    expires_in: int = 86400
    token_type: str = "Bearer"


class AmoOAuthClient:
    """Exchanges authorization codes and refresh tokens for new token pairs.

    Usage:
        oauth = AmoOAuthClient(
            base_url="https://example.amocrm.ru",
            client_id="...",
            client_secret="...",
            redirect_uri="https://example.com/amocrm/callback",
        )
        tokens = await oauth.exchange_code(code)
        tokens = await oauth.refresh_tokens(tokens.refresh_token)
    """

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._http = http_client

    async def exchange_code(self, code: str) -> OAuthTokens:
        """Exchange an authorization code for the first token pair.

        Raises:
            OAuthError: If amoCRM refuses the code.
        """
        return await self._token_request(
            {"grant_type": "authorization_code", "code": code},
            failure="Token exchange failed",
            error_code="exchange_failed",
        )

    async def refresh_tokens(self, refresh_token: str) -> OAuthTokens:
        """Trade a refresh token for a fresh access/refresh pair.

        Raises:
            OAuthError: If the refresh is refused.
        """
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            failure="amoCRM refresh failed",
            error_code="refresh_failed",
        )

    async def _token_request(self, grant: dict[str, str], failure: str, error_code: str) -> OAuthTokens:
        body = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
            **grant,
        }
        url = f"{self.base_url}{TOKEN_PATH}"

        if self._http is not None:
            response = await self._http.post(url, json=body)
        else:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(url, json=body)

        if response.status_code != 200:
            raise OAuthError(
                f"{failure}: {response.status_code} {response.text}",
                status_code=response.status_code,
                body=response.text,
                error_code=error_code,
            )

        return self._parse_token_response(response.json())

    def _parse_token_response(self, data: dict[str, Any]) -> OAuthTokens:
        try:
            return OAuthTokens(
                access_token=data["access_token"],
                refresh_token=data["refresh_token"],
                expires_in=data.get("expires_in", 86400),
                token_type=data.get("token_type", "Bearer"),
            )
        except KeyError as e:
            raise OAuthError(
                f"Invalid token response: missing {e}",
                error_code="invalid_response",
            )
