"""Token exchange with the identity provider.

A stateless request/response collaborator: trades an authorization code for
tokens and fetches the authenticated user's profile.
"""

from typing import Any, Optional

import httpx

from fleet_gateway.src.logger import log
from fleet_gateway.src.metrics import API_CALL_LATENCY
from fleet_gateway.src.oauth.models import TokenResponse
from fleet_gateway.src.settings import Settings


class TokenExchangeClient:
    """Performs the authorization code exchange and the profile fetch."""

    def __init__(
        self,
        cfg: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the exchange client.

        Args:
            cfg: Settings holding the provider endpoints and credentials
            transport: Optional httpx transport, used by tests
        """
        self.token_url = cfg.FLEET_TOKEN_URL
        self.profile_url = f"{cfg.FLEET_API_URL.rstrip('/')}/api/1/users/me"
        self.client_id = cfg.FLEET_CLIENT_ID
        self.client_secret = cfg.FLEET_CLIENT_SECRET
        self.redirect_uri = cfg.FLEET_REDIRECT_URI
        self.audience = cfg.audience
        self.timeout = cfg.HTTP_TIMEOUT
        self._transport = transport

    async def exchange_code(self, code: str, code_verifier: str) -> TokenResponse:
        """Exchange authorization code for tokens.

        Args:
            code: Authorization code from the identity provider
            code_verifier: PKCE verifier issued with the authorization request

        Returns:
            Parsed token response

        Raises:
            httpx.HTTPError: If the request fails or returns a non-2xx status
            ValueError: If the response body is not a usable token response
        """
        data = {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": self.redirect_uri,
            "code_verifier": code_verifier,
            "audience": self.audience,
        }

        with API_CALL_LATENCY.labels(api_method="exchange_code").time():
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.token_url, data=data)
                response.raise_for_status()
                token_data = response.json()

        if not isinstance(token_data, dict):
            raise ValueError("Token response is not an object")

        token = TokenResponse.from_dict(token_data)
        log.debug("Token exchange succeeded (expires in %ss)", token.expires_in)
        return token

    async def fetch_profile(self, access_token: str) -> Any:
        """Fetch the profile of the user owning an access token.

        Args:
            access_token: Freshly issued access token

        Returns:
            Decoded profile JSON

        Raises:
            httpx.HTTPError: If the request fails or returns a non-2xx status
            ValueError: If the body is not JSON
        """
        with API_CALL_LATENCY.labels(api_method="fetch_profile").time():
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(
                    self.profile_url,
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Content-Type": "application/json",
                    },
                )
                response.raise_for_status()
                return response.json()
