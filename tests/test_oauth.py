"""Tests for OAuth authentication functionality."""

import asyncio
import time
import urllib.parse
from concurrent.futures import ThreadPoolExecutor
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from fleet_gateway.src.errors import (
    ExchangeFailed,
    InvalidCallback,
    ProviderError,
    StateMismatch,
)
from fleet_gateway.src.oauth import OAuthManager, TokenExchangeClient, TokenResponse
from fleet_gateway.src.oauth.manager import pkce_challenge
from fleet_gateway.src.oauth.models import resolve_user_id
from fleet_gateway.src.settings import Settings


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "FLEET_CLIENT_ID": "test-client",
        "FLEET_CLIENT_SECRET": "test-secret",
        "FLEET_REDIRECT_URI": "http://127.0.0.1:3000/auth/callback",
        "FLEET_AUTH_URL": "https://auth.example.com/oauth2/v3/authorize",
        "FLEET_TOKEN_URL": "https://auth.example.com/oauth2/v3/token",
        "FLEET_API_URL": "https://fleet.example.com",
        "STORE_SWEEP_INTERVAL": 0,
    }
    values.update(overrides)
    return Settings(**values)


def make_exchange_client(
    token: dict | None = None, profile: Any = None
) -> MagicMock:
    client = MagicMock(spec=TokenExchangeClient)
    client.exchange_code = AsyncMock(
        return_value=TokenResponse.from_dict(
            token or {"access_token": "tok1", "expires_in": 3600}
        )
    )
    client.fetch_profile = AsyncMock(
        return_value=profile if profile is not None else {"id": "u1"}
    )
    return client


def query_of(url: str) -> dict[str, str]:
    return dict(urllib.parse.parse_qsl(urllib.parse.urlsplit(url).query))


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestBeginLogin:
    """Test cases for the authorization redirect."""

    manager: OAuthManager

    def setup_method(self) -> None:
        """Set up test fixtures."""
        self.manager = OAuthManager(
            make_settings(), exchange_client=make_exchange_client()
        )

    def test_authorization_url_parameters(self) -> None:
        redirect = self.manager.begin_login()
        params = query_of(redirect.url)

        assert redirect.url.startswith("https://auth.example.com/oauth2/v3/authorize?")
        assert params["client_id"] == "test-client"
        assert params["response_type"] == "code"
        assert params["redirect_uri"] == "http://127.0.0.1:3000/auth/callback"
        assert params["state"] == redirect.state
        assert params["code_challenge"] == pkce_challenge(redirect.code_verifier)
        assert params["code_challenge_method"] == "S256"
        assert "vehicle_device_data" in params["scope"].split(" ")
        # The verifier itself never leaves the server in the URL
        assert redirect.code_verifier not in redirect.url

    def test_requested_scopes_override_defaults(self) -> None:
        redirect = self.manager.begin_login(["openid", "vehicle_location"])

        assert query_of(redirect.url)["scope"] == "openid vehicle_location"

    def test_correlation_is_stored(self) -> None:
        self.manager.begin_login()

        assert self.manager.correlation_store.count() == 1

    def test_state_and_verifier_are_long(self) -> None:
        redirect = self.manager.begin_login()

        # 32 random bytes, base64url without padding
        assert len(redirect.state) >= 43
        assert len(redirect.code_verifier) >= 43

    def test_concurrent_logins_issue_distinct_values(self) -> None:
        with ThreadPoolExecutor(max_workers=16) as pool:
            redirects = list(pool.map(lambda _: self.manager.begin_login(), range(100)))

        values = [r.state for r in redirects] + [r.code_verifier for r in redirects]
        assert len(set(values)) == 200
        assert self.manager.correlation_store.count() == 100


class TestCompleteLogin:
    """Test cases for the callback handling."""

    clock: FakeClock
    exchange: MagicMock
    manager: OAuthManager

    def setup_method(self) -> None:
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.exchange = make_exchange_client()
        self.manager = OAuthManager(
            make_settings(), exchange_client=self.exchange, clock=self.clock
        )

    async def test_successful_login_creates_session(self) -> None:
        redirect = self.manager.begin_login()
        assert f"state={redirect.state}" in redirect.url

        session_id = await self.manager.complete_login("abc", redirect.state)

        session = self.manager.session_store.get(session_id)
        assert session is not None
        assert session.user_id == "u1"
        assert session.access_token == "tok1"
        assert session.refresh_token is None
        assert session.expires_at == pytest.approx(self.clock.now + 3600)
        self.exchange.exchange_code.assert_awaited_once_with(
            "abc", redirect.code_verifier
        )
        self.exchange.fetch_profile.assert_awaited_once_with("tok1")

    async def test_replayed_state_fails(self) -> None:
        redirect = self.manager.begin_login()
        await self.manager.complete_login("abc", redirect.state)

        with pytest.raises(StateMismatch):
            await self.manager.complete_login("abc", redirect.state)

        assert self.manager.session_store.count() == 1

    async def test_unknown_state_fails(self) -> None:
        with pytest.raises(StateMismatch):
            await self.manager.complete_login("abc", "never-issued")

        self.exchange.exchange_code.assert_not_awaited()
        assert self.manager.session_store.count() == 0

    async def test_expired_state_fails(self) -> None:
        redirect = self.manager.begin_login()
        self.clock.now += 601

        with pytest.raises(StateMismatch):
            await self.manager.complete_login("abc", redirect.state)

        assert self.manager.session_store.count() == 0

    async def test_provider_error_is_reported(self) -> None:
        with pytest.raises(ProviderError) as exc_info:
            await self.manager.complete_login(
                None, None, "access_denied", "User cancelled"
            )

        assert exc_info.value.error == "access_denied"
        assert exc_info.value.description == "User cancelled"
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize("code,state", [(None, "S1"), ("abc", None), ("", "")])
    async def test_missing_code_or_state(self, code: Any, state: Any) -> None:
        with pytest.raises(InvalidCallback):
            await self.manager.complete_login(code, state)

    async def test_exchange_failure_creates_no_session(self) -> None:
        self.exchange.exchange_code.side_effect = httpx.HTTPError("boom")
        redirect = self.manager.begin_login()

        with pytest.raises(ExchangeFailed) as exc_info:
            await self.manager.complete_login("abc", redirect.state)

        assert exc_info.value.status_code == 500
        assert self.manager.session_store.count() == 0
        # The state was consumed and cannot be retried
        with pytest.raises(StateMismatch):
            await self.manager.complete_login("abc", redirect.state)

    async def test_profile_failure_creates_no_session(self) -> None:
        self.exchange.fetch_profile.side_effect = httpx.HTTPError("profile down")
        redirect = self.manager.begin_login()

        with pytest.raises(ExchangeFailed):
            await self.manager.complete_login("abc", redirect.state)

        assert self.manager.session_store.count() == 0

    async def test_profile_without_identifier_fails(self) -> None:
        self.exchange.fetch_profile.return_value = {"full_name": "No Id"}
        redirect = self.manager.begin_login()

        with pytest.raises(ExchangeFailed):
            await self.manager.complete_login("abc", redirect.state)

    async def test_default_lifetime_and_refresh_token(self) -> None:
        self.exchange.exchange_code.return_value = TokenResponse.from_dict(
            {"access_token": "tok2", "refresh_token": "ref2"}
        )
        redirect = self.manager.begin_login()

        session_id = await self.manager.complete_login("abc", redirect.state)

        session = self.manager.session_store.get(session_id)
        assert session is not None
        assert session.refresh_token == "ref2"
        assert session.expires_at == pytest.approx(self.clock.now + 3600)

    async def test_zero_lifetime_session_is_never_served(self) -> None:
        self.exchange.exchange_code.return_value = TokenResponse.from_dict(
            {"access_token": "tok2", "expires_in": 0}
        )
        redirect = self.manager.begin_login()

        session_id = await self.manager.complete_login("abc", redirect.state)

        assert self.manager.session_store.get(session_id) is None

    async def test_concurrent_callbacks_create_one_session(self) -> None:
        async def slow_exchange(code: str, verifier: str) -> TokenResponse:
            await asyncio.sleep(0.01)
            return TokenResponse.from_dict({"access_token": "tok1"})

        self.exchange.exchange_code.side_effect = slow_exchange
        redirect = self.manager.begin_login()

        results = await asyncio.gather(
            self.manager.complete_login("abc", redirect.state),
            self.manager.complete_login("abc", redirect.state),
            return_exceptions=True,
        )

        assert len([r for r in results if isinstance(r, str)]) == 1
        assert len([r for r in results if isinstance(r, StateMismatch)]) == 1
        assert self.manager.session_store.count() == 1

    async def test_logout_deletes_session(self) -> None:
        redirect = self.manager.begin_login()
        session_id = await self.manager.complete_login("abc", redirect.state)

        self.manager.logout(session_id)

        assert self.manager.get_session(session_id) is None

    def test_cleanup_expired(self) -> None:
        self.manager.begin_login()
        self.clock.now += 700

        assert self.manager.cleanup_expired() == (0, 1)


class TestResolveUserId:
    """Test cases for picking the user identifier."""

    def test_prefers_id(self) -> None:
        assert resolve_user_id({"id": "u1", "email": "a@b.c"}) == "u1"

    def test_unwraps_response_envelope(self) -> None:
        assert resolve_user_id({"response": {"email": "a@b.c"}}) == "a@b.c"

    def test_numeric_id(self) -> None:
        assert resolve_user_id({"id": 42}) == "42"

    def test_rejects_non_object(self) -> None:
        with pytest.raises(ValueError):
            resolve_user_id(["u1"])


class TestTokenResponse:
    """Test cases for parsing the token endpoint body."""

    @pytest.mark.parametrize("body", [{}, {"expires_in": None}])
    def test_missing_lifetime_uses_default(self, body: dict) -> None:
        token = TokenResponse.from_dict({"access_token": "tok1", **body})
        assert token.expires_in == 3600

    def test_zero_lifetime_is_kept(self) -> None:
        token = TokenResponse.from_dict({"access_token": "tok1", "expires_in": 0})
        assert token.expires_in == 0

    def test_invalid_lifetime(self) -> None:
        with pytest.raises(ValueError):
            TokenResponse.from_dict({"access_token": "tok1", "expires_in": "soon"})


class TestTokenExchangeClient:
    """Test cases for the provider token exchange."""

    async def test_exchange_code_posts_form(self) -> None:
        captured: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["form"] = dict(urllib.parse.parse_qsl(request.content.decode()))
            return httpx.Response(
                200,
                json={
                    "access_token": "tok1",
                    "refresh_token": "ref1",
                    "expires_in": 28800,
                    "token_type": "Bearer",
                },
            )

        client = TokenExchangeClient(
            make_settings(), transport=httpx.MockTransport(handler)
        )
        token = await client.exchange_code("abc", "verifier")

        assert captured["url"] == "https://auth.example.com/oauth2/v3/token"
        assert captured["form"] == {
            "grant_type": "authorization_code",
            "client_id": "test-client",
            "client_secret": "test-secret",
            "code": "abc",
            "redirect_uri": "http://127.0.0.1:3000/auth/callback",
            "code_verifier": "verifier",
            "audience": "https://fleet.example.com",
        }
        assert token.access_token == "tok1"
        assert token.refresh_token == "ref1"
        assert token.expires_in == 28800

    @patch("httpx.AsyncClient")
    async def test_exchange_code_request_failure(
        self, mock_client_class: MagicMock
    ) -> None:
        mock_client = MagicMock()
        mock_client.post = AsyncMock(side_effect=httpx.HTTPError("Network error"))
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)
        mock_client_class.return_value = mock_client

        client = TokenExchangeClient(make_settings())

        with pytest.raises(httpx.HTTPError):
            await client.exchange_code("abc", "verifier")

    async def test_exchange_code_error_status(self) -> None:
        transport = httpx.MockTransport(
            lambda request: httpx.Response(401, json={"error": "invalid_grant"})
        )
        client = TokenExchangeClient(make_settings(), transport=transport)

        with pytest.raises(httpx.HTTPStatusError):
            await client.exchange_code("abc", "verifier")

    async def test_exchange_code_without_access_token(self) -> None:
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"token_type": "Bearer"})
        )
        client = TokenExchangeClient(make_settings(), transport=transport)

        with pytest.raises(ValueError):
            await client.exchange_code("abc", "verifier")

    async def test_fetch_profile_sends_bearer(self) -> None:
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"response": {"email": "a@b.c"}})

        client = TokenExchangeClient(
            make_settings(), transport=httpx.MockTransport(handler)
        )
        profile = await client.fetch_profile("tok1")

        assert seen == {
            "auth": "Bearer tok1",
            "url": "https://fleet.example.com/api/1/users/me",
        }
        assert profile == {"response": {"email": "a@b.c"}}


def test_session_expiry_uses_wall_clock_by_default() -> None:
    manager = OAuthManager(make_settings(), exchange_client=make_exchange_client())
    redirect = manager.begin_login()

    session_id = asyncio.run(manager.complete_login("abc", redirect.state))

    session = manager.session_store.get(session_id)
    assert session is not None
    assert session.expires_at == pytest.approx(time.time() + 3600, abs=5)
