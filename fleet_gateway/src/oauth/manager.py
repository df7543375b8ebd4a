"""OAuth authorization-code flow for the Fleet Gateway.

Drives a login attempt from the authorization redirect through the callback
and token exchange to a stored session:

    START -> REDIRECTED -> CALLBACK_RECEIVED -> TOKEN_EXCHANGED -> SESSION_CREATED

A failing attempt ends in StateMismatch, ProviderError or ExchangeFailed and
never leaves a session behind.
"""

import base64
import hashlib
import secrets
import time
import urllib.parse
from typing import Callable, Optional, Sequence, Tuple

import httpx

from fleet_gateway.src.errors import (
    ExchangeFailed,
    InvalidCallback,
    ProviderError,
    StateMismatch,
)
from fleet_gateway.src.logger import log
from fleet_gateway.src.metrics import LOGIN_COUNT
from fleet_gateway.src.oauth.exchange import TokenExchangeClient
from fleet_gateway.src.oauth.models import (
    CORRELATION_TTL_SECONDS,
    LoginRedirect,
    OAuthCorrelation,
    Session,
    resolve_user_id,
)
from fleet_gateway.src.oauth.store import (
    CorrelationStore,
    InMemoryCorrelationStore,
    InMemorySessionStore,
    SessionStore,
)
from fleet_gateway.src.settings import Settings


def generate_token() -> str:
    """Return an opaque, URL-safe random token carrying 256 bits of entropy."""
    return secrets.token_urlsafe(32)


def generate_pkce_challenge() -> tuple[str, str]:
    """Generate PKCE code verifier and challenge.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    code_verifier = (
        base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("utf-8").rstrip("=")
    )
    code_challenge = pkce_challenge(code_verifier)
    return code_verifier, code_challenge


def pkce_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge of a verifier."""
    return (
        base64.urlsafe_b64encode(hashlib.sha256(code_verifier.encode("utf-8")).digest())
        .decode("utf-8")
        .rstrip("=")
    )


class OAuthManager:
    """Coordinates the login flow between the browser, provider and stores."""

    def __init__(
        self,
        cfg: Settings,
        session_store: Optional[SessionStore] = None,
        correlation_store: Optional[CorrelationStore] = None,
        exchange_client: Optional[TokenExchangeClient] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize OAuth manager with configuration.

        Args:
            cfg: Settings holding the provider endpoints and credentials
            session_store: Store receiving created sessions
            correlation_store: Store holding pending login attempts
            exchange_client: Client used for the code exchange and profile fetch
            clock: Source of the current epoch time
        """
        self.authorization_url = cfg.FLEET_AUTH_URL
        self.client_id = cfg.FLEET_CLIENT_ID
        self.redirect_uri = cfg.FLEET_REDIRECT_URI
        self.default_scopes = list(cfg.OAUTH_SCOPES)
        self._clock = clock

        self.session_store = session_store or InMemorySessionStore(clock=clock)
        self.correlation_store = correlation_store or InMemoryCorrelationStore(
            clock=clock
        )
        self.exchange_client = exchange_client or TokenExchangeClient(cfg)

    def begin_login(
        self, requested_scopes: Optional[Sequence[str]] = None
    ) -> LoginRedirect:
        """Start a login attempt.

        Args:
            requested_scopes: Scopes to request (defaults to the configured scopes)

        Returns:
            The provider authorization URL with the issued state and verifier
        """
        state = generate_token()
        code_verifier, code_challenge = generate_pkce_challenge()
        scopes = list(requested_scopes) if requested_scopes else self.default_scopes

        self.correlation_store.put(
            OAuthCorrelation(
                state=state,
                code_verifier=code_verifier,
                issued_at=self._clock(),
                ttl=CORRELATION_TTL_SECONDS,
            )
        )

        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        url = f"{self.authorization_url}?{urllib.parse.urlencode(params)}"

        log.debug("Created authorization URL (scopes: %s)", params["scope"])
        return LoginRedirect(url=url, state=state, code_verifier=code_verifier)

    async def complete_login(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> str:
        """Finish a login attempt from the provider callback.

        Args:
            code: Authorization code from the callback
            state: State echoed by the provider
            error: Error parameter returned by the provider, if any
            error_description: Provider's description of the error

        Returns:
            Id of the newly created session

        Raises:
            ProviderError: If the provider reported an error
            InvalidCallback: If code or state is missing
            StateMismatch: If the state is unknown, expired or already consumed
            ExchangeFailed: If the token exchange or profile fetch fails
        """
        try:
            session_id = await self._complete_login(
                code, state, error, error_description
            )
        except (ProviderError, InvalidCallback, StateMismatch, ExchangeFailed) as e:
            LOGIN_COUNT.labels(outcome=e.kind).inc()
            raise
        LOGIN_COUNT.labels(outcome="success").inc()
        return session_id

    async def _complete_login(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str],
        error_description: Optional[str],
    ) -> str:
        if error:
            log.error("OAuth callback error: %s (%s)", error, error_description)
            raise ProviderError(error, error_description)

        if not code or not state:
            log.error("Missing code or state in OAuth callback")
            raise InvalidCallback("Missing authorization code or state parameter")

        # Consuming first makes a replayed or double-submitted callback fail here
        correlation = self.correlation_store.consume(state)
        if correlation is None:
            log.error("Unknown, expired or already used OAuth state")
            raise StateMismatch("The authentication request was invalid or expired")

        try:
            token = await self.exchange_client.exchange_code(
                code, correlation.code_verifier
            )
        except (httpx.HTTPError, ValueError) as e:
            log.error("Failed to exchange OAuth code for token: %s", e)
            raise ExchangeFailed("Failed to exchange authorization code") from e

        try:
            profile = await self.exchange_client.fetch_profile(token.access_token)
            user_id = resolve_user_id(profile)
        except (httpx.HTTPError, ValueError) as e:
            log.error("Failed to fetch user profile: %s", e)
            raise ExchangeFailed("Failed to fetch user profile") from e

        session = Session(
            session_id=generate_token(),
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            user_id=user_id,
            expires_at=self._clock() + token.expires_in,
        )
        session_id = self.session_store.create(session)

        log.info("OAuth login completed for user %s", user_id)
        return session_id

    def get_session(self, session_id: Optional[str]) -> Optional[Session]:
        """Look up a live session without failing on absence."""
        if not session_id:
            return None
        return self.session_store.get(session_id)

    def logout(self, session_id: Optional[str]) -> None:
        """Delete a session if present.

        Args:
            session_id: Session identifier from the client's cookie
        """
        if session_id:
            self.session_store.delete(session_id)
            log.info("Session logged out")

    def cleanup_expired(self) -> Tuple[int, int]:
        """Clean up expired sessions and login states.

        Returns:
            Tuple of (sessions removed, login states removed)
        """
        return (
            self.session_store.cleanup_expired(),
            self.correlation_store.cleanup_expired(),
        )
