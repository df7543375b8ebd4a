"""OAuth data models for type safety and clarity."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

# Lifetime of a pending login attempt (state + PKCE verifier)
CORRELATION_TTL_SECONDS = 600

# Token lifetime assumed when the provider omits expires_in
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


@dataclass
class OAuthCorrelation:
    """One in-flight login attempt.

    Pairs the CSRF state echoed by the identity provider with the PKCE code
    verifier that must be presented again at token exchange.
    """

    state: str
    code_verifier: str
    issued_at: float = field(default_factory=time.time)
    ttl: int = CORRELATION_TTL_SECONDS

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check if the login attempt is too old.

        Args:
            now: Current epoch time (defaults to time.time())

        Returns:
            True if the correlation is expired, False otherwise
        """
        current = time.time() if now is None else now
        return current - self.issued_at >= self.ttl


@dataclass
class Session:
    """Server-side record linking a session cookie to a provider access token."""

    session_id: str
    access_token: str
    refresh_token: Optional[str]
    user_id: str
    expires_at: float

    def is_expired(self, now: Optional[float] = None) -> bool:
        """Check if session is expired.

        Returns:
            True if session is expired, False otherwise
        """
        current = time.time() if now is None else now
        return current >= self.expires_at


@dataclass
class TokenResponse:
    """Result of an authorization code exchange."""

    access_token: str
    refresh_token: Optional[str]
    expires_in: int = DEFAULT_TOKEN_LIFETIME_SECONDS
    token_type: str = "Bearer"
    scope: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenResponse":
        """Create from the provider's token endpoint JSON.

        Raises:
            ValueError: If the body carries no access token or a bad lifetime
        """
        access_token = data.get("access_token")
        if not access_token:
            raise ValueError("Token response has no access_token")

        expires_in = data.get("expires_in")
        if expires_in is None:
            expires_in = DEFAULT_TOKEN_LIFETIME_SECONDS
        try:
            expires_in = int(expires_in)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid expires_in: {expires_in!r}") from e

        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or None,
            expires_in=expires_in,
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope"),
        )


@dataclass
class LoginRedirect:
    """Authorization URL plus the correlation values issued with it."""

    url: str
    state: str
    code_verifier: str


def resolve_user_id(profile: Any) -> str:
    """Pick a stable user identifier out of a provider profile.

    The profile may be wrapped in a "response" envelope. A stable id is
    preferred; the email is only used when no id is present.

    Args:
        profile: Decoded profile JSON

    Returns:
        User identifier

    Raises:
        ValueError: If the profile carries no usable identifier
    """
    if isinstance(profile, dict) and isinstance(profile.get("response"), dict):
        profile = profile["response"]
    if not isinstance(profile, dict):
        raise ValueError("Profile response is not an object")

    for key in ("id", "user_id", "email"):
        value = profile.get(key)
        if value not in (None, ""):
            return str(value)
    raise ValueError("Profile response has no user identifier")
