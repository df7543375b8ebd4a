"""OAuth authentication module for the Fleet Gateway.

This module provides the OAuth2 authorization-code flow with PKCE, the session
and login-state stores, and the authentication gate for protected routes.
"""

from fleet_gateway.src.oauth.exchange import TokenExchangeClient
from fleet_gateway.src.oauth.manager import OAuthManager
from fleet_gateway.src.oauth.middleware import (
    SESSION_COOKIE,
    RequestLogMiddleware,
    SessionGate,
)
from fleet_gateway.src.oauth.models import (
    LoginRedirect,
    OAuthCorrelation,
    Session,
    TokenResponse,
)
from fleet_gateway.src.oauth.store import (
    CorrelationStore,
    InMemoryCorrelationStore,
    InMemorySessionStore,
    SessionStore,
)

__all__ = [
    # Manager
    "OAuthManager",
    "TokenExchangeClient",
    # Middleware
    "SESSION_COOKIE",
    "SessionGate",
    "RequestLogMiddleware",
    # Models
    "LoginRedirect",
    "OAuthCorrelation",
    "Session",
    "TokenResponse",
    # Store
    "SessionStore",
    "CorrelationStore",
    "InMemorySessionStore",
    "InMemoryCorrelationStore",
]
