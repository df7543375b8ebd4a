"""Authentication gate and request middleware for the Fleet Gateway."""

import time
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from fleet_gateway.src.errors import Unauthenticated
from fleet_gateway.src.logger import log
from fleet_gateway.src.oauth.models import Session
from fleet_gateway.src.oauth.store import SessionStore

SESSION_COOKIE = "session_id"


class SessionGate:
    """Resolves the caller's session on protected routes.

    Used as a FastAPI dependency. The resolved session is attached to
    request.state.session and trusted for the rest of the request, even if it
    expires while the request is in flight.
    """

    def __init__(self, session_store: SessionStore) -> None:
        """Initialize gate.

        Args:
            session_store: Store the session cookie is resolved against
        """
        self.session_store = session_store

    async def __call__(self, request: Request) -> Session:
        """Resolve the session for a request.

        Args:
            request: Incoming request

        Returns:
            The live session

        Raises:
            Unauthenticated: If the cookie is missing or its session is gone
        """
        session_id = request.cookies.get(SESSION_COOKIE)
        if not session_id:
            raise Unauthenticated()

        session = self.session_store.get(session_id)
        if session is None:
            log.info("Rejected request to %s with stale session", request.url.path)
            raise Unauthenticated(clear_cookie=True)

        request.state.session = session
        return session


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Logs one line per request with its status and duration."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        log.info(
            "%s %s %s %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response
