"""FastAPI application setup for the Fleet Gateway.

This module builds the app: OAuth login routes, the session-gated vehicle
command routes, error handlers, and the background sweep of expired state.
"""

import asyncio
import contextlib
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fleet_gateway.src.errors import (
    GatewayError,
    InvalidParameter,
    ProviderError,
    StateMismatch,
    Unauthenticated,
)
from fleet_gateway.src.logger import configure_logging, log
from fleet_gateway.src.metrics import initiate_metrics, metrics
from fleet_gateway.src.oauth import (
    SESSION_COOKIE,
    OAuthManager,
    RequestLogMiddleware,
    Session,
    SessionGate,
)
from fleet_gateway.src.oauth.utils import (
    STATE_COOKIE,
    clear_correlation_cookies,
    extract_oauth_callback_params,
    get_dashboard_html,
    get_landing_html,
    get_oauth_error_html,
    set_correlation_cookies,
    set_session_cookie,
)
from fleet_gateway.src.settings import Settings, settings
from fleet_gateway.src.tools import vehicle_tools

COMMANDS = [
    "get_profile",
    "list_vehicles",
    "get_vehicle_data",
    "get_charge_state",
    "get_vehicle_location",
    "wake_vehicle",
    "start_charging",
    "stop_charging",
    "set_charge_limit",
]


async def sweep_expired(manager: OAuthManager, interval: int) -> None:
    """Periodically drop expired sessions and login states.

    Lookups already evict lazily; this only bounds memory.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            manager.cleanup_expired()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log.error("Store sweep failed: %s", e, exc_info=True)


def create_app(
    cfg: Optional[Settings] = None, manager: Optional[OAuthManager] = None
) -> FastAPI:
    """Build the gateway application.

    Args:
        cfg: Settings to use (defaults to the process settings)
        manager: OAuth manager to use (defaults to one built from cfg)

    Returns:
        The FastAPI application
    """
    cfg = cfg or settings
    manager = manager or OAuthManager(cfg)
    require_session = SessionGate(manager.session_store)

    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        sweeper = None
        if cfg.STORE_SWEEP_INTERVAL > 0:
            sweeper = asyncio.create_task(
                sweep_expired(manager, cfg.STORE_SWEEP_INTERVAL)
            )
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sweeper

    app = FastAPI(title="Tesla Fleet Gateway", lifespan=lifespan)
    app.state.settings = cfg
    app.state.oauth_manager = manager

    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.CORS_ALLOW_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    initiate_metrics(COMMANDS)
    app.add_route("/metrics", metrics)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(
        request: Request, exc: GatewayError
    ) -> JSONResponse:
        if exc.status_code >= 500:
            log.error("%s on %s: %s", exc.kind, request.url.path, exc.message)
        response = JSONResponse(exc.to_dict(), status_code=exc.status_code)
        if isinstance(exc, Unauthenticated) and exc.clear_cookie:
            response.delete_cookie(SESSION_COOKIE)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        _request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if exc.status_code == 404:
            return JSONResponse({"error": "Not found"}, status_code=404)
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error("Server error on %s: %s", request.url.path, exc, exc_info=True)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    @app.get("/", response_class=HTMLResponse)
    async def landing(request: Request) -> HTMLResponse:
        session = manager.get_session(request.cookies.get(SESSION_COOKIE))
        return HTMLResponse(get_landing_html(session is not None))

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/auth/login")
    async def login() -> RedirectResponse:
        redirect = manager.begin_login()
        response = RedirectResponse(redirect.url, status_code=302)
        set_correlation_cookies(response, cfg, redirect.state, redirect.code_verifier)
        return response

    @app.get("/auth/callback")
    async def callback(request: Request) -> Any:
        params = extract_oauth_callback_params(request)
        try:
            cookie_state = request.cookies.get(STATE_COOKIE)
            if (
                not params["error"]
                and params["state"]
                and cookie_state
                and cookie_state != params["state"]
            ):
                log.error("OAuth state does not match the state cookie")
                raise StateMismatch("The authentication request was invalid or expired")

            session_id = await manager.complete_login(
                params["code"],
                params["state"],
                params["error"],
                params["error_description"],
            )
        except GatewayError as e:
            response = HTMLResponse(
                _callback_error_page(e), status_code=e.status_code
            )
            clear_correlation_cookies(response)
            return response

        response = RedirectResponse("/dashboard", status_code=302)
        set_session_cookie(response, cfg, SESSION_COOKIE, session_id)
        clear_correlation_cookies(response)
        return response

    @app.get("/logout")
    async def logout(request: Request) -> RedirectResponse:
        manager.logout(request.cookies.get(SESSION_COOKIE))
        response = RedirectResponse("/", status_code=302)
        response.delete_cookie(SESSION_COOKIE)
        return response

    @app.get("/dashboard", response_class=HTMLResponse)
    async def dashboard(session: Session = Depends(require_session)) -> HTMLResponse:
        try:
            vehicles = await vehicle_tools.list_vehicles(session.access_token, cfg)
        except GatewayError as e:
            return HTMLResponse(
                get_oauth_error_html("Error", f"Failed to load vehicles: {e.message}"),
                status_code=e.status_code,
            )
        return HTMLResponse(get_dashboard_html(vehicles))

    @app.get("/api/me")
    async def me(session: Session = Depends(require_session)) -> Any:
        return await vehicle_tools.get_profile(session.access_token, cfg)

    @app.get("/api/vehicles")
    async def vehicles(session: Session = Depends(require_session)) -> Any:
        return await vehicle_tools.list_vehicles(session.access_token, cfg)

    @app.get("/api/vehicles/{vehicle_id}/data")
    async def vehicle_data(
        vehicle_id: str,
        endpoints: Optional[str] = None,
        session: Session = Depends(require_session),
    ) -> Any:
        return await vehicle_tools.get_vehicle_data(
            session.access_token,
            vehicle_id,
            vehicle_tools.parse_endpoints(endpoints),
            cfg,
        )

    @app.get("/api/vehicles/{vehicle_id}/charge")
    async def charge_state(
        vehicle_id: str, session: Session = Depends(require_session)
    ) -> Any:
        return await vehicle_tools.get_charge_state(
            session.access_token, vehicle_id, cfg
        )

    @app.get("/api/vehicles/{vehicle_id}/location")
    async def location(
        vehicle_id: str, session: Session = Depends(require_session)
    ) -> Any:
        return await vehicle_tools.get_vehicle_location(
            session.access_token, vehicle_id, cfg
        )

    @app.post("/api/vehicles/{vehicle_id}/wake")
    async def wake(vehicle_id: str, session: Session = Depends(require_session)) -> Any:
        return await vehicle_tools.wake_vehicle(session.access_token, vehicle_id, cfg)

    @app.post("/api/vehicles/{vehicle_id}/charge/start")
    async def charge_start(
        vehicle_id: str, session: Session = Depends(require_session)
    ) -> Any:
        return await vehicle_tools.start_charging(
            session.access_token, vehicle_id, cfg
        )

    @app.post("/api/vehicles/{vehicle_id}/charge/stop")
    async def charge_stop(
        vehicle_id: str, session: Session = Depends(require_session)
    ) -> Any:
        return await vehicle_tools.stop_charging(session.access_token, vehicle_id, cfg)

    @app.post("/api/vehicles/{vehicle_id}/charge/limit")
    async def charge_limit(
        vehicle_id: str, request: Request, session: Session = Depends(require_session)
    ) -> Any:
        try:
            body = await request.json()
        except ValueError as e:
            raise InvalidParameter("Request body must be a JSON object") from e
        if not isinstance(body, dict):
            raise InvalidParameter("Request body must be a JSON object")
        return await vehicle_tools.set_charge_limit(
            session.access_token, vehicle_id, body.get("percent"), cfg
        )

    log.info("Fleet Gateway routes registered")
    return app


def _callback_error_page(error: GatewayError) -> str:
    """Render the HTML page for a failed callback."""
    if isinstance(error, ProviderError):
        return get_oauth_error_html(
            "Authentication Error", f"Error: {error.error}", error.description
        )
    if error.status_code >= 500:
        return get_oauth_error_html(
            "Authentication Failed",
            "Failed to authenticate with Tesla. Please try again.",
        )
    return get_oauth_error_html(
        "Invalid Request", "The authentication request was invalid or expired."
    )


# Ensure logging is configured before any module-level log usage
configure_logging()

app = create_app()
