"""Shared OAuth utilities: callback parsing, cookies and HTML pages."""

from html import escape
from typing import Any, Dict, Optional

from fastapi import Request, Response

from fleet_gateway.src.oauth.models import CORRELATION_TTL_SECONDS
from fleet_gateway.src.settings import Settings
from fleet_gateway.src.tools.vehicle_tools import vehicle_state

STATE_COOKIE = "oauth_state"
VERIFIER_COOKIE = "code_verifier"

_PAGE_STYLE = """
            body { font-family: Arial, sans-serif; max-width: 1000px; margin: 0 auto; padding: 20px; }
            .auth-section { background: #f5f5f5; padding: 20px; border-radius: 8px; margin-bottom: 20px; }
            .vehicle-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(300px, 1fr)); gap: 20px; }
            .vehicle-card { background: white; border: 1px solid #ddd; border-radius: 8px; padding: 15px; }
            .button { display: inline-block; padding: 8px 16px; background: #007bff; color: white; text-decoration: none; border-radius: 4px; margin: 5px; }
            .danger { background: #dc3545; }
            .status { padding: 4px 8px; border-radius: 4px; font-size: 12px; font-weight: bold; }
            .online { background: #28a745; color: white; }
            .offline { background: #6c757d; color: white; }
            .asleep { background: #ffc107; color: black; }
            .unknown { background: #e0e0e0; color: black; }
"""


def extract_oauth_callback_params(request: Request) -> Dict[str, Any]:
    """Extract OAuth callback parameters.

    Args:
        request: FastAPI request object

    Returns:
        Dictionary with code, state, error and error_description parameters
    """
    return {
        "code": request.query_params.get("code"),
        "state": request.query_params.get("state"),
        "error": request.query_params.get("error"),
        "error_description": request.query_params.get("error_description"),
    }


def set_correlation_cookies(
    response: Response, cfg: Settings, state: str, code_verifier: str
) -> None:
    """Set the short-lived login cookies issued with the redirect."""
    for name, value in ((STATE_COOKIE, state), (VERIFIER_COOKIE, code_verifier)):
        response.set_cookie(
            name,
            value,
            max_age=CORRELATION_TTL_SECONDS,
            httponly=True,
            secure=cfg.COOKIE_SECURE,
            samesite="lax",
        )


def clear_correlation_cookies(response: Response) -> None:
    """Clear the login cookies once the callback has been handled."""
    response.delete_cookie(STATE_COOKIE)
    response.delete_cookie(VERIFIER_COOKIE)


def set_session_cookie(
    response: Response, cfg: Settings, name: str, session_id: str
) -> None:
    """Set the session cookie after a successful login."""
    response.set_cookie(
        name,
        session_id,
        max_age=cfg.SESSION_COOKIE_MAX_AGE,
        httponly=True,
        secure=cfg.COOKIE_SECURE,
        samesite="lax",
    )


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
    <head>
        <title>{escape(title)}</title>
        <style>{_PAGE_STYLE}</style>
    </head>
    <body>
{body}
    </body>
</html>
"""


def get_oauth_error_html(
    title: str, message: str, detail: Optional[str] = None
) -> str:
    """Generate the page shown when a login attempt fails.

    Args:
        title: Page heading
        message: Explanation shown to the user
        detail: Optional provider detail, e.g. the error description

    Returns:
        HTML content for the error page
    """
    detail_html = f"<p>Description: {escape(detail)}</p>" if detail else ""
    return _page(
        title,
        f"""        <h1>{escape(title)}</h1>
        <p>{escape(message)}</p>
        {detail_html}
        <a href="/">Go back</a>""",
    )


def get_landing_html(is_authenticated: bool) -> str:
    """Generate the landing page with the connection status."""
    if is_authenticated:
        status_html = """<p>Connected to Tesla</p>
            <a href="/logout" class="button danger">Disconnect</a>"""
        actions_html = """<div>
            <h2>Quick Actions</h2>
            <a href="/api/me" class="button">My Profile</a>
            <a href="/api/vehicles" class="button">My Vehicles</a>
            <a href="/dashboard" class="button">Dashboard</a>
        </div>"""
    else:
        status_html = """<p>Not connected to Tesla</p>
            <a href="/auth/login" class="button">Connect with Tesla</a>"""
        actions_html = ""

    return _page(
        "Tesla Fleet Gateway",
        f"""        <h1>Tesla Fleet Gateway</h1>
        <div class="auth-section">
            <h2>Authentication Status</h2>
            {status_html}
        </div>
        {actions_html}
        <div>
            <h2>API Endpoints</h2>
            <ul>
                <li><code>GET /api/me</code> - User profile</li>
                <li><code>GET /api/vehicles</code> - List vehicles</li>
                <li><code>GET /api/vehicles/:id/data</code> - Vehicle data</li>
                <li><code>GET /api/vehicles/:id/charge</code> - Charge state</li>
                <li><code>GET /api/vehicles/:id/location</code> - Location</li>
                <li><code>POST /api/vehicles/:id/wake</code> - Wake vehicle</li>
                <li><code>POST /api/vehicles/:id/charge/start</code> - Start charging</li>
                <li><code>POST /api/vehicles/:id/charge/stop</code> - Stop charging</li>
                <li><code>POST /api/vehicles/:id/charge/limit</code> - Set charge limit</li>
            </ul>
        </div>""",
    )


def get_dashboard_html(vehicles: Any) -> str:
    """Generate the dashboard listing the user's vehicles.

    Args:
        vehicles: Upstream vehicle list body ({"response": [...]})

    Returns:
        HTML content for the dashboard
    """
    records = vehicles.get("response") if isinstance(vehicles, dict) else None
    cards = []
    for vehicle in records or []:
        if not isinstance(vehicle, dict):
            continue
        vehicle_id = escape(str(vehicle.get("id", "")))
        state = vehicle_state(vehicle)
        wake_html = (
            f'<form method="post" action="/api/vehicles/{vehicle_id}/wake">'
            '<button class="button" type="submit">Wake Up</button></form>'
            if state == "asleep"
            else ""
        )
        cards.append(
            f"""            <div class="vehicle-card">
                <h3>{escape(str(vehicle.get("display_name") or "Vehicle"))}</h3>
                <p><strong>Model:</strong> {escape(str(vehicle.get("vehicle_name", "")))}</p>
                <p><strong>VIN:</strong> {escape(str(vehicle.get("vin", "")))}</p>
                <p><strong>Status:</strong> <span class="status {state}">{state}</span></p>
                <div>
                    <a href="/api/vehicles/{vehicle_id}/data" class="button">View Data</a>
                    <a href="/api/vehicles/{vehicle_id}/charge" class="button">Charge State</a>
                    {wake_html}
                </div>
            </div>"""
        )

    grid = "\n".join(cards) if cards else "<p>No vehicles found</p>"
    return _page(
        "Tesla Dashboard",
        f"""        <h1>Your Tesla Vehicles</h1>
        <div class="vehicle-grid">
{grid}
        </div>
        <br>
        <a href="/">Back to Home</a>""",
    )
