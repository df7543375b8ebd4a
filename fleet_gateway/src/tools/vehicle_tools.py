"""Vehicle commands of the Fleet Gateway.

Each command takes the access token of the calling session, validates its
parameters and forwards the request to the Fleet API. Vehicles report one of
the states in VEHICLE_STATES; commands never wake a vehicle implicitly, so
callers should wake an asleep vehicle before requesting its data or sending
it commands.
"""

import numbers
from typing import Any, Optional, Sequence

from fleet_gateway.src.errors import InvalidParameter
from fleet_gateway.src.logger import log
from fleet_gateway.src.metrics import track_command_usage
from fleet_gateway.src.service_client.fleet_api import FleetApiClient
from fleet_gateway.src.settings import Settings

VEHICLE_STATES = ("online", "offline", "asleep")

# Charge limits below this are rejected by the vehicles
MIN_CHARGE_LIMIT = 50
MAX_CHARGE_LIMIT = 100


def validate_charge_limit(percent: Any) -> int | float:
    """Check a requested charge limit against the accepted range.

    Args:
        percent: Requested limit in percent, as decoded from the request body

    Returns:
        The validated percentage

    Raises:
        InvalidParameter: If percent is missing, not a number or out of range
    """
    if percent is None:
        raise InvalidParameter("percent is required")
    # bool is an Integral subclass
    if isinstance(percent, bool) or not isinstance(percent, numbers.Real):
        raise InvalidParameter("percent must be a number")
    if not MIN_CHARGE_LIMIT <= percent <= MAX_CHARGE_LIMIT:
        raise InvalidParameter(
            f"Charge limit must be between {MIN_CHARGE_LIMIT} and {MAX_CHARGE_LIMIT}"
        )
    return percent


def parse_endpoints(raw: Optional[str]) -> Optional[list[str]]:
    """Split a comma-delimited endpoints query value.

    Args:
        raw: Query value such as "charge_state,location_data"

    Returns:
        The list of categories, or None when no category was given
    """
    if not raw:
        return None
    endpoints = [item.strip() for item in raw.split(",") if item.strip()]
    return endpoints or None


def vehicle_state(vehicle: Any) -> str:
    """Return the reported state of a vehicle record, or "unknown"."""
    state = vehicle.get("state") if isinstance(vehicle, dict) else None
    return state if state in VEHICLE_STATES else "unknown"


def fleet_client(access_token: str, cfg: Optional[Settings] = None) -> FleetApiClient:
    """Build a Fleet API client for one call, bound to the app's endpoint and timeout."""
    if cfg is None:
        return FleetApiClient(access_token)
    return FleetApiClient(
        access_token, base_url=cfg.FLEET_API_URL, timeout=cfg.HTTP_TIMEOUT
    )


@track_command_usage()
async def get_profile(access_token: str, cfg: Optional[Settings] = None) -> Any:
    """Get the profile of the signed-in user."""
    client = fleet_client(access_token, cfg)
    return await client.get_me()


@track_command_usage()
async def list_vehicles(access_token: str, cfg: Optional[Settings] = None) -> Any:
    """List the vehicles of the signed-in user."""
    client = fleet_client(access_token, cfg)
    return await client.list_vehicles()


@track_command_usage()
async def get_vehicle_data(
    access_token: str,
    vehicle_id: str,
    endpoints: Optional[Sequence[str]] = None,
    cfg: Optional[Settings] = None,
) -> Any:
    """Get live data of a vehicle.

    Args:
        access_token: Bearer token of the calling session
        vehicle_id: The vehicle identifier
        endpoints: Optional data categories; forwarded verbatim when given
        cfg: Settings of the calling app (defaults to the process settings)

    Returns:
        The upstream body, unmodified
    """
    client = fleet_client(access_token, cfg)
    return await client.get_vehicle_data(vehicle_id, endpoints)


@track_command_usage()
async def get_charge_state(
    access_token: str, vehicle_id: str, cfg: Optional[Settings] = None
) -> Any:
    """Get the charge state of a vehicle."""
    client = fleet_client(access_token, cfg)
    return await client.get_charge_state(vehicle_id)


@track_command_usage()
async def get_vehicle_location(
    access_token: str, vehicle_id: str, cfg: Optional[Settings] = None
) -> Any:
    """Get the location of a vehicle."""
    client = fleet_client(access_token, cfg)
    return await client.get_location(vehicle_id)


@track_command_usage()
async def wake_vehicle(
    access_token: str, vehicle_id: str, cfg: Optional[Settings] = None
) -> Any:
    """Wake a vehicle.

    The vehicle may take a while to come online; poll its state before sending
    further commands.
    """
    client = fleet_client(access_token, cfg)
    result = await client.wake_vehicle(vehicle_id)
    reported = result.get("response") if isinstance(result, dict) else None
    log.info("Vehicle %s reports state %s after wake", vehicle_id, vehicle_state(reported))
    return result


@track_command_usage()
async def start_charging(
    access_token: str, vehicle_id: str, cfg: Optional[Settings] = None
) -> Any:
    """Start charging a vehicle."""
    client = fleet_client(access_token, cfg)
    return await client.start_charging(vehicle_id)


@track_command_usage()
async def stop_charging(
    access_token: str, vehicle_id: str, cfg: Optional[Settings] = None
) -> Any:
    """Stop charging a vehicle."""
    client = fleet_client(access_token, cfg)
    return await client.stop_charging(vehicle_id)


@track_command_usage()
async def set_charge_limit(
    access_token: str,
    vehicle_id: str,
    percent: Any,
    cfg: Optional[Settings] = None,
) -> Any:
    """Set the charge limit of a vehicle.

    Args:
        access_token: Bearer token of the calling session
        vehicle_id: The vehicle identifier
        percent: Requested limit, 50 to 100 inclusive
        cfg: Settings of the calling app (defaults to the process settings)

    Returns:
        The upstream command result

    Raises:
        InvalidParameter: If percent is outside the accepted range; no upstream
            call is made in that case
    """
    percent = validate_charge_limit(percent)
    client = fleet_client(access_token, cfg)
    return await client.set_charge_limit(vehicle_id, percent)
