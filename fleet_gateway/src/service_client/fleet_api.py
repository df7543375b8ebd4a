"""
Client for the Tesla Fleet API.

This module provides the FleetApiClient class which forwards gateway commands
to the device-control API using a session's bearer token.
"""

from typing import Any, Dict, Optional, Sequence

import httpx

from fleet_gateway.src.logger import log
from fleet_gateway.src.metrics import API_CALL_LATENCY
from fleet_gateway.src.service_client.exceptions import sanitize_exceptions
from fleet_gateway.src.settings import get_setting

# Vehicle_data categories served by the convenience views
CHARGE_STATE = "charge_state"
LOCATION_DATA = "location_data"


class FleetApiClient:
    """
    Client for interacting with the Tesla Fleet API.

    Every method returns the decoded upstream body unchanged. Non-2xx answers
    and transport errors surface as UpstreamFailure.

    Args:
        access_token (str): The bearer token of the calling session.
        base_url (str): Fleet API base URL (defaults to FLEET_API_URL).
        timeout (float): Per-request timeout in seconds (defaults to HTTP_TIMEOUT).
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        access_token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the FleetApiClient with an access token."""
        self.access_token = access_token
        self.base_url = (base_url or get_setting("FLEET_API_URL")).rstrip("/")
        self.timeout = timeout if timeout is not None else get_setting("HTTP_TIMEOUT")
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        api_method: str,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Execute an API call with latency tracking.

        Args:
            api_method: Name used for the latency metric label
            method: HTTP method
            path: Path below the base URL
            params: Optional query parameters
            json_body: Optional JSON body

        Returns:
            The decoded response body
        """
        with API_CALL_LATENCY.labels(api_method=api_method).time():
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers=self._headers(),
                    params=params,
                    json=json_body,
                )
                response.raise_for_status()
        try:
            return response.json()
        except ValueError:
            return {"response": response.text}

    @sanitize_exceptions
    async def get_me(self) -> Any:
        """
        Get the profile of the authenticated user.

        Returns:
            The upstream profile body.
        """
        log.info("Fetching user profile")
        return await self._request("get_me", "GET", "/api/1/users/me")

    @sanitize_exceptions
    async def list_vehicles(self) -> Any:
        """
        List the vehicles of the authenticated user.

        Returns:
            The upstream vehicle list body.
        """
        log.info("Listing vehicles")
        result = await self._request("list_vehicles", "GET", "/api/1/vehicles")
        log.info("Successfully retrieved vehicle list")
        return result

    @sanitize_exceptions
    async def get_vehicle_data(
        self, vehicle_id: str, endpoints: Optional[Sequence[str]] = None
    ) -> Any:
        """
        Get live data of a vehicle.

        Args:
            vehicle_id: The vehicle identifier.
            endpoints: Optional data categories to restrict the response to.
                Forwarded as given; the full data set is requested when empty.

        Returns:
            The upstream vehicle data body.
        """
        params = {"endpoints": ";".join(endpoints)} if endpoints else None
        log.info(
            "Getting data for vehicle %s (endpoints: %s)",
            vehicle_id,
            list(endpoints) if endpoints else "all",
        )
        return await self._request(
            "get_vehicle_data",
            "GET",
            f"/api/1/vehicles/{vehicle_id}/vehicle_data",
            params=params,
        )

    async def get_charge_state(self, vehicle_id: str) -> Any:
        """Get the charge state view of a vehicle."""
        return await self.get_vehicle_data(vehicle_id, [CHARGE_STATE])

    async def get_location(self, vehicle_id: str) -> Any:
        """Get the location view of a vehicle."""
        return await self.get_vehicle_data(vehicle_id, [LOCATION_DATA])

    @sanitize_exceptions
    async def wake_vehicle(self, vehicle_id: str) -> Any:
        """
        Wake a vehicle.

        Args:
            vehicle_id: The vehicle identifier.

        Returns:
            The upstream body, including the vehicle's reported state.
        """
        log.info("Waking vehicle %s", vehicle_id)
        return await self._request(
            "wake_vehicle", "POST", f"/api/1/vehicles/{vehicle_id}/wake_up"
        )

    @sanitize_exceptions
    async def start_charging(self, vehicle_id: str) -> Any:
        """Start charging a vehicle."""
        log.info("Starting charge on vehicle %s", vehicle_id)
        return await self._request(
            "start_charging",
            "POST",
            f"/api/1/vehicles/{vehicle_id}/command/charge_start",
        )

    @sanitize_exceptions
    async def stop_charging(self, vehicle_id: str) -> Any:
        """Stop charging a vehicle."""
        log.info("Stopping charge on vehicle %s", vehicle_id)
        return await self._request(
            "stop_charging",
            "POST",
            f"/api/1/vehicles/{vehicle_id}/command/charge_stop",
        )

    @sanitize_exceptions
    async def set_charge_limit(self, vehicle_id: str, percent: int) -> Any:
        """
        Set the charge limit of a vehicle.

        The caller is responsible for validating the percentage.

        Args:
            vehicle_id: The vehicle identifier.
            percent: Charge limit in percent.

        Returns:
            The upstream command result body.
        """
        log.info("Setting charge limit of vehicle %s to %s%%", vehicle_id, percent)
        return await self._request(
            "set_charge_limit",
            "POST",
            f"/api/1/vehicles/{vehicle_id}/command/set_charge_limit",
            json_body={"percent": percent},
        )
