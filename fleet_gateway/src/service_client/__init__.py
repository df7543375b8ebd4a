"""Fleet API client package."""

from fleet_gateway.src.service_client.fleet_api import FleetApiClient

__all__ = ["FleetApiClient"]
