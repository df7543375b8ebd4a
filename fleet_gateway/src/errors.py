"""Error taxonomy for the Fleet Gateway.

Every failure surfaced to a client is a GatewayError subclass, so handlers can
tell failures apart by kind and map them to an HTTP status in one place.
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for all errors reported to clients."""

    status_code: int = 500
    kind: str = "gateway_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON body returned to clients."""
        return {"type": self.kind, "error": self.message}


class ProviderError(GatewayError):
    """The identity provider returned an error parameter at callback."""

    status_code = 400
    kind = "provider_error"

    def __init__(self, error: str, description: Optional[str] = None) -> None:
        self.error = error
        self.description = description or "Unknown error"
        super().__init__(f"Identity provider error: {error} ({self.description})")

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["provider_error"] = self.error
        body["provider_error_description"] = self.description
        return body


class InvalidCallback(GatewayError):
    """The callback is missing the authorization code or state."""

    status_code = 400
    kind = "invalid_callback"


class StateMismatch(GatewayError):
    """The callback state is unknown, expired or already consumed."""

    status_code = 400
    kind = "state_mismatch"


class ExchangeFailed(GatewayError):
    """The token exchange or profile fetch failed."""

    status_code = 500
    kind = "exchange_failed"


class Unauthenticated(GatewayError):
    """No live session backs the request."""

    status_code = 401
    kind = "unauthenticated"

    def __init__(
        self, message: str = "Authentication required", clear_cookie: bool = False
    ) -> None:
        super().__init__(message)
        self.clear_cookie = clear_cookie


class InvalidParameter(GatewayError):
    """A command parameter is outside its domain bounds."""

    status_code = 400
    kind = "invalid_parameter"


class UpstreamFailure(GatewayError):
    """The device-control API failed or returned a non-2xx status."""

    status_code = 502
    kind = "upstream_failure"

    def __init__(self, message: str, upstream_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["upstream_status"] = self.upstream_status
        return body
