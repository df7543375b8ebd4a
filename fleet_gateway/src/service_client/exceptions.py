"""
Exception handling utilities for the Fleet API client.

This module provides the decorator that turns transport and HTTP errors from
the Fleet API into UpstreamFailure.
"""

from typing import Callable, TypeVar, ParamSpec, Awaitable
from functools import wraps

import httpx

from fleet_gateway.src.errors import GatewayError, UpstreamFailure
from fleet_gateway.src.logger import log


# Type variables for the decorator
P = ParamSpec("P")
T = TypeVar("T")


def sanitize_exceptions(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """
    Decorate a function to sanitize exceptions from API calls.

    The operation name for logging is automatically derived from the function name.
    The upstream status is kept on the raised UpstreamFailure; the response body
    is logged but not assumed to be well formed.

    Returns:
        Decorated function that catches and sanitizes exceptions
    """

    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        operation_name = func.__name__
        try:
            return await func(*args, **kwargs)
        except GatewayError:
            raise
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            log.error(
                "API error during %s: Status: %s, Reason: %s, Body: %s",
                operation_name,
                status,
                e.response.reason_phrase,
                e.response.text[:500],
            )
            raise UpstreamFailure(
                f"Fleet API error during {operation_name}: Status {status}",
                upstream_status=status,
            ) from e
        except httpx.HTTPError as e:
            log.error("Transport error during %s: %s", operation_name, str(e))
            raise UpstreamFailure(
                f"Fleet API unreachable during {operation_name}"
            ) from e

    return wrapper
