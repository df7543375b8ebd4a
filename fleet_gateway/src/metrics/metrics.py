"""
Metrics for the Fleet Gateway.

This module provides Prometheus metrics for gateway commands, upstream API
calls and login outcomes.
"""

from typing import Callable, Any
from functools import wraps

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.requests import Request
from starlette.responses import PlainTextResponse


# Define counter for command count
REQUEST_COUNT = Counter(
    "fleet_gateway_command_request_count",
    "Command request count",
    ["command"],
)

# Define histogram for command latency
REQUEST_LATENCY = Histogram(
    "fleet_gateway_command_request_duration",
    "Command request latency",
    ["command"],
    buckets=(0.05, 0.1, 0.5, 1.0, 5.0, 10.0, float("inf")),
)

# Define histogram for API call latency
API_CALL_LATENCY = Histogram(
    "fleet_api_call_duration_seconds",
    "Duration of calls to the Fleet API and identity provider",
    ["api_method"],
    buckets=(0.05, 0.1, 0.5, 1.0, 5.0, 10.0, float("inf")),
)

# Login outcomes, labelled by error kind or "success"
LOGIN_COUNT = Counter(
    "fleet_gateway_login_count",
    "OAuth login completions by outcome",
    ["outcome"],
)


def initiate_metrics(commands: list[str]) -> None:
    """Initiate metrics."""
    for command in commands:
        REQUEST_COUNT.labels(command=command)
        REQUEST_LATENCY.labels(command=command)


def track_command_usage() -> Callable:
    """Decorate gateway commands with this decorator to track usage metrics."""

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            command_name = func.__name__
            REQUEST_COUNT.labels(command=command_name).inc()
            with REQUEST_LATENCY.labels(command=command_name).time():
                response = await func(*args, **kwargs)
            return response

        return wrapper

    return decorator


# Metrics route
async def metrics(_request: Request) -> PlainTextResponse:
    """Metrics endpoint."""
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)
