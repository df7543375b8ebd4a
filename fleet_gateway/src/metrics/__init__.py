"""
Metrics module for the Fleet Gateway.

This module provides metrics functionality for tracking command usage and performance.
"""

from .metrics import (
    API_CALL_LATENCY,
    LOGIN_COUNT,
    initiate_metrics,
    metrics,
    track_command_usage,
)

__all__ = [
    "API_CALL_LATENCY",
    "LOGIN_COUNT",
    "initiate_metrics",
    "metrics",
    "track_command_usage",
]
