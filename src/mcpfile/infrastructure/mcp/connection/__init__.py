"""Connection management components for managed MCP clients."""

from .health import HealthChecker
from .lifecycle import ConnectionLifecycle
from .reconnect import ExponentialBackoffStrategy, ReconnectionStrategy

__all__ = [
    "ReconnectionStrategy",
    "ExponentialBackoffStrategy",
    "HealthChecker",
    "ConnectionLifecycle",
]
