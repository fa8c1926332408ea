"""MCP client infrastructure: SDK transport, allow-list filtering and the managed client."""

from .allowed import CapabilityFilter
from .client import ManagedClient
from .transport import SdkTransport, TransportFactory, create_transport

__all__ = [
    "CapabilityFilter",
    "ManagedClient",
    "SdkTransport",
    "TransportFactory",
    "create_transport",
]
