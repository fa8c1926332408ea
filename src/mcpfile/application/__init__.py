"""Application layer - multi-server supervision."""

from .client_manager import ClientManager, ManagerConfig, ManagerHooks, ReloadResult
from .registry import ServerRegistry

__all__ = [
    "ClientManager",
    "ManagerConfig",
    "ManagerHooks",
    "ReloadResult",
    "ServerRegistry",
]
