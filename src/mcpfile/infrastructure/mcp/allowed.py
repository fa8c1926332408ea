"""Allow-list filtering for tools, prompts and resources."""

from collections.abc import Mapping
from typing import Any, Iterable, Optional, TypeVar

from mcpfile.config import AllowedConfig, CapabilityKind
from mcpfile.errors import FilteredError
from mcpfile.logger import get_logger

logger = get_logger("mcp.allowed")

T = TypeVar("T")

# Attribute identifying an item of each kind
_KEY_FIELDS: dict[str, str] = {
    "tools": "name",
    "prompts": "name",
    "resources": "uri",
}

_SINGULAR: dict[str, str] = {
    "tools": "tool",
    "prompts": "prompt",
    "resources": "resource",
}


def item_key(kind: CapabilityKind, item: Any) -> str:
    """Name (or URI for resources) of a capability item."""
    field_name = _KEY_FIELDS[kind]
    if isinstance(item, Mapping):
        value = item.get(field_name)
    else:
        value = getattr(item, field_name, None)
    return "" if value is None else str(value)


class CapabilityFilter:
    """Applies a server's `allowed` configuration to capability operations."""

    def __init__(self, server_id: str, allowed: Optional[AllowedConfig] = None):
        self._server_id = server_id
        self._allowed = allowed
        self._sets: dict[str, Optional[frozenset[str]]] = {
            kind: self._allowed_set(kind) for kind in _KEY_FIELDS
        }

    def _allowed_set(self, kind: str) -> Optional[frozenset[str]]:
        if self._allowed is None:
            return None
        names = self._allowed.for_kind(kind)  # type: ignore[arg-type]
        return None if names is None else frozenset(names)

    def is_allowed(self, kind: CapabilityKind, name: str) -> bool:
        names = self._sets[kind]
        return names is None or name in names

    def filter(self, kind: CapabilityKind, items: Iterable[T]) -> list[T]:
        """Keep only the items whose name (URI for resources) is allowed."""
        items = list(items)
        if self._sets[kind] is None:
            return items

        kept = [item for item in items if self.is_allowed(kind, item_key(kind, item))]
        if len(kept) != len(items):
            logger.debug(f"[{self._server_id}] Filtered {len(items) - len(kept)} of {len(items)} {kind}")
        return kept

    def check(self, kind: CapabilityKind, name: str) -> None:
        """
        Raise if `name` is not an allowed item of `kind`.

        Raises:
            FilteredError: If an allow-list exists for `kind` and excludes `name`
        """
        if not self.is_allowed(kind, name):
            logger.warning(f"[{self._server_id}] Blocked access to {_SINGULAR[kind]} '{name}'")
            raise FilteredError(self._server_id, _SINGULAR[kind], name)
