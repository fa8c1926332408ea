"""Copy-on-write registry keyed by server id."""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Generic, Iterable, Optional, TypeVar

V = TypeVar("V")


class ServerRegistry(Generic[V]):
    """
    Server-id keyed mapping updated by whole-value replacement.

    Every write builds a new dict and swaps it in, so a snapshot handed out
    earlier never changes under its reader.
    """

    def __init__(self, items: Optional[Mapping[str, V]] = None):
        self._items: Mapping[str, V] = MappingProxyType(dict(items or {}))

    def snapshot(self) -> Mapping[str, V]:
        """Read-only view of the current contents."""
        return self._items

    def get(self, server_id: str) -> Optional[V]:
        return self._items.get(server_id)

    def ids(self) -> list[str]:
        return list(self._items.keys())

    def put(self, server_id: str, value: V) -> Mapping[str, V]:
        updated = dict(self._items)
        updated[server_id] = value
        self._items = MappingProxyType(updated)
        return self._items

    def put_many(self, values: Iterable[tuple[str, V]]) -> Mapping[str, V]:
        updated = dict(self._items)
        updated.update(values)
        self._items = MappingProxyType(updated)
        return self._items

    def remove(self, server_id: str) -> Optional[V]:
        if server_id not in self._items:
            return None
        updated = dict(self._items)
        value = updated.pop(server_id)
        self._items = MappingProxyType(updated)
        return value

    def clear(self) -> None:
        self._items = MappingProxyType({})

    def __contains__(self, server_id: object) -> bool:
        return server_id in self._items

    def __len__(self) -> int:
        return len(self._items)
