"""
Out-of-band metadata attached to produced instances.

A ``MetadataRegistry`` belongs to one runtime instance. Entries are keyed by
the identity of the produced value and are always replaced whole.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, TypeVar

from .options import OrderIndex, PriorityLevel, PriorityOrder

T = TypeVar("T")

# Values of these types are interned or copied freely; identity means nothing.
_UNTRACKED = (int, float, complex, str, bytes, bool, type(None))


@dataclass(frozen=True)
class MetadataValue:
    """One provider's metadata, published to the ``di:metadata`` group."""

    value: Any
    type: Any
    name: str | None
    group: str | None
    metadata: tuple[Any, ...]


class MetadataRegistry:
    """Side-table from produced values to their metadata items."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # id -> (value, items); the value is held so its id stays unique.
        self._entries: dict[int, tuple[Any, tuple[Any, ...]]] = {}

    @staticmethod
    def trackable(value: Any) -> bool:
        return not isinstance(value, _UNTRACKED)

    def register(self, value: Any, *items: Any) -> None:
        """Attach ``items`` to ``value``, replacing anything registered before."""
        if not items or not self.trackable(value):
            return
        with self._lock:
            self._entries[id(value)] = (value, tuple(items))

    def lookup(self, value: Any) -> tuple[Any, ...] | None:
        if not self.trackable(value):
            return None
        with self._lock:
            entry = self._entries.get(id(value))
        if entry is None or entry[0] is not value:
            return None
        return entry[1]

    def find(self, value: Any, kind: type[T]) -> T | None:
        """First metadata item of ``value`` that is an instance of ``kind``."""
        for item in self.lookup(value) or ():
            if isinstance(item, kind):
                return item
        return None

    def find_all(self, value: Any, kind: type[T]) -> list[T]:
        return [item for item in self.lookup(value) or () if isinstance(item, kind)]

    def priority_index(self, value: Any) -> int | None:
        # The last Priority wins, as options apply in order.
        found = self.find_all(value, PriorityOrder)
        return found[-1].index if found else None

    def order_index(self, value: Any) -> int | None:
        found = self.find_all(value, OrderIndex)
        return found[-1].index if found else None

    def sort_key(self, value: Any) -> tuple[int, float]:
        """Key for priority ordering; unknown values go last among their priority."""
        priority = self.priority_index(value)
        order = self.order_index(value)
        return (
            int(PriorityLevel.NORMAL) if priority is None else priority,
            float("inf") if order is None else order,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
