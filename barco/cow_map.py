"""A copy-on-write dictionary populated through value creators."""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable
from typing import Any


class CopyOnWriteMap:
    """Dictionary with lock-free reads; writes copy the whole map under a lock."""

    def __init__(self) -> None:
        self._map: dict[Hashable, Any] = {}
        self._lock = threading.Lock()

    def load_or_store(
        self, key: Hashable, value_creator: Callable[[], Any]
    ) -> tuple[Any, bool]:
        """Return (value, loaded); create and store the value when missing.

        Errors raised by the creator propagate and nothing is stored.
        """
        current = self._map
        if key in current:
            return current[key], True

        with self._lock:
            current = self._map
            if key in current:
                return current[key], True
            value = value_creator()
            new_map = dict(current)
            new_map[key] = value
            self._map = new_map
            return value, False

    def get(self, key: Hashable, default: Any = None) -> Any:
        return self._map.get(key, default)

    def __contains__(self, key: object) -> bool:
        return key in self._map

    def __len__(self) -> int:
        return len(self._map)