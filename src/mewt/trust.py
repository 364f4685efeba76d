"""Bounded recency cache of past visual detections.

When a window shows no direct visual target, the engine scans the most
recent entries here; any target-class entry keeps the window visually
positive ("trust override"). This history-based smoothing is independent
of the time-based debounce in ``mewt.state``.
"""

from collections import OrderedDict
from typing import Any, Dict, Generic, Hashable, List, Optional, TypeVar

from mewt.types import TrustEntry

V = TypeVar("V")


class RecencyCache(Generic[V]):
    """Fixed-capacity least-recently-used cache.

    ``set`` and ``get`` both move the entry to the most-recent end; on
    overflow the least-recently-used entry is evicted.

    Args:
        capacity: Maximum number of entries (default: 20).
    """

    def __init__(self, capacity: int = 20):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._entries: "OrderedDict[Hashable, V]" = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def set(self, key: Hashable, value: V) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self._capacity:
            self._entries.popitem(last=False)
        self._entries[key] = value

    def get(self, key: Hashable) -> Optional[V]:
        if key not in self._entries:
            return None
        self._entries.move_to_end(key)
        return self._entries[key]

    def has(self, key: Hashable) -> bool:
        """Membership test that does not touch recency."""
        return key in self._entries

    def recent(self, count: int) -> List[V]:
        """Up to ``count`` most recently touched values, oldest first."""
        if count <= 0:
            return []
        values = list(self._entries.values())
        return values[-count:]

    def values(self) -> List[V]:
        return list(self._entries.values())

    def keys(self) -> List[Hashable]:
        return list(self._entries.keys())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def stats(self) -> Dict[str, Any]:
        size = len(self._entries)
        return {
            "size": size,
            "capacity": self._capacity,
            "utilization": size / self._capacity,
            "is_empty": size == 0,
            "is_full": size >= self._capacity,
        }


class TrustCache(RecencyCache[TrustEntry]):
    """Recency cache of TrustEntry records keyed by ``(category, t_ns)``.

    Args:
        capacity: Maximum number of remembered detections (default: 20).
        lookback: Number of recent entries consulted for trust (default: 10).
    """

    def __init__(self, capacity: int = 20, lookback: int = 10):
        super().__init__(capacity)
        self.lookback = lookback

    def record(self, entry: TrustEntry) -> None:
        self.set((entry.category, entry.t_ns), entry)

    def has_recent_target(self, lookback: Optional[int] = None) -> bool:
        """True if any of the last ``lookback`` entries is a target class."""
        count = self.lookback if lookback is None else lookback
        return any(entry.is_target_class for entry in self.recent(count))


__all__ = ["RecencyCache", "TrustCache"]
