"""Cache/recycle zone lifecycle."""

from rankzone.lifecycle.manager import LifecycleManager, TickReport
from rankzone.lifecycle.state import (
    CacheEntry,
    RecycledEntry,
    TrackingState,
    ZoneInvariantError,
    ZoneMaps,
)
from rankzone.lifecycle.store import TrackingStateStore

__all__ = [
    "CacheEntry",
    "LifecycleManager",
    "RecycledEntry",
    "TickReport",
    "TrackingState",
    "TrackingStateStore",
    "ZoneInvariantError",
    "ZoneMaps",
]
