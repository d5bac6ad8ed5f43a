"""Persist tracking state so cache/recycle zones survive process restarts."""

from __future__ import annotations

import os
from pathlib import Path

import orjson
import structlog

from rankzone.config.settings import TrackerConfig
from rankzone.lifecycle.state import TrackingState

log = structlog.get_logger(__name__)


class TrackingStateStore:
    """One JSON document per tracked universe under ``state_path``."""

    def __init__(self, state_path: str | Path) -> None:
        self.state_path = Path(state_path)
        self.state_path.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        return self.state_path / f"{name}.json"

    def save(self, state: TrackingState) -> None:
        """Write the state atomically (temp file, then rename)."""
        target = self.path_for(state.name)
        tmp = target.with_suffix(".json.tmp")
        with open(tmp, "wb") as f:
            f.write(orjson.dumps(state.to_dict(), option=orjson.OPT_INDENT_2))
        os.replace(tmp, target)

    def load(self, name: str, config: TrackerConfig) -> TrackingState:
        """Load a persisted state, or an empty one when missing or unreadable.

        The configured ``config`` always wins over the persisted copy.
        """
        target = self.path_for(name)
        if not target.exists():
            log.info("tracking_state_missing", tracker=name, path=str(target))
            return TrackingState(name=name, config=config)
        try:
            with open(target, "rb") as f:
                data = orjson.loads(f.read())
            if not isinstance(data, dict):
                raise ValueError(f"expected an object, got {type(data).__name__}")
            state = TrackingState.from_dict(name, data, config=config)
        except Exception as exc:
            log.warning(
                "tracking_state_load_failed",
                tracker=name,
                path=str(target),
                error=str(exc),
            )
            return TrackingState(name=name, config=config)
        zones = state.zones
        log.info(
            "tracking_state_loaded",
            tracker=name,
            cache_size=len(zones.cache),
            recycle_size=len(zones.recycle),
        )
        return state

    def clear(self, name: str) -> None:
        target = self.path_for(name)
        if target.exists():
            target.unlink()
