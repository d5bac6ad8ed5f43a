"""Read-only operator API over the tracked universes."""

from __future__ import annotations

import time
from typing import Any, Mapping

from fastapi import FastAPI, HTTPException, Query

from rankzone import __version__
from rankzone.scheduler import ScanScheduler
from rankzone.tracker import Tracker


def create_app(
    trackers: Mapping[str, Tracker],
    schedulers: Mapping[str, ScanScheduler] | None = None,
) -> FastAPI:
    """Build the API around already constructed trackers."""
    app = FastAPI(
        title="rankzone operator API",
        description="Ranked watchlists with cache and recycle zones",
        version=__version__,
    )
    schedulers = schedulers or {}
    start_time = time.time()

    def _tracker(name: str) -> Tracker:
        tracker = trackers.get(name)
        if tracker is None:
            raise HTTPException(status_code=404, detail=f"unknown tracker: {name}")
        return tracker

    def _summary(name: str, tracker: Tracker) -> dict[str, Any]:
        zones = tracker.state.zones
        scheduler = schedulers.get(name)
        return {
            "name": name,
            "kind": tracker.state.kind.value,
            "last_scan_time": zones.last_scan_time.isoformat() if zones.last_scan_time else None,
            "ranked": len(zones.ranking),
            "cache_size": len(zones.cache),
            "recycle_size": len(zones.recycle),
            "scheduler": (
                {
                    "running": scheduler.running,
                    "busy": scheduler.busy,
                    "interval_sec": scheduler.interval_sec,
                    "ticks_run": scheduler.ticks_run,
                    "ticks_skipped": scheduler.ticks_skipped,
                }
                if scheduler
                else None
            ),
        }

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "healthy",
            "uptime_sec": round(time.time() - start_time, 1),
            "trackers": sorted(trackers),
        }

    @app.get("/trackers")
    async def list_trackers() -> dict[str, Any]:
        return {
            "count": len(trackers),
            "trackers": [_summary(name, tracker) for name, tracker in sorted(trackers.items())],
        }

    @app.get("/trackers/{name}")
    async def get_tracker(
        name: str,
        zone: str = Query(default="all", pattern="^(all|ranking|cache|recycle)$"),
    ) -> dict[str, Any]:
        view = _tracker(name).view()
        if zone == "all":
            return view
        return {"name": view["name"], "last_scan_time": view["last_scan_time"], zone: view[zone]}

    @app.get("/")
    async def root() -> dict[str, Any]:
        return {
            "name": "rankzone operator API",
            "version": __version__,
            "endpoints": {
                "GET /health": "Liveness and tracker names",
                "GET /trackers": "Zone sizes and scheduler status per tracker",
                "GET /trackers/{name}": "Ranking, cache and recycle zones of one tracker",
            },
        }

    return app
