"""Promotion, renewal, expiry and deletion of zone entries."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable, Sequence

import structlog

from rankzone.lifecycle.state import (
    CacheEntry,
    RecycledEntry,
    TrackingState,
    ZoneMaps,
)
from rankzone.models import RankedEntry, SymbolSnapshot

log = structlog.get_logger(__name__)


@dataclass
class TickReport:
    """What one reconcile pass changed."""

    tracker: str
    scanned_at: datetime
    ranked: list[str] = field(default_factory=list)
    promoted: list[str] = field(default_factory=list)
    renewed: list[str] = field(default_factory=list)
    recycled: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    cache_size: int = 0
    recycle_size: int = 0

    @property
    def transitions(self) -> dict[str, int]:
        return {
            "promoted": len(self.promoted),
            "renewed": len(self.renewed),
            "recycled": len(self.recycled),
            "deleted": len(self.deleted),
        }

    def to_dict(self) -> dict:
        return {
            "tracker": self.tracker,
            "scanned_at": self.scanned_at.isoformat(),
            "ranked": len(self.ranked),
            "promoted": self.promoted,
            "renewed": self.renewed,
            "recycled": self.recycled,
            "deleted": self.deleted,
            "cache_size": self.cache_size,
            "recycle_size": self.recycle_size,
        }


class LifecycleManager:
    """Reconcile a :class:`TrackingState` against the latest ranking.

    Rules run in a fixed order: promotion, renewal, expiry sweep, recycle
    sweep. All changes are computed on copies and published in one step.
    """

    def _should_renew(self, state: TrackingState, cached: CacheEntry, ranked: RankedEntry) -> bool:
        if state.config.renewal_policy == "any":
            return True
        # rank_improved: back in the list after dropping out, or climbed
        return cached.rank is None or ranked.rank < cached.rank

    def reconcile(
        self,
        state: TrackingState,
        ranked: Sequence[RankedEntry],
        universe: Iterable[SymbolSnapshot],
        now: datetime,
    ) -> TickReport:
        current = state.zones
        cache: dict[str, CacheEntry] = dict(current.cache)
        recycle: dict[str, RecycledEntry] = dict(current.recycle)
        latest = {snapshot.symbol: snapshot for snapshot in universe}
        cache_ttl = state.cache_ttl
        report = TickReport(
            tracker=state.name,
            scanned_at=now,
            ranked=[entry.symbol for entry in ranked],
        )

        refreshed: set[str] = set()
        for entry in ranked:
            symbol = entry.symbol
            if symbol in recycle:
                # Recycled symbols wait out their grace window first.
                continue
            cached = cache.get(symbol)
            if cached is None:
                cache[symbol] = CacheEntry.promote(entry, state.direction, now, cache_ttl)
                report.promoted.append(symbol)
                log.info(
                    "cache_entry_promoted",
                    tracker=state.name,
                    symbol=symbol,
                    rank=entry.rank,
                    score=round(entry.score, 4),
                    price=entry.last_price,
                )
            else:
                reset = self._should_renew(state, cached, entry)
                cache[symbol] = cached.renew(entry, now, cache_ttl, reset_countdown=reset)
                if reset:
                    report.renewed.append(symbol)
                    log.debug("cache_entry_renewed", tracker=state.name, symbol=symbol, rank=entry.rank)
            refreshed.add(symbol)

        for symbol in list(cache):
            if symbol in refreshed:
                continue
            cached = cache[symbol]
            snapshot = latest.get(symbol)
            if snapshot is not None:
                cached = cached.observe(snapshot)
            elif cached.rank is not None:
                cached = replace(cached, rank=None)
            if cached.is_expired(now):
                recycle[symbol] = RecycledEntry.from_cache(cached, now, state.recycle_grace)
                del cache[symbol]
                report.recycled.append(symbol)
                log.info(
                    "cache_entry_recycled",
                    tracker=state.name,
                    symbol=symbol,
                    cached_hours=round(cached.cached_hours(now), 2),
                    price_gain_from_entry_pct=round(cached.price_gain_from_entry_pct, 2),
                )
            else:
                cache[symbol] = cached

        for symbol in list(recycle):
            if recycle[symbol].should_delete(now):
                del recycle[symbol]
                report.deleted.append(symbol)
                log.info("recycle_entry_deleted", tracker=state.name, symbol=symbol)

        state.publish(
            ZoneMaps(
                cache=cache,
                recycle=recycle,
                ranking=tuple(ranked),
                last_scan_time=now,
            )
        )
        report.cache_size = len(cache)
        report.recycle_size = len(recycle)
        return report
