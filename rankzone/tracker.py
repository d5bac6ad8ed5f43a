"""One tracked universe: a full scan tick and its read-only view."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Any, Callable

import structlog

from rankzone.connectors.source import KlineSource, MetricSource
from rankzone.features.ema import EmaReading, EmaStreakCalculator
from rankzone.lifecycle.manager import LifecycleManager, TickReport
from rankzone.lifecycle.state import CacheEntry, RecycledEntry, TrackingState
from rankzone.lifecycle.store import TrackingStateStore
from rankzone.models import SymbolSnapshot, utc_now
from rankzone.monitoring.metrics import Metrics
from rankzone.ranking import rank, ranks_descending, score_function_for

log = structlog.get_logger(__name__)

_INTERVAL_UNITS_MS = {"m": 60_000, "h": 3_600_000, "d": 86_400_000, "w": 604_800_000}


def interval_ms(interval: str) -> int:
    """Length of a kline interval such as ``15m``, ``1h`` or ``1d`` in milliseconds."""
    try:
        return int(interval[:-1]) * _INTERVAL_UNITS_MS[interval[-1]]
    except (KeyError, ValueError, IndexError) as exc:
        raise ValueError(f"unsupported kline interval: {interval!r}") from exc


class Tracker:
    """Rank, reconcile and annotate one universe per tick."""

    def __init__(
        self,
        state: TrackingState,
        source: MetricSource,
        store: TrackingStateStore | None = None,
        kline_source: KlineSource | None = None,
        manager: LifecycleManager | None = None,
        metrics: Metrics | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.state = state
        self.source = source
        self.store = store
        self.kline_source = kline_source
        self.manager = manager or LifecycleManager()
        self.metrics = metrics
        self._clock = clock
        config = state.config
        self.score_fn = score_function_for(state.kind)
        self.descending = ranks_descending(state.kind)
        self.ema: EmaStreakCalculator | None = None
        if config.ema_enabled and kline_source is not None:
            self.ema = EmaStreakCalculator(config.ema_period, config.kline_window)
        self._interval_ms = interval_ms(config.ema_interval)

    @property
    def name(self) -> str:
        return self.state.name

    async def run_tick(self, now: datetime | None = None) -> TickReport | None:
        """Run one scan. Returns ``None`` when the metric source failed."""
        started = time.perf_counter()
        try:
            universe = await self.source.snapshot()
        except Exception as exc:
            log.warning("tick_aborted_source_fault", tracker=self.name, error=str(exc))
            if self.metrics:
                self.metrics.scan_tick_failures_total.labels(tracker=self.name).inc()
            return None

        now = now or self._clock()
        config = self.state.config
        ranked = rank(
            universe,
            self.score_fn,
            config.top_k,
            descending=self.descending,
            min_score=config.min_score,
            min_market_cap=config.min_market_cap,
            max_market_cap=config.max_market_cap,
        )
        report = self.manager.reconcile(self.state, ranked, universe, now)

        if self.ema is not None:
            try:
                await self._update_technicals(universe, now)
            except Exception:
                # Zones are already published; keep persisting them.
                log.exception("ema_update_failed", tracker=self.name)

        self._persist()

        duration = time.perf_counter() - started
        if self.metrics:
            self.metrics.record_tick(
                self.name,
                duration,
                report.transitions,
                report.cache_size,
                report.recycle_size,
                len(report.ranked),
            )
        log.info(
            "tick_completed",
            tracker=self.name,
            universe=len(universe),
            ranked=len(report.ranked),
            promoted=len(report.promoted),
            recycled=len(report.recycled),
            deleted=len(report.deleted),
            cache_size=report.cache_size,
            recycle_size=report.recycle_size,
            duration_ms=round(duration * 1000, 2),
        )
        return report

    def _persist(self) -> None:
        if self.store is None:
            return
        try:
            self.store.save(self.state)
        except Exception as exc:
            log.warning("tracking_state_save_failed", tracker=self.name, error=str(exc))
            if self.metrics:
                self.metrics.state_persist_failures_total.labels(tracker=self.name).inc()

    def touched_symbols(self) -> set[str]:
        zones = self.state.zones
        return {entry.symbol for entry in zones.ranking} | set(zones.cache)

    async def _update_technicals(self, universe: list[SymbolSnapshot], now: datetime) -> None:
        prices = {snapshot.symbol: snapshot.last_price for snapshot in universe}
        touched = self.touched_symbols()
        now_ms = int(now.timestamp() * 1000)
        await asyncio.gather(
            *(
                self._update_symbol(symbol, prices[symbol], now_ms)
                for symbol in sorted(touched)
                if symbol in prices
            )
        )
        keep = touched | set(self.state.zones.recycle)
        for symbol in self.ema.symbols():
            if symbol not in keep:
                self.ema.forget(symbol)

    async def _update_symbol(self, symbol: str, price: float, now_ms: int) -> None:
        ema = self.ema
        last_closed = ema.last_close_time(symbol)
        if last_closed is not None and now_ms < last_closed + self._interval_ms:
            # No kline has closed since the last fetch; revise the live close.
            ema.update_last(symbol, price)
            return
        try:
            rows = await self.kline_source.closes(
                symbol, self.state.config.ema_interval, self.state.config.kline_window
            )
        except Exception as exc:
            log.warning("ema_kline_fetch_failed", tracker=self.name, symbol=symbol, error=str(exc))
            if symbol in ema:
                ema.update_last(symbol, price)
            return
        if last_closed is None:
            if not rows:
                log.debug("ema_no_closed_klines", tracker=self.name, symbol=symbol)
                return
            closes = [close for _, close in rows]
            ema.bootstrap(symbol, [*closes, price], last_close_time=rows[-1][0])
            return
        fresh = [(close_time, close) for close_time, close in rows if close_time > last_closed]
        if not fresh:
            ema.update_last(symbol, price)
            return
        # The live slot becomes the first newly closed kline.
        first_time, first_close = fresh[0]
        ema.update_last(symbol, first_close, close_time=first_time)
        for close_time, close in fresh[1:]:
            ema.update(symbol, close, close_time=close_time)
        ema.update(symbol, price)

    def ema_reading(self, symbol: str) -> EmaReading | None:
        if self.ema is None:
            return None
        return self.ema.reading(symbol)

    def _cache_payload(self, entry: CacheEntry, now: datetime) -> dict[str, Any]:
        config = self.state.config
        payload = entry.to_dict()
        payload.update(
            {
                "price_gain_from_entry_pct": entry.price_gain_from_entry_pct,
                "retrace_pct": entry.retrace_pct,
                "zone": entry.zone(config.zone1_threshold_pct, config.zone2_threshold_pct),
                "remaining_hours": entry.remaining_hours(now),
                "cached_hours": entry.cached_hours(now),
            }
        )
        reading = self.ema_reading(entry.symbol)
        payload["ema"] = reading.to_dict() if reading else None
        return payload

    def _recycle_payload(self, recycled: RecycledEntry, now: datetime) -> dict[str, Any]:
        payload = recycled.to_dict()
        payload["remaining_grace_hours"] = recycled.remaining_grace_hours(now)
        payload["cached_hours"] = recycled.cached_hours
        payload["price_gain_from_entry_pct"] = recycled.entry.price_gain_from_entry_pct
        payload["retrace_pct"] = recycled.entry.retrace_pct
        return payload

    def view(self, now: datetime | None = None) -> dict[str, Any]:
        """Read-only payload of the current zone generation."""
        now = now or self._clock()
        zones = self.state.zones
        ranking = []
        for entry in zones.ranking:
            item = entry.to_dict()
            reading = self.ema_reading(entry.symbol)
            item["ema"] = reading.to_dict() if reading else None
            ranking.append(item)
        cache = sorted(
            zones.cache.values(),
            key=lambda e: (e.rank is None, e.rank or 0, e.symbol),
        )
        recycle = sorted(zones.recycle.values(), key=lambda r: (r.recycle_time, r.symbol))
        return {
            "name": self.name,
            "kind": self.state.kind.value,
            "direction": self.state.direction.value,
            "config": self.state.config.model_dump(),
            "last_scan_time": zones.last_scan_time.isoformat() if zones.last_scan_time else None,
            "ranking": ranking,
            "cache": [self._cache_payload(entry, now) for entry in cache],
            "recycle": [self._recycle_payload(entry, now) for entry in recycle],
        }
