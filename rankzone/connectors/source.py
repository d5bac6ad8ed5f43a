"""Metric source adapter: builds per-tick symbol snapshots from market data."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

import structlog

from rankzone.connectors.rest_client import BinanceMarketClient
from rankzone.connectors.supply import SupplyDataLoader
from rankzone.models import MetricSourceError, SymbolSnapshot

log = structlog.get_logger(__name__)


class MetricSource(Protocol):
    async def snapshot(self) -> list[SymbolSnapshot]: ...


class KlineSource(Protocol):
    async def closes(self, symbol: str, interval: str, limit: int) -> list[tuple[int, float]]: ...


@dataclass(frozen=True)
class _RangeCacheItem:
    high: float
    low: float
    computed_at: float
    days: int


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class BinanceMetricSource:
    """Snapshot of all trading USDT perpetuals with N-day range and market cap.

    N-day high/low come from daily klines and are cached per symbol for
    ``range_cache_sec`` within the same UTC day.
    """

    def __init__(
        self,
        client: BinanceMarketClient,
        supply: SupplyDataLoader,
        n_days: int,
        quote_asset: str = "USDT",
        max_concurrency: int = 20,
        range_cache_sec: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.supply = supply
        self.n_days = n_days
        self.quote_asset = quote_asset
        self.range_cache_sec = range_cache_sec
        self._clock = clock
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._range_cache: dict[str, _RangeCacheItem] = {}

    async def tradable_symbols(self) -> set[str]:
        info = await self.client.get_exchange_info()
        return {
            s["symbol"]
            for s in info.get("symbols", [])
            if s.get("status") == "TRADING"
            and s.get("contractType") == "PERPETUAL"
            and s.get("quoteAsset") == self.quote_asset
        }

    async def snapshot(self) -> list[SymbolSnapshot]:
        try:
            tradable = await self.tradable_symbols()
            tickers = await self.client.get_24h_tickers()
        except Exception as exc:
            raise MetricSourceError(f"market data fetch failed: {exc}") from exc
        if not tradable or not tickers:
            raise MetricSourceError("empty exchange info or ticker response")

        candidates = [
            t for t in tickers if t.get("symbol") in tradable and _to_float(t.get("lastPrice")) > 0
        ]
        ranges = await asyncio.gather(*(self._n_day_range(t["symbol"]) for t in candidates))

        snapshots: list[SymbolSnapshot] = []
        for ticker, (high, low) in zip(candidates, ranges):
            symbol = ticker["symbol"]
            price = _to_float(ticker.get("lastPrice"))
            snapshots.append(
                SymbolSnapshot(
                    symbol=symbol,
                    last_price=price,
                    price_change_pct_24h=_to_float(ticker.get("priceChangePercent")),
                    quote_volume_24h=_to_float(ticker.get("quoteVolume")),
                    n_day_high=high,
                    n_day_low=low,
                    circulating_market_cap=self.supply.circulating_market_cap(symbol, price),
                    total_market_cap=self.supply.total_market_cap(symbol, price),
                )
            )
        log.debug("metric_snapshot_built", symbols=len(snapshots), n_days=self.n_days)
        return snapshots

    def _cached_range(self, symbol: str) -> _RangeCacheItem | None:
        cached = self._range_cache.get(symbol)
        if cached is None or cached.days != self.n_days:
            return None
        now = self._clock()
        same_day = (
            datetime.fromtimestamp(now, timezone.utc).date()
            == datetime.fromtimestamp(cached.computed_at, timezone.utc).date()
        )
        if not same_day or now - cached.computed_at >= self.range_cache_sec:
            return None
        return cached

    async def _n_day_range(self, symbol: str) -> tuple[float | None, float | None]:
        cached = self._cached_range(symbol)
        if cached is not None:
            return cached.high, cached.low
        try:
            async with self._semaphore:
                klines = await self.client.get_klines(symbol, "1d", limit=self.n_days)
        except Exception as exc:
            log.debug("n_day_range_failed", symbol=symbol, error=str(exc))
            return None, None
        highs = [_to_float(k[2]) for k in klines if len(k) > 3]
        lows = [_to_float(k[3]) for k in klines if len(k) > 3]
        if not highs or not lows:
            return None, None
        high, low = max(highs), min(lows)
        self._range_cache[symbol] = _RangeCacheItem(
            high=high, low=low, computed_at=self._clock(), days=self.n_days
        )
        return high, low

    async def closes(self, symbol: str, interval: str, limit: int) -> list[tuple[int, float]]:
        """Closed klines only, oldest first, as ``(close_time_ms, close)``."""
        async with self._semaphore:
            klines = await self.client.get_klines(symbol, interval, limit=limit + 1)
        now_ms = int(self._clock() * 1000)
        rows: list[tuple[int, float]] = []
        for kline in klines:
            if len(kline) < 7:
                continue
            close_time = int(kline[6])
            if close_time > now_ms:
                continue
            rows.append((close_time, _to_float(kline[4])))
        return rows[-limit:]
