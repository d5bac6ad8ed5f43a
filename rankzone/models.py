"""Shared data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class RankzoneError(Exception):
    """Base error for the rankzone package."""


class MetricSourceError(RankzoneError):
    """Raised when the metric source cannot produce a consistent snapshot."""


class TrackerDirection(str, Enum):
    """Which post-entry extremum a tracker follows."""

    # Track the highest price since entry and report the pullback from it.
    PEAK = "peak"
    # Track the lowest price since entry and report the rebound from it.
    TROUGH = "trough"


class TrackerKind(str, Enum):
    GAINERS = "gainers"
    LOSERS = "losers"
    HOTSPOTS = "hotspots"

    @property
    def direction(self) -> TrackerDirection:
        if self is TrackerKind.LOSERS:
            return TrackerDirection.TROUGH
        return TrackerDirection.PEAK


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def pct_change(value: float, reference: float) -> float:
    """Percent change of value against reference; 0.0 for a non-positive reference."""
    if reference <= 0:
        return 0.0
    return (value - reference) / reference * 100.0


@dataclass(frozen=True)
class SymbolSnapshot:
    """Per-symbol market metrics measured during one scan.

    Reference values that could not be determined are ``None`` rather than
    zero so that score functions can tell "unknown" from "flat".
    """

    symbol: str
    last_price: float
    price_change_pct_24h: float
    quote_volume_24h: float
    n_day_high: float | None
    n_day_low: float | None
    circulating_market_cap: float | None
    total_market_cap: float | None = None

    @property
    def volume_ratio_pct(self) -> float | None:
        """24h quote volume as a percentage of circulating market cap."""
        cap = self.circulating_market_cap
        if cap is None or cap <= 0:
            return None
        return self.quote_volume_24h / cap * 100.0

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "last_price": self.last_price,
            "price_change_pct_24h": self.price_change_pct_24h,
            "quote_volume_24h": self.quote_volume_24h,
            "n_day_high": self.n_day_high,
            "n_day_low": self.n_day_low,
            "circulating_market_cap": self.circulating_market_cap,
            "total_market_cap": self.total_market_cap,
            "volume_ratio_pct": self.volume_ratio_pct,
        }


@dataclass(frozen=True)
class RankedEntry:
    snapshot: SymbolSnapshot
    score: float
    rank: int

    @property
    def symbol(self) -> str:
        return self.snapshot.symbol

    @property
    def last_price(self) -> float:
        return self.snapshot.last_price

    def to_dict(self) -> dict:
        payload = self.snapshot.to_dict()
        payload["score"] = self.score
        payload["rank"] = self.rank
        return payload
