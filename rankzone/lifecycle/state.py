"""Cache/recycle zone entries and the per-universe tracking state."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any, Mapping

from rankzone.config.settings import TrackerConfig
from rankzone.models import (
    RankedEntry,
    RankzoneError,
    SymbolSnapshot,
    TrackerDirection,
    TrackerKind,
    pct_change,
)


class ZoneInvariantError(RankzoneError, AssertionError):
    """The cache/recycle maps reached a state the transition rules forbid."""


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600.0


@dataclass(frozen=True)
class CacheEntry:
    """A symbol currently held in the cache zone."""

    symbol: str
    direction: TrackerDirection
    entry_time: datetime
    entry_price: float
    entry_rank: int
    entry_score: float
    extremum: float
    last_price: float
    expiry_time: datetime
    countdown_reset_time: datetime
    rank: int | None = None
    score: float | None = None
    price_change_pct_24h: float = 0.0
    quote_volume_24h: float = 0.0
    n_day_reference: float | None = None

    @classmethod
    def promote(
        cls,
        ranked: RankedEntry,
        direction: TrackerDirection,
        now: datetime,
        cache_ttl: timedelta,
    ) -> CacheEntry:
        snapshot = ranked.snapshot
        return cls(
            symbol=ranked.symbol,
            direction=direction,
            entry_time=now,
            entry_price=snapshot.last_price,
            entry_rank=ranked.rank,
            entry_score=ranked.score,
            extremum=snapshot.last_price,
            last_price=snapshot.last_price,
            expiry_time=now + cache_ttl,
            countdown_reset_time=now,
            rank=ranked.rank,
            score=ranked.score,
            price_change_pct_24h=snapshot.price_change_pct_24h,
            quote_volume_24h=snapshot.quote_volume_24h,
            n_day_reference=_reference_price(snapshot, direction),
        )

    def _next_extremum(self, price: float) -> float:
        if self.direction is TrackerDirection.PEAK:
            return max(self.extremum, price)
        return min(self.extremum, price)

    def observe(self, snapshot: SymbolSnapshot) -> CacheEntry:
        """Refresh market fields from a snapshot outside the Top-K."""
        return replace(
            self,
            last_price=snapshot.last_price,
            extremum=self._next_extremum(snapshot.last_price),
            price_change_pct_24h=snapshot.price_change_pct_24h,
            quote_volume_24h=snapshot.quote_volume_24h,
            rank=None,
        )

    def renew(
        self,
        ranked: RankedEntry,
        now: datetime,
        cache_ttl: timedelta,
        reset_countdown: bool,
    ) -> CacheEntry:
        """Refresh from a Top-K appearance, optionally restarting the countdown."""
        snapshot = ranked.snapshot
        updated = replace(
            self,
            last_price=snapshot.last_price,
            extremum=self._next_extremum(snapshot.last_price),
            rank=ranked.rank,
            score=ranked.score,
            price_change_pct_24h=snapshot.price_change_pct_24h,
            quote_volume_24h=snapshot.quote_volume_24h,
            n_day_reference=_reference_price(snapshot, self.direction),
        )
        if not reset_countdown:
            return updated
        # Never move the countdown backwards, even if the clock does.
        reset_at = max(now, self.countdown_reset_time)
        return replace(updated, countdown_reset_time=reset_at, expiry_time=reset_at + cache_ttl)

    @property
    def price_gain_from_entry_pct(self) -> float:
        return pct_change(self.last_price, self.entry_price)

    @property
    def retrace_pct(self) -> float:
        """Pullback from the peak, or rebound from the trough, in percent."""
        if self.extremum <= 0:
            return 0.0
        if self.direction is TrackerDirection.PEAK:
            return (self.extremum - self.last_price) / self.extremum * 100.0
        return (self.last_price - self.extremum) / self.extremum * 100.0

    def zone(self, zone1_pct: float, zone2_pct: float) -> int:
        retrace = self.retrace_pct
        if retrace >= zone2_pct:
            return 2
        if retrace >= zone1_pct:
            return 1
        return 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expiry_time

    def remaining_hours(self, now: datetime) -> float:
        return _hours(self.expiry_time - now)

    def cached_hours(self, now: datetime) -> float:
        return _hours(now - self.entry_time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "direction": self.direction.value,
            "entry_time": _iso(self.entry_time),
            "entry_price": self.entry_price,
            "entry_rank": self.entry_rank,
            "entry_score": self.entry_score,
            "extremum": self.extremum,
            "last_price": self.last_price,
            "expiry_time": _iso(self.expiry_time),
            "countdown_reset_time": _iso(self.countdown_reset_time),
            "rank": self.rank,
            "score": self.score,
            "price_change_pct_24h": self.price_change_pct_24h,
            "quote_volume_24h": self.quote_volume_24h,
            "n_day_reference": self.n_day_reference,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CacheEntry:
        return cls(
            symbol=data["symbol"],
            direction=TrackerDirection(data["direction"]),
            entry_time=_parse_ts(data["entry_time"]),
            entry_price=float(data["entry_price"]),
            entry_rank=int(data["entry_rank"]),
            entry_score=float(data.get("entry_score", 0.0)),
            extremum=float(data["extremum"]),
            last_price=float(data["last_price"]),
            expiry_time=_parse_ts(data["expiry_time"]),
            countdown_reset_time=_parse_ts(data["countdown_reset_time"]),
            rank=data.get("rank"),
            score=data.get("score"),
            price_change_pct_24h=float(data.get("price_change_pct_24h", 0.0)),
            quote_volume_24h=float(data.get("quote_volume_24h", 0.0)),
            n_day_reference=data.get("n_day_reference"),
        )


def _reference_price(snapshot: SymbolSnapshot, direction: TrackerDirection) -> float | None:
    # The N-day level the score was measured against.
    if direction is TrackerDirection.TROUGH:
        return snapshot.n_day_high
    return snapshot.n_day_low


@dataclass(frozen=True)
class RecycledEntry:
    """An expired cache entry waiting out its grace window before deletion."""

    entry: CacheEntry
    recycle_time: datetime
    recycle_expiry: datetime

    @classmethod
    def from_cache(cls, entry: CacheEntry, now: datetime, grace: timedelta) -> RecycledEntry:
        return cls(entry=entry, recycle_time=now, recycle_expiry=now + grace)

    @property
    def symbol(self) -> str:
        return self.entry.symbol

    @property
    def cached_hours(self) -> float:
        return _hours(self.recycle_time - self.entry.entry_time)

    def should_delete(self, now: datetime) -> bool:
        return now >= self.recycle_expiry

    def remaining_grace_hours(self, now: datetime) -> float:
        return max(0.0, _hours(self.recycle_expiry - now))

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry": self.entry.to_dict(),
            "recycle_time": _iso(self.recycle_time),
            "recycle_expiry": _iso(self.recycle_expiry),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RecycledEntry:
        return cls(
            entry=CacheEntry.from_dict(data["entry"]),
            recycle_time=_parse_ts(data["recycle_time"]),
            recycle_expiry=_parse_ts(data["recycle_expiry"]),
        )


@dataclass(frozen=True)
class ZoneMaps:
    """One consistent generation of the zones, published as a unit."""

    cache: Mapping[str, CacheEntry] = field(default_factory=dict)
    recycle: Mapping[str, RecycledEntry] = field(default_factory=dict)
    ranking: tuple[RankedEntry, ...] = ()
    last_scan_time: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "cache", MappingProxyType(dict(self.cache)))
        object.__setattr__(self, "recycle", MappingProxyType(dict(self.recycle)))
        object.__setattr__(self, "ranking", tuple(self.ranking))

    def check_invariants(self) -> None:
        overlap = set(self.cache) & set(self.recycle)
        if overlap:
            raise ZoneInvariantError(f"symbols in both cache and recycle zones: {sorted(overlap)}")
        for symbol, entry in self.cache.items():
            if entry.symbol != symbol:
                raise ZoneInvariantError(f"cache key {symbol} holds entry for {entry.symbol}")
            if not entry.expiry_time > entry.countdown_reset_time >= entry.entry_time:
                raise ZoneInvariantError(f"cache entry {symbol} has inconsistent timestamps")
        for symbol, recycled in self.recycle.items():
            if recycled.symbol != symbol:
                raise ZoneInvariantError(f"recycle key {symbol} holds entry for {recycled.symbol}")


class TrackingState:
    """Configuration plus the current zone generation of one tracked universe.

    Readers call :attr:`zones` once and work on that object; the lifecycle
    manager replaces it wholesale through :meth:`publish`, so a reader never
    sees an entry half way between the cache and recycle zones.
    """

    def __init__(
        self,
        name: str,
        config: TrackerConfig,
        zones: ZoneMaps | None = None,
    ) -> None:
        self.name = name
        self.config = config
        self.kind = TrackerKind(config.kind)
        self.direction = self.kind.direction
        self._zones = zones or ZoneMaps()
        self._zones.check_invariants()

    @property
    def zones(self) -> ZoneMaps:
        return self._zones

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(hours=self.config.cache_ttl_hours)

    @property
    def recycle_grace(self) -> timedelta:
        return timedelta(hours=self.config.recycle_grace_hours)

    def publish(self, zones: ZoneMaps) -> None:
        zones.check_invariants()
        self._zones = zones

    def to_dict(self) -> dict[str, Any]:
        zones = self._zones
        return {
            "name": self.name,
            "config": self.config.model_dump(),
            "last_scan_time": _iso(zones.last_scan_time),
            "cache": {symbol: entry.to_dict() for symbol, entry in zones.cache.items()},
            "recycle": {symbol: entry.to_dict() for symbol, entry in zones.recycle.items()},
        }

    @classmethod
    def from_dict(
        cls,
        name: str,
        data: Mapping[str, Any],
        config: TrackerConfig | None = None,
    ) -> TrackingState:
        """Rebuild a state from its persisted form.

        An explicitly passed ``config`` wins over the persisted one.
        """
        if config is None:
            config = TrackerConfig(**data.get("config", {}))
        zones = ZoneMaps(
            cache={
                symbol: CacheEntry.from_dict(raw)
                for symbol, raw in (data.get("cache") or {}).items()
            },
            recycle={
                symbol: RecycledEntry.from_dict(raw)
                for symbol, raw in (data.get("recycle") or {}).items()
            },
            last_scan_time=_parse_ts(data.get("last_scan_time")),
        )
        return cls(name=name, config=config, zones=zones)
