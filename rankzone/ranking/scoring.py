"""Score functions for ranked universes.

Every score function returns ``None`` when the snapshot lacks a usable
(positive) reference denominator. ``None`` means "not rankable this tick",
which the ranking engine treats as exclusion rather than a zero score.
"""

from __future__ import annotations

from typing import Callable

from rankzone.models import SymbolSnapshot, TrackerKind

ScoreFn = Callable[[SymbolSnapshot], "float | None"]


def n_day_gain_pct(snapshot: SymbolSnapshot) -> float | None:
    """Gain of the last price over the N-day low, in percent."""
    low = snapshot.n_day_low
    if low is None or low <= 0:
        return None
    return (snapshot.last_price - low) / low * 100.0


def n_day_loss_pct(snapshot: SymbolSnapshot) -> float | None:
    """Drop of the last price from the N-day high, in percent (zero or negative)."""
    high = snapshot.n_day_high
    if high is None or high <= 0:
        return None
    return (snapshot.last_price - high) / high * 100.0


def volume_ratio_pct(snapshot: SymbolSnapshot) -> float | None:
    return snapshot.volume_ratio_pct


SCORE_FUNCTIONS: dict[TrackerKind, ScoreFn] = {
    TrackerKind.GAINERS: n_day_gain_pct,
    TrackerKind.LOSERS: n_day_loss_pct,
    TrackerKind.HOTSPOTS: volume_ratio_pct,
}


def score_function_for(kind: TrackerKind) -> ScoreFn:
    return SCORE_FUNCTIONS[kind]


def ranks_descending(kind: TrackerKind) -> bool:
    """Losers list the most negative score first; everything else the highest."""
    return kind is not TrackerKind.LOSERS
