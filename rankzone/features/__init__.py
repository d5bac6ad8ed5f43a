"""EMA/streak technicals."""

from rankzone.features.ema import EmaReading, EmaStreakCalculator
from rankzone.features.indicators import (
    calculate_distance_pct,
    calculate_ema,
    calculate_ema_streak,
)

__all__ = [
    "EmaReading",
    "EmaStreakCalculator",
    "calculate_ema",
    "calculate_ema_streak",
    "calculate_distance_pct",
]
