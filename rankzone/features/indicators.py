"""Technical indicator calculations."""

from __future__ import annotations

import numpy as np
import pandas as pd


def calculate_ema(series: pd.Series, period: int) -> pd.Series:
    """Exponential moving average seeded with the SMA of the first ``period`` values.

    Rows before the seed are NaN: the average is undefined there, not zero.
    """
    values = series.astype(float)
    ema = pd.Series(np.nan, index=values.index, dtype=float)
    if period <= 0 or len(values) < period:
        return ema
    seed = values.iloc[:period].mean()
    tail = pd.Series([seed, *values.iloc[period:].tolist()], dtype=float)
    smoothed = tail.ewm(alpha=2.0 / (period + 1), adjust=False).mean()
    ema.iloc[period - 1 :] = smoothed.to_numpy()
    return ema


def calculate_ema_streak(series: pd.Series, period: int) -> pd.DataFrame:
    """EMA plus the run of consecutive closes on the same side of it.

    Returns columns ``ema``, ``sign`` (+1 above, -1 below, 0 on it or before
    the seed) and ``streak`` (length of the current run, 0 when sign is 0).
    """
    close = series.astype(float)
    ema = calculate_ema(close, period)
    side = np.sign(close - ema).fillna(0.0)
    runs = (side != side.shift()).cumsum()
    streak = side.groupby(runs).cumcount() + 1
    streak = streak.where(side != 0, 0)
    return pd.DataFrame(
        {
            "close": close,
            "ema": ema,
            "sign": side.astype(int),
            "streak": streak.astype(int),
        },
        index=series.index,
    )


def calculate_distance_pct(close: float, ema: float | None) -> float | None:
    """Percent distance of close from ema."""
    if ema is None or ema == 0 or np.isnan(ema):
        return None
    return (close - ema) / ema * 100.0
