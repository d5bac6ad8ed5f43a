"""Tests for the incremental EMA and streak calculator."""

import math

import numpy as np
import pandas as pd
import pytest

from rankzone.features import (
    EmaStreakCalculator,
    calculate_distance_pct,
    calculate_ema,
    calculate_ema_streak,
)


def _wave(n: int) -> list[float]:
    return [round(100.0 + 5.0 * math.sin(i / 3.0) + 0.1 * i, 4) for i in range(n)]


def test_ema_is_absent_until_period_closes() -> None:
    """Test that no EMA is reported before ``period`` closes arrive."""
    calc = EmaStreakCalculator(period=3, window=10)
    assert calc.update("AUSDT", 1.0).ema is None
    reading = calc.update("AUSDT", 2.0)
    assert reading.ema is None
    assert reading.streak == 0
    assert reading.sign == 0
    assert reading.distance_pct is None


def test_seed_is_simple_average_then_recurrence() -> None:
    """Test the SMA seed followed by the EMA recurrence and streak."""
    calc = EmaStreakCalculator(period=3, window=10)
    calc.update("AUSDT", 1.0)
    calc.update("AUSDT", 2.0)
    seeded = calc.update("AUSDT", 3.0)
    assert seeded.ema == pytest.approx(2.0)
    assert (seeded.sign, seeded.streak) == (1, 1)

    # k = 2 / (3 + 1) = 0.5
    up = calc.update("AUSDT", 6.0)
    assert up.ema == pytest.approx(4.0)
    assert (up.sign, up.streak) == (1, 2)
    assert up.above_count == 2
    assert up.below_count == 0

    down = calc.update("AUSDT", 1.0)
    assert down.ema == pytest.approx(2.5)
    assert (down.sign, down.streak) == (-1, 1)
    assert down.below_count == 1
    assert down.distance_pct == pytest.approx(-60.0)


def test_close_equal_to_ema_resets_streak() -> None:
    """Test that a close exactly on the EMA gives a zero streak."""
    calc = EmaStreakCalculator(period=2, window=5)
    calc.update("AUSDT", 2.0)
    reading = calc.update("AUSDT", 2.0)
    assert reading.ema == pytest.approx(2.0)
    assert (reading.sign, reading.streak) == (0, 0)

    after = calc.update("AUSDT", 5.0)
    assert (after.sign, after.streak) == (1, 1)


def test_constant_closes_converge_to_the_constant() -> None:
    """Test that a flat series converges to its constant value."""
    calc = EmaStreakCalculator(period=5, window=50)
    for _ in range(40):
        reading = calc.update("AUSDT", 42.0)
    assert reading.ema == pytest.approx(42.0)
    assert reading.closes == 40


def test_update_last_revises_newest_close_without_drift() -> None:
    """Test that revising the live close recomputes from the prior point."""
    calc = EmaStreakCalculator(period=3, window=10)
    for close in (1.0, 2.0, 3.0, 6.0):
        calc.update("AUSDT", close)

    # Revisions re-apply the recurrence from the seed bar (ema 2.0).
    revised = calc.update_last("AUSDT", 5.0)
    assert revised.ema == pytest.approx(3.5)
    assert (revised.sign, revised.streak) == (1, 2)

    flipped = calc.update_last("AUSDT", 1.0)
    assert flipped.ema == pytest.approx(1.5)
    assert (flipped.sign, flipped.streak) == (-1, 1)
    assert flipped.closes == 4
    assert flipped.last_close == 1.0

    restored = calc.update_last("AUSDT", 6.0)
    assert restored.ema == pytest.approx(4.0)
    assert (restored.sign, restored.streak) == (1, 2)


def test_update_last_on_unknown_symbol_appends() -> None:
    """Test that revising an unknown symbol starts its series."""
    calc = EmaStreakCalculator(period=2, window=5)
    reading = calc.update_last("NEWUSDT", 3.0, close_time=123)
    assert reading.closes == 1
    assert calc.last_close_time("NEWUSDT") == 123


def test_incremental_matches_batch_computation() -> None:
    """Test that incremental updates agree with the pandas batch EMA."""
    closes = _wave(60)
    calc = EmaStreakCalculator(period=10, window=100)
    readings = [calc.update("AUSDT", c) for c in closes]

    frame = calculate_ema_streak(pd.Series(closes), 10)
    for i, reading in enumerate(readings):
        row = frame.iloc[i]
        if i < 9:
            assert reading.ema is None
            assert math.isnan(row["ema"])
            continue
        assert reading.ema == pytest.approx(row["ema"])
        assert reading.sign == row["sign"]
        assert reading.streak == row["streak"]


def test_bootstrap_then_incremental_matches_pure_incremental() -> None:
    """Test that bootstrapping from history matches feeding closes one by one."""
    closes = _wave(50)
    boot = EmaStreakCalculator(period=8, window=100)
    boot.bootstrap("AUSDT", closes[:40], last_close_time=1_000)
    stepwise = EmaStreakCalculator(period=8, window=100)
    for c in closes[:40]:
        stepwise.update("AUSDT", c)

    assert boot.last_close_time("AUSDT") == 1_000
    for c in closes[40:]:
        a = boot.update("AUSDT", c)
        b = stepwise.update("AUSDT", c)
        assert a.ema == pytest.approx(b.ema)
        assert (a.sign, a.streak) == (b.sign, b.streak)

    revised_a = boot.update_last("AUSDT", 90.0)
    revised_b = stepwise.update_last("AUSDT", 90.0)
    assert revised_a.ema == pytest.approx(revised_b.ema)
    assert (revised_a.sign, revised_a.streak) == (revised_b.sign, revised_b.streak)


def test_bootstrap_shorter_than_period_has_no_ema() -> None:
    """Test bootstrap with fewer closes than the period."""
    calc = EmaStreakCalculator(period=10, window=20)
    reading = calc.bootstrap("AUSDT", [1.0, 2.0, 3.0])
    assert reading.ema is None
    assert reading.closes == 3
    assert calc.bootstrap("BUSDT", []).closes == 0


def test_window_bounds_retained_closes() -> None:
    """Test that only ``window`` closes are retained."""
    calc = EmaStreakCalculator(period=3, window=5)
    for i in range(25):
        reading = calc.update("AUSDT", float(i))
    assert reading.closes == 5
    assert reading.last_close == 24.0


def test_forget_and_membership() -> None:
    """Test membership checks and ``forget``."""
    calc = EmaStreakCalculator(period=2, window=4)
    calc.update("AUSDT", 1.0)
    assert "AUSDT" in calc
    assert calc.symbols() == ["AUSDT"]
    calc.forget("AUSDT")
    assert "AUSDT" not in calc
    assert calc.reading("AUSDT") is None
    calc.forget("AUSDT")


def test_invalid_parameters_rejected() -> None:
    """Test that a bad period or window is rejected."""
    with pytest.raises(ValueError):
        EmaStreakCalculator(period=0, window=10)
    with pytest.raises(ValueError):
        EmaStreakCalculator(period=10, window=5)


def test_calculate_ema_seed_and_nan_prefix() -> None:
    """Test the batch EMA seed and its NaN prefix."""
    series = pd.Series([2.0, 4.0, 6.0, 8.0])
    ema = calculate_ema(series, 3)
    assert ema.iloc[:2].isna().all()
    assert ema.iloc[2] == pytest.approx(4.0)
    assert ema.iloc[3] == pytest.approx(6.0)
    assert calculate_ema(pd.Series([1.0]), 3).isna().all()


def test_calculate_ema_streak_counts_runs() -> None:
    """Test streak counting in the batch helper."""
    frame = calculate_ema_streak(pd.Series([1.0, 1.0, 2.0, 3.0, 0.0]), 2)
    assert frame["sign"].tolist() == [0, 0, 1, 1, -1]
    assert frame["streak"].tolist() == [0, 0, 1, 2, 1]


def test_distance_pct_guards() -> None:
    """Test distance percent, including zero and missing EMA."""
    assert calculate_distance_pct(110.0, 100.0) == pytest.approx(10.0)
    assert calculate_distance_pct(110.0, None) is None
    assert calculate_distance_pct(110.0, 0.0) is None
    assert calculate_distance_pct(110.0, np.nan) is None
