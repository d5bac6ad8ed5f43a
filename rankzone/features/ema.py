"""Incremental EMA and above/below-EMA streak tracking per symbol."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Iterable

import pandas as pd

from rankzone.features.indicators import calculate_distance_pct, calculate_ema_streak


@dataclass(frozen=True)
class EmaReading:
    """Latest technical state of one symbol."""

    symbol: str
    last_close: float | None
    ema: float | None
    streak: int
    sign: int
    closes: int

    @property
    def distance_pct(self) -> float | None:
        if self.last_close is None:
            return None
        return calculate_distance_pct(self.last_close, self.ema)

    @property
    def above_count(self) -> int:
        return self.streak if self.sign > 0 else 0

    @property
    def below_count(self) -> int:
        return self.streak if self.sign < 0 else 0

    def to_dict(self) -> dict:
        return {
            "ema": self.ema,
            "last_close": self.last_close,
            "distance_pct": self.distance_pct,
            "streak": self.streak,
            "sign": self.sign,
            "above_count": self.above_count,
            "below_count": self.below_count,
            "closes": self.closes,
        }


@dataclass(frozen=True)
class _Point:
    ema: float
    streak: int
    sign: int


@dataclass
class EmaState:
    """Rolling close window with the EMA state before and after the newest close.

    ``base`` belongs to the second-newest close so the newest one can be
    revised in place without replaying the window.
    """

    closes: deque
    observed: int = 0
    base: _Point | None = None
    head: _Point | None = None
    last_close_time: int | None = None


def _side(close: float, ema: float) -> int:
    if close > ema:
        return 1
    if close < ema:
        return -1
    return 0


class EmaStreakCalculator:
    """Maintain an SMA-seeded EMA and a signed streak for many symbols.

    Each update costs O(1) except the seed bar, which averages the first
    ``period`` closes once.
    """

    def __init__(self, period: int, window: int) -> None:
        if period < 1:
            raise ValueError("period must be positive")
        if window < period:
            raise ValueError(f"window ({window}) cannot be shorter than period ({period})")
        self.period = period
        self.window = window
        self.k = 2.0 / (period + 1)
        self._states: dict[str, EmaState] = {}

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._states

    def symbols(self) -> list[str]:
        return list(self._states)

    def _state(self, symbol: str) -> EmaState:
        state = self._states.get(symbol)
        if state is None:
            state = EmaState(closes=deque(maxlen=self.window))
            self._states[symbol] = state
        return state

    def _step(self, state: EmaState, prev: _Point | None, close: float) -> _Point | None:
        if state.observed < self.period:
            return None
        if state.observed == self.period:
            ema = sum(state.closes) / self.period
        else:
            # prev is always set past the seed bar
            ema = close * self.k + prev.ema * (1 - self.k)
        side = _side(close, ema)
        if side == 0:
            streak = 0
        elif prev is not None and prev.sign == side:
            streak = prev.streak + 1
        else:
            streak = 1
        return _Point(ema=ema, streak=streak, sign=side)

    def update(self, symbol: str, close: float, close_time: int | None = None) -> EmaReading:
        """Append a newly closed kline's close."""
        state = self._state(symbol)
        state.closes.append(float(close))
        state.observed += 1
        state.base = state.head
        state.head = self._step(state, state.base, float(close))
        if close_time is not None:
            state.last_close_time = close_time
        return self._reading(symbol, state)

    def update_last(
        self, symbol: str, price: float, close_time: int | None = None
    ) -> EmaReading:
        """Revise the newest close with a fresh ticker price.

        Falls back to :meth:`update` when the symbol has no closes yet.
        """
        state = self._states.get(symbol)
        if state is None or not state.closes:
            return self.update(symbol, price, close_time=close_time)
        state.closes[-1] = float(price)
        state.head = self._step(state, state.base, float(price))
        if close_time is not None:
            state.last_close_time = close_time
        return self._reading(symbol, state)

    def bootstrap(
        self,
        symbol: str,
        closes: Iterable[float],
        last_close_time: int | None = None,
    ) -> EmaReading:
        """Replace the symbol's state with one computed from a full close history."""
        history = pd.Series(list(closes), dtype=float)
        state = EmaState(closes=deque(maxlen=self.window))
        self._states[symbol] = state
        if history.empty:
            return self._reading(symbol, state)
        frame = calculate_ema_streak(history, self.period)
        state.closes.extend(history.tolist())
        state.observed = len(history)
        state.last_close_time = last_close_time
        state.head = self._point_at(frame, -1)
        if len(frame) >= 2:
            state.base = self._point_at(frame, -2)
        return self._reading(symbol, state)

    @staticmethod
    def _point_at(frame: pd.DataFrame, position: int) -> _Point | None:
        row = frame.iloc[position]
        if pd.isna(row["ema"]):
            return None
        return _Point(ema=float(row["ema"]), streak=int(row["streak"]), sign=int(row["sign"]))

    def last_close_time(self, symbol: str) -> int | None:
        state = self._states.get(symbol)
        return state.last_close_time if state else None

    def reading(self, symbol: str) -> EmaReading | None:
        state = self._states.get(symbol)
        if state is None:
            return None
        return self._reading(symbol, state)

    def forget(self, symbol: str) -> None:
        self._states.pop(symbol, None)

    def _reading(self, symbol: str, state: EmaState) -> EmaReading:
        head = state.head
        return EmaReading(
            symbol=symbol,
            last_close=state.closes[-1] if state.closes else None,
            ema=head.ema if head else None,
            streak=head.streak if head else 0,
            sign=head.sign if head else 0,
            closes=len(state.closes),
        )
