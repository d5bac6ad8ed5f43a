"""Top-K ranking of a market snapshot."""

from __future__ import annotations

from typing import Iterable

from rankzone.models import RankedEntry, SymbolSnapshot
from rankzone.ranking.scoring import ScoreFn


def rank(
    snapshots: Iterable[SymbolSnapshot],
    score_fn: ScoreFn,
    top_k: int,
    descending: bool = True,
    min_score: float | None = None,
    min_market_cap: float | None = None,
    max_market_cap: float | None = None,
) -> list[RankedEntry]:
    """Score, filter and order snapshots, returning at most ``top_k`` entries.

    Symbols whose score is ``None`` are omitted. ``min_score`` is a floor for
    descending rankings and a ceiling for ascending ones (the loser list keeps
    only drops at least that deep). The market cap band excludes symbols with
    an unknown cap whenever either bound is set. Ties are broken by symbol so
    the output is deterministic.
    """
    if top_k <= 0:
        return []
    cap_filter = min_market_cap is not None or max_market_cap is not None

    scored: list[tuple[float, SymbolSnapshot]] = []
    for snapshot in snapshots:
        if cap_filter:
            cap = snapshot.circulating_market_cap
            if cap is None or cap <= 0:
                continue
            if min_market_cap is not None and cap < min_market_cap:
                continue
            if max_market_cap is not None and cap > max_market_cap:
                continue
        score = score_fn(snapshot)
        if score is None:
            continue
        if min_score is not None:
            if descending and score < min_score:
                continue
            if not descending and score > min_score:
                continue
        scored.append((score, snapshot))

    sign = -1.0 if descending else 1.0
    scored.sort(key=lambda item: (sign * item[0], item[1].symbol))

    return [
        RankedEntry(snapshot=snapshot, score=score, rank=position)
        for position, (score, snapshot) in enumerate(scored[:top_k], start=1)
    ]
