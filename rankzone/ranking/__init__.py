"""Universe scoring and Top-K ranking."""

from rankzone.ranking.engine import rank
from rankzone.ranking.scoring import (
    ScoreFn,
    n_day_gain_pct,
    n_day_loss_pct,
    ranks_descending,
    score_function_for,
    volume_ratio_pct,
)

__all__ = [
    "rank",
    "ScoreFn",
    "n_day_gain_pct",
    "n_day_loss_pct",
    "volume_ratio_pct",
    "score_function_for",
    "ranks_descending",
]
