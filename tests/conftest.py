"""Shared fixtures for the test suite."""

from __future__ import annotations

import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import pytest

from rankzone.models import SymbolSnapshot


def _safe_node_name(name: str) -> str:
    # Keep alnum, dash, underscore, dot.
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return name or "test"


@pytest.fixture
def workspace_tmp_path(request: pytest.FixtureRequest) -> Path:
    """Temp dir rooted in the workspace rather than the system temp dir."""
    root = Path.cwd() / ".pytest_tmp_workspace" / _safe_node_name(request.node.name) / uuid4().hex
    root.mkdir(parents=True, exist_ok=True)
    try:
        yield root
    finally:
        shutil.rmtree(root, ignore_errors=True)


@pytest.fixture
def t0() -> datetime:
    return datetime(2026, 1, 6, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_snapshot():
    def _make(
        symbol: str,
        price: float,
        low: float | None = 50.0,
        high: float | None = 200.0,
        volume: float = 1_000_000.0,
        cap: float | None = 10_000_000.0,
    ) -> SymbolSnapshot:
        return SymbolSnapshot(
            symbol=symbol,
            last_price=price,
            price_change_pct_24h=1.5,
            quote_volume_24h=volume,
            n_day_high=high,
            n_day_low=low,
            circulating_market_cap=cap,
        )

    return _make
