"""Circulating supply reference data loaded from a local JSON file."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import orjson
import structlog
from pydantic import BaseModel, Field, ValidationError

log = structlog.get_logger(__name__)


class SupplyRecord(BaseModel):
    """Supply figures of one contract's base asset."""

    symbol: str
    base_asset: str = ""
    circulating_supply: float = Field(default=0.0, ge=0.0)
    total_supply: float = Field(default=0.0, ge=0.0)
    max_supply: float = Field(default=0.0, ge=0.0)
    last_updated: datetime | None = None
    data_source: str = ""

    @property
    def is_valid(self) -> bool:
        return self.circulating_supply > 0 and bool(self.symbol)


class SupplyFile(BaseModel):
    version: str = "1.0"
    last_updated: datetime | None = None
    contracts: list[SupplyRecord] = Field(default_factory=list)


class SupplyDataLoader:
    """Lookup of circulating/total supply per futures symbol.

    A missing or malformed file leaves the table empty: market caps then
    become unknown and the affected symbols drop out of cap-based rankings.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else None
        self._records: dict[str, SupplyRecord] = {}

    def load(self) -> int:
        self._records = {}
        if self.path is None or not self.path.exists():
            log.info("supply_file_missing", path=str(self.path) if self.path else None)
            return 0
        try:
            raw = orjson.loads(self.path.read_bytes())
            supply_file = SupplyFile.model_validate(raw)
        except (OSError, orjson.JSONDecodeError, ValidationError) as exc:
            log.warning("supply_file_invalid", path=str(self.path), error=str(exc))
            return 0
        for record in supply_file.contracts:
            if record.is_valid:
                self._records[record.symbol.upper()] = record
        log.info("supply_file_loaded", path=str(self.path), count=len(self._records))
        return len(self._records)

    def set(self, record: SupplyRecord) -> None:
        self._records[record.symbol.upper()] = record

    def get(self, symbol: str) -> SupplyRecord | None:
        return self._records.get(symbol.upper())

    def circulating_market_cap(self, symbol: str, price: float) -> float | None:
        record = self.get(symbol)
        if record is None or not record.is_valid or price <= 0:
            return None
        return record.circulating_supply * price

    def total_market_cap(self, symbol: str, price: float) -> float | None:
        record = self.get(symbol)
        if record is None or record.total_supply <= 0 or price <= 0:
            return None
        return record.total_supply * price

    def __len__(self) -> int:
        return len(self._records)
