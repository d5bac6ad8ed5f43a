"""Settings tree: pydantic models loaded from YAML and the environment."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource


class BinanceConfig(BaseModel):
    """Binance public market data configuration."""

    market_data_base_url: str = "https://fapi.binance.com"
    request_timeout_sec: float = Field(default=10.0, ge=1.0, le=60.0)
    max_weight_per_minute: int = Field(default=2400, ge=100, le=6000)
    max_concurrent_requests: int = Field(default=20, ge=1, le=100)
    quote_asset: str = "USDT"


class TrackerConfig(BaseModel):
    """Parameters of one tracked universe."""

    kind: Literal["gainers", "losers", "hotspots"] = "gainers"
    enabled: bool = True
    n_days: int = Field(default=30, ge=1, le=365)
    top_k: int = Field(default=30, ge=1, le=500)
    scan_interval_sec: int = Field(default=5, ge=1, le=3600)
    cache_ttl_hours: float = Field(default=240.0, gt=0.0, le=24 * 90)
    recycle_grace_hours: float = Field(default=72.0, gt=0.0, le=24 * 90)
    zone1_threshold_pct: float = Field(default=10.0, ge=0.0, le=100.0)
    zone2_threshold_pct: float = Field(default=20.0, ge=0.0, le=100.0)
    renewal_policy: Literal["any", "rank_improved"] = "any"
    # Hotspots: minimum volume ratio (%) to be ranked at all.
    min_score: float | None = None
    # Circulating market cap band in USD, applied before scoring.
    min_market_cap: float | None = Field(default=None, ge=0.0)
    max_market_cap: float | None = Field(default=None, ge=0.0)
    # EMA/streak technicals for every touched symbol
    ema_enabled: bool = True
    ema_period: int = Field(default=26, ge=2, le=500)
    ema_interval: str = "1h"
    kline_window: int = Field(default=100, ge=2, le=1500)

    @field_validator("zone2_threshold_pct")
    @classmethod
    def validate_zone_order(cls, v: float, info) -> float:
        zone1 = info.data.get("zone1_threshold_pct", 10.0)
        if v <= zone1:
            raise ValueError(
                f"zone2_threshold_pct ({v}) must exceed zone1_threshold_pct ({zone1})"
            )
        return v

    @field_validator("kline_window")
    @classmethod
    def validate_kline_window(cls, v: int, info) -> int:
        period = info.data.get("ema_period", 26)
        if v < period:
            raise ValueError(f"kline_window ({v}) cannot be shorter than ema_period ({period})")
        return v


def _default_trackers() -> dict[str, TrackerConfig]:
    return {
        "gainers": TrackerConfig(kind="gainers"),
        "losers": TrackerConfig(kind="losers"),
        "hotspots": TrackerConfig(
            kind="hotspots",
            n_days=20,
            min_score=100.0,
            max_market_cap=50_000_000.0,
        ),
    }


class StorageConfig(BaseModel):
    """Storage paths configuration."""

    state_path: str = "./data/state"
    supply_path: str = "./data/supply.json"
    logs_path: str = "./logs"


class MonitoringConfig(BaseModel):
    """Monitoring configuration."""

    metrics_port: int = Field(default=9090, ge=1024, le=65535)
    api_port: int = Field(default=8000, ge=1024, le=65535)
    api_enabled: bool = True
    metrics_enabled: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_http: bool = False
    error_log_max_bytes: int = Field(default=5_000_000, ge=100_000, le=50_000_000)
    error_log_backup_count: int = Field(default=3, ge=1, le=20)


class Settings(BaseSettings):
    """Main application settings."""

    binance: BinanceConfig = Field(default_factory=BinanceConfig)
    trackers: dict[str, TrackerConfig] = Field(default_factory=_default_trackers)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "env_nested_delimiter": "__",
        "env_prefix": "RANKZONE_",
        "populate_by_name": True,
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs and rank below the environment.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    def enabled_trackers(self) -> dict[str, TrackerConfig]:
        """Return tracker configs that should be scheduled."""
        return {name: cfg for name, cfg in self.trackers.items() if cfg.enabled}


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Build settings from ``config.yaml`` and the environment.

    Environment variables (``RANKZONE_`` prefix, or a ``.env`` beside the
    config file) override file values, which override model defaults.
    ``CONFIG_PATH`` selects the file when no path is given.
    """
    config_file = Path(config_path or os.environ.get("CONFIG_PATH", "config.yaml"))
    config_data = {}
    if config_file.exists():
        with open(config_file) as f:
            config_data = yaml.safe_load(f) or {}
    return Settings(**config_data, _env_file=config_file.parent / ".env")


def create_default_config(path: str | Path = "config.yaml") -> None:
    """Write every default setting to ``path`` as an editable YAML file."""
    defaults = Settings.model_construct(
        binance=BinanceConfig(),
        trackers=_default_trackers(),
        storage=StorageConfig(),
        monitoring=MonitoringConfig(),
    )
    with open(path, "w") as f:
        yaml.safe_dump(
            defaults.model_dump(exclude_none=True),
            f,
            default_flow_style=False,
            sort_keys=False,
        )
