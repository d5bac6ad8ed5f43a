"""Tests for configuration loading."""

import pytest
import yaml
from pydantic import ValidationError

from rankzone.config import Settings, TrackerConfig, load_settings
from rankzone.config.settings import create_default_config


def test_defaults_define_three_trackers() -> None:
    """Test the default tracker set."""
    settings = Settings(_env_file=None)
    assert set(settings.trackers) == {"gainers", "losers", "hotspots"}
    hotspots = settings.trackers["hotspots"]
    assert hotspots.kind == "hotspots"
    assert hotspots.n_days == 20
    assert hotspots.min_score == 100.0
    assert hotspots.max_market_cap == 50_000_000.0
    assert settings.trackers["gainers"].renewal_policy == "any"


def test_zone_thresholds_must_be_ordered() -> None:
    """Test zone threshold ordering validation."""
    with pytest.raises(ValidationError):
        TrackerConfig(zone1_threshold_pct=20.0, zone2_threshold_pct=10.0)
    with pytest.raises(ValidationError):
        TrackerConfig(zone1_threshold_pct=15.0, zone2_threshold_pct=15.0)


def test_kline_window_must_cover_ema_period() -> None:
    """Test that the kline window must cover the EMA period."""
    with pytest.raises(ValidationError):
        TrackerConfig(ema_period=50, kline_window=20)


def test_positive_durations_required() -> None:
    """Test duration and policy validation."""
    with pytest.raises(ValidationError):
        TrackerConfig(cache_ttl_hours=0)
    with pytest.raises(ValidationError):
        TrackerConfig(recycle_grace_hours=-1)
    with pytest.raises(ValidationError):
        TrackerConfig(renewal_policy="sometimes")


def test_enabled_trackers_filters_disabled() -> None:
    """Test that disabled trackers are filtered out."""
    settings = Settings(
        _env_file=None,
        trackers={
            "gainers": TrackerConfig(kind="gainers"),
            "quiet": TrackerConfig(kind="losers", enabled=False),
        },
    )
    assert list(settings.enabled_trackers()) == ["gainers"]


def test_load_settings_from_yaml(workspace_tmp_path) -> None:
    """Test loading settings from a YAML file."""
    path = workspace_tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "trackers": {
                    "fast": {"kind": "gainers", "top_k": 10, "cache_ttl_hours": 2},
                },
                "monitoring": {"log_level": "DEBUG"},
            }
        )
    )
    settings = load_settings(path)
    assert list(settings.trackers) == ["fast"]
    assert settings.trackers["fast"].top_k == 10
    assert settings.trackers["fast"].cache_ttl_hours == 2.0
    assert settings.monitoring.log_level == "DEBUG"


def test_load_settings_without_file_uses_defaults(workspace_tmp_path) -> None:
    """Test defaults when the config file is missing."""
    settings = load_settings(workspace_tmp_path / "missing.yaml")
    assert set(settings.trackers) == {"gainers", "losers", "hotspots"}


def test_create_default_config_round_trips(workspace_tmp_path) -> None:
    """Test that the generated default config loads back unchanged."""
    path = workspace_tmp_path / "config.yaml"
    create_default_config(path)
    settings = load_settings(path)
    assert settings.trackers == Settings(_env_file=None).trackers
    assert settings.binance.market_data_base_url == "https://fapi.binance.com"


def test_environment_overrides_yaml_values(workspace_tmp_path, monkeypatch) -> None:
    """Environment variables win over the config file, nested keys included."""
    path = workspace_tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump({"monitoring": {"log_level": "DEBUG", "log_http": True}})
    )
    monkeypatch.setenv("RANKZONE_MONITORING__LOG_LEVEL", "ERROR")

    settings = load_settings(path)

    assert settings.monitoring.log_level == "ERROR"
    assert settings.monitoring.log_http is True
