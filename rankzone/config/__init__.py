"""Configuration management module."""

from rankzone.config.settings import Settings, TrackerConfig, load_settings

__all__ = ["Settings", "TrackerConfig", "load_settings"]
