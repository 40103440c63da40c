"""Configuration module exports."""

from autoheal.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
