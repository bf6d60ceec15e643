"""Configuration loading and validation."""

from virtuals.config.settings import AppConfig, get_config

__all__ = ["AppConfig", "get_config"]
