"""Startup configuration."""

from attachments.config.runtime_config import ConfigError, Settings, load_settings  # noqa: F401
