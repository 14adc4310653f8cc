"""Configuration module for dstatus."""

from .core import ClientSettings, EncoderSettings
from .logging import LoggingSettings
from .settings import ConfigurationError, Settings, find_toml_config_file


__all__ = [
    "Settings",
    "ConfigurationError",
    "find_toml_config_file",
    "EncoderSettings",
    "ClientSettings",
    "LoggingSettings",
]
