import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from dstatus.core.logging import get_logger

from .core import ClientSettings, EncoderSettings
from .logging import LoggingSettings


__all__ = ["Settings", "ConfigurationError", "find_toml_config_file"]

CONFIG_FILE_NAME = ".dstatus.toml"


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def find_toml_config_file() -> Path | None:
    """Find the first existing TOML config file.

    Lookup order:
    1. .dstatus.toml in the current directory
    2. config.toml in XDG_CONFIG_HOME/dstatus/ (defaults to ~/.config)
    """
    candidates = [Path.cwd() / CONFIG_FILE_NAME]

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME")
    config_home = Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"
    candidates.append(config_home / "dstatus" / "config.toml")

    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


class Settings(BaseSettings):
    """
    Configuration settings for dstatus.

    Settings are loaded from environment variables, .env files, and TOML configuration files.
    Precedence, highest first: explicit overrides (CLI), environment variables,
    TOML file, defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    encoder: EncoderSettings = Field(
        default_factory=EncoderSettings,
        description="Deferred response producer settings",
    )

    client: ClientSettings = Field(
        default_factory=ClientSettings,
        description="Deferred response consumer settings",
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration",
    )

    @classmethod
    def load_toml_config(cls, toml_path: Path) -> dict[str, Any]:
        """Load configuration from a TOML file."""
        try:
            with toml_path.open("rb") as f:
                return tomllib.load(f)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read TOML config file {toml_path}: {e}"
            ) from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML syntax in {toml_path}: {e}") from e

    @classmethod
    def from_config(
        cls,
        config_path: Path | str | None = None,
        **kwargs: Any,
    ) -> "Settings":
        """Create Settings instance from configuration file and overrides.

        Args:
            config_path: Explicit TOML file; falls back to CONFIG_FILE and the
                default lookup locations
            **kwargs: Section overrides, e.g. ``logging={"level": "DEBUG"}``

        Raises:
            ConfigurationError: If the file cannot be loaded or a value is invalid
        """
        if config_path is None:
            config_path_env = os.environ.get("CONFIG_FILE")
            if config_path_env:
                config_path = Path(config_path_env)

        if isinstance(config_path, str):
            config_path = Path(config_path)

        if config_path is None:
            config_path = find_toml_config_file()

        config_data: dict[str, Any] = {}
        if config_path and config_path.exists():
            config_data = cls.load_toml_config(config_path)
            logger = get_logger(__name__)

            logger.info(
                "config_file_loaded",
                path=str(config_path),
                category="config",
            )

        try:
            settings = cls()

            for key, value in config_data.items():
                if not hasattr(settings, key) or not isinstance(value, dict):
                    continue
                section = getattr(settings, key)
                if not isinstance(section, BaseModel):
                    continue
                # Environment variables win over the TOML file
                file_values = {
                    nested_key: nested_value
                    for nested_key, nested_value in value.items()
                    if os.getenv(f"{key.upper()}__{nested_key.upper()}") is None
                }
                merged = {**section.model_dump(), **file_values}
                setattr(settings, key, type(section).model_validate(merged))

            for key, overrides in kwargs.items():
                section = getattr(settings, key, None)
                if not isinstance(section, BaseModel) or not isinstance(
                    overrides, dict
                ):
                    raise ConfigurationError(f"Unknown configuration section: {key}")
                explicit = {k: v for k, v in overrides.items() if v is not None}
                merged = {**section.model_dump(), **explicit}
                setattr(settings, key, type(section).model_validate(merged))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        return settings
