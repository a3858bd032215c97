"""
Central configuration management using Pydantic settings.

Provides type-safe configuration with validation, environment variable
support (``TA_CHAIN_`` prefix, ``__`` for nested fields) and YAML
configuration file loading::

    TA_CHAIN_PROVIDER__NAME=function
    TA_CHAIN_PROVIDER__MODULES='["my_indicators"]'
    TA_CHAIN_DATA__BEGIN=2008-05-01
    TA_CHAIN_LOGGING__LEVEL=DEBUG
"""

from __future__ import annotations

import datetime as dt
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.data_types import BEGINNING, ENDING
from ..core.exceptions import InvalidConfigError, MissingConfigError


class DataSettings(BaseModel):
    """Candle file loading settings."""

    data_dir: Path = Field(default=Path("."), description="Directory resolving relative data paths")
    begin: dt.date = Field(default=BEGINNING, description="First date loaded (inclusive)")
    end: dt.date = Field(default=ENDING, description="Date the read stops at (exclusive)")
    strict_load: bool = Field(default=False, description="Raise on malformed records")

    @model_validator(mode="after")
    def validate_range(self) -> "DataSettings":
        """Ensure the load range is not inverted."""
        if self.begin > self.end:
            raise ValueError(f"begin {self.begin} is after end {self.end}")
        return self

    def resolve(self, path: str | Path) -> Path:
        """Resolve a data file path against ``data_dir``."""
        path = Path(path)
        return path if path.is_absolute() else self.data_dir / path


class ProviderSettings(BaseModel):
    """Computation provider settings."""

    name: Literal["talib", "function"] = Field(default="talib", description="Provider backend")
    modules: list[str] = Field(
        default_factory=list,
        description="Modules whose register(provider) adds computations to the function provider",
    )

    @field_validator("modules")
    @classmethod
    def validate_modules(cls, v: list[str]) -> list[str]:
        """Reject blank module names."""
        for name in v:
            if not name.strip():
                raise ValueError("Module names must not be blank")
        return [name.strip() for name in v]


class ChartSettings(BaseModel):
    """Chart rendering settings."""

    width: int = Field(default=800, gt=0, description="Image width in pixels")
    pane_height: int = Field(default=480, gt=0, description="Image height unit in pixels")
    output_dir: Path = Field(default=Path("."), description="Directory for scripts and images")
    bars: bool = Field(default=True, description="Finance bars instead of candle sticks")


class LoggingSettings(BaseModel):
    """Logging configuration settings."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format (json or text)")
    file_path: Path | None = Field(default=None, description="Log file path")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Accept standard level names plus TRACE."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Only json and text formats exist."""
        fmt = v.lower()
        if fmt not in {"json", "text"}:
            raise ValueError(f"Unknown log format: {v}")
        return fmt


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="TA_CHAIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    app_name: str = "TA Chain"
    app_version: str = "1.0.0"

    data: DataSettings = Field(default_factory=DataSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    chart: ChartSettings = Field(default_factory=ChartSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def load_yaml_config(cls, config_path: Path) -> dict[str, Any]:
        """Load configuration from a YAML file, empty if it does not exist."""
        if config_path.exists():
            with open(config_path, "r") as f:
                return yaml.safe_load(f) or {}
        return {}

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "Settings":
        """Build settings with a YAML file overriding environment values.

        Raises:
            MissingConfigError: If the file does not exist.
            InvalidConfigError: If the file holds invalid values.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise MissingConfigError(
                f"Configuration file not found: {config_path}",
                config_file=str(config_path),
            )
        config = cls.load_yaml_config(config_path)
        if not isinstance(config, dict):
            raise InvalidConfigError(
                f"Configuration file must hold a mapping: {config_path}",
                expected="mapping",
            )
        try:
            return cls(**config)
        except ValidationError as exc:
            raise InvalidConfigError(
                f"Invalid configuration in {config_path}: {exc.error_count()} error(s)",
                details={"errors": exc.errors(include_url=False)},
            ) from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance from the environment and ``.env`` file."""
    return Settings()
