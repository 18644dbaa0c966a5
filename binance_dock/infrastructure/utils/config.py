"""Configuration management for the plugin.

Rules:
- YAML provides defaults for everything (endpoints, timings, slot defaults).
- Environment variables (BINANCE_DOCK_*, nested with "__") and .env override YAML.
- No config file is fine: the plugin must start with built-in defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from binance_dock.models.session_models import SlotSettings


class BinanceConfig(BaseModel):
    """Binance public market-data endpoints."""

    ws_base_url: str = Field(
        default="wss://stream.binance.com:9443/ws",
        description="Raw-stream websocket base; the stream name is appended",
    )
    rest_base_url: str = Field(default="https://api.binance.com", description="Spot REST base URL")
    request_timeout_sec: float = Field(default=10.0, gt=0, le=120)

    @field_validator("ws_base_url")
    @classmethod
    def validate_ws_url(cls, v: str) -> str:
        if not str(v).startswith(("ws://", "wss://")):
            raise ValueError("ws_base_url must start with ws:// or wss://")
        return str(v).rstrip("/")

    @field_validator("rest_base_url")
    @classmethod
    def validate_rest_url(cls, v: str) -> str:
        if not str(v).startswith(("http://", "https://")):
            raise ValueError("rest_base_url must start with http:// or https://")
        return str(v).rstrip("/")


class FeedConfig(BaseModel):
    """Connection liveness policy. Reconnects use a fixed delay and never give up."""

    reconnect_delay_sec: float = Field(default=5.0, ge=0, le=300)
    heartbeat_interval_sec: float = Field(default=180.0, gt=0, le=3600)
    pong_timeout_sec: float = Field(default=10.0, gt=0, le=120)
    open_timeout_sec: float = Field(default=10.0, gt=0, le=120)


class RenderConfig(BaseModel):
    size_px: int = Field(default=144, ge=72, le=512, description="Square key image size in pixels")


class PluginConfig(BaseSettings):
    """Main configuration for the plugin process."""

    model_config = SettingsConfigDict(
        env_prefix="BINANCE_DOCK_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)

    binance: BinanceConfig = Field(default_factory=BinanceConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    defaults: SlotSettings = Field(default_factory=SlotSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if str(v).upper() not in valid:
            raise ValueError(f"Log level must be one of: {sorted(valid)}")
        return str(v).upper()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats the YAML values passed in as init kwargs.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "PluginConfig":
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        try:
            with open(yaml_path, "r", encoding="utf-8") as f:
                data: Dict[str, Any] = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Configuration root must be a mapping: {yaml_path}")

        try:
            return cls(**data)
        except ValidationError as e:
            raise ValueError(f"Configuration validation error: {e}") from e


DEFAULT_CONFIG_PATHS = (Path("config/default.yaml"), Path("config/config.yaml"), Path("config.yaml"))


def load_config(config_path: Optional[Path] = None) -> PluginConfig:
    """Load configuration from YAML + .env (env wins)."""
    load_dotenv(dotenv_path=Path(".env"))

    if config_path is not None:
        return PluginConfig.from_yaml(config_path)

    for path in DEFAULT_CONFIG_PATHS:
        if path.exists():
            return PluginConfig.from_yaml(path)
    return PluginConfig()
