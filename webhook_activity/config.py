"""
Configuration for the activity stream client.

Settings come from (lowest to highest priority) defaults, environment
variables prefixed ``WEBHOOK_ACTIVITY_`` (optionally loaded from dotenv files),
a YAML config file, and explicit keyword overrides.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_ENV_FILES = (".env.local", ".env")


class StreamSettings(BaseSettings):
    """Activity stream client configuration."""

    stream_url: str = Field(default="ws://localhost:3000", description="Base WebSocket endpoint")
    credential_param: str = Field(default="apiKey", description="Query parameter carrying the API key")
    api_key: Optional[str] = Field(default=None, description="API key to start the stream with")
    credential_file: Optional[str] = Field(default=None, description="File to persist the API key in")

    history_size: int = Field(default=100, description="Number of recent events kept")
    max_reconnect_attempts: int = Field(default=10, description="Reconnect attempts before giving up")
    reconnect_base_delay: float = Field(default=1.0, description="First reconnect delay in seconds")
    reconnect_max_delay: float = Field(default=30.0, description="Reconnect delay ceiling in seconds")

    open_timeout: Optional[float] = Field(default=10.0, description="Handshake timeout in seconds")
    ping_interval: Optional[float] = Field(default=30.0, description="Keepalive ping interval in seconds")
    ping_timeout: Optional[float] = Field(default=10.0, description="Keepalive pong timeout in seconds")
    close_timeout: Optional[float] = Field(default=5.0, description="Close handshake timeout in seconds")

    health_url: str = Field(default="http://localhost:3000/health", description="HTTP health endpoint")
    log_level: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(env_prefix="WEBHOOK_ACTIVITY_", extra="ignore")

    @field_validator("stream_url")
    @classmethod
    def validate_stream_url(cls, v):
        """Accept ws(s) URLs, translating http(s) the way browsers do."""
        if v.startswith("http://"):
            v = "ws://" + v[len("http://"):]
        elif v.startswith("https://"):
            v = "wss://" + v[len("https://"):]
        if not v.startswith(("ws://", "wss://")):
            raise ValueError(f"Stream URL must use ws:// or wss://, got: {v}")
        return v

    @field_validator("history_size")
    @classmethod
    def validate_history_size(cls, v):
        """History must hold at least one event."""
        if v < 1:
            raise ValueError(f"history_size must be positive, got: {v}")
        return v

    @field_validator("max_reconnect_attempts")
    @classmethod
    def validate_reconnect_attempts(cls, v):
        """Zero disables reconnection."""
        if v < 0:
            raise ValueError(f"max_reconnect_attempts cannot be negative, got: {v}")
        return v

    @field_validator("reconnect_base_delay", "reconnect_max_delay")
    @classmethod
    def validate_delays(cls, v):
        """Delays must be positive."""
        if v <= 0:
            raise ValueError(f"Reconnect delays must be positive, got: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Normalise and check the log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level


def load_env_files(env_file: Optional[Union[str, Path]] = None) -> list:
    """
    Load dotenv files into the process environment without overriding it.

    Args:
        env_file: Explicit file to load; defaults to .env.local then .env

    Returns:
        List of files that were loaded
    """
    candidates = [Path(env_file)] if env_file else [Path(name) for name in DEFAULT_ENV_FILES]

    loaded = []
    for path in candidates:
        if path.exists():
            logger.debug("Loading environment file: %s", path)
            load_dotenv(dotenv_path=path, override=False)
            loaded.append(str(path))
        elif env_file:
            logger.warning("Environment file not found: %s", path)

    if loaded:
        logger.info("Loaded environment files: %s", loaded)
    return loaded


def load_yaml_config(config_file: Union[str, Path]) -> Dict[str, Any]:
    """Read a YAML mapping of settings; a missing or empty file yields {}."""
    path = Path(config_file)
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def load_settings(
    env_file: Optional[Union[str, Path]] = None,
    config_file: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> StreamSettings:
    """
    Build StreamSettings from environment, dotenv, YAML and overrides.

    Args:
        env_file: Dotenv file to load first
        config_file: Optional YAML file with setting values
        **overrides: Explicit values; None values are ignored

    Returns:
        Validated settings
    """
    load_env_files(env_file)

    values: Dict[str, Any] = {}
    if config_file:
        values.update(load_yaml_config(config_file))
    values.update({key: value for key, value in overrides.items() if value is not None})

    return StreamSettings(**values)
