"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from coinwatch.core.exceptions import ConfigError


class ProviderConfig(BaseModel):
    """CoinMarketCap API access configuration."""

    model_config = ConfigDict(frozen=True)

    api_key: str | None = None
    base_url: str = "https://pro-api.coinmarketcap.com"
    convert: str = "USD"
    limit: int = 30
    request_timeout: float = 10.0
    rate_limit: int = 30
    rate_period: float = 60.0

    @field_validator("limit")
    @classmethod
    def limit_within_provider_max(cls, v: int) -> int:
        if v < 1 or v > 5000:
            raise ValueError("limit must be between 1 and 5000")
        return v

    @field_validator("request_timeout", "rate_period")
    @classmethod
    def positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be > 0 seconds")
        return v

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rate_limit must be >= 1")
        return v

    @field_validator("convert")
    @classmethod
    def convert_upper(cls, v: str) -> str:
        return v.strip().upper()


class StorageConfig(BaseModel):
    """SQLite storage configuration."""

    model_config = ConfigDict(frozen=True)

    sqlite_path: str = "./data/coinwatch.db"


class PollerConfig(BaseModel):
    """Background ingestion schedule."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    interval_seconds: float = 70.0

    @field_validator("interval_seconds")
    @classmethod
    def interval_positive(cls, v: float) -> float:
        if v < 1:
            raise ValueError("interval_seconds must be >= 1")
        return v


class QueryConfig(BaseModel):
    """Read-side defaults."""

    model_config = ConfigDict(frozen=True)

    page_size: int = 30
    history_window: int = 60

    @field_validator("page_size", "history_window")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8000


class CoinwatchConfig(BaseModel):
    """Root configuration for coinwatch."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderConfig = ProviderConfig()
    storage: StorageConfig = StorageConfig()
    poller: PollerConfig = PollerConfig()
    query: QueryConfig = QueryConfig()
    api: APIConfig = APIConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "COINWATCH_",
) -> CoinwatchConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (COINWATCH_PROVIDER__API_KEY, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        COINWATCH_POLLER__INTERVAL_SECONDS=30  ->  poller.interval_seconds = 30
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return CoinwatchConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("COINWATCH_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from COINWATCH_CONFIG not found: {env_path}",
                context={"field": "COINWATCH_CONFIG", "value": env_path},
            )
        return p

    default = Path("coinwatch.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int/float.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue

        # API keys are opaque strings; never cast them
        cast_value = value if parts[-1] == "api_key" else _auto_cast(value)

        target = result
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            else:
                target[part] = dict(target[part])
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
