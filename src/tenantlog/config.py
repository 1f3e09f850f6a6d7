"""
Configuration management.

Uses Pydantic Settings for environment variable handling and validation,
with an optional ``config.yaml`` providing defaults for unset variables.
The queue endpoint and store table are required: a process that cannot
resolve them refuses to start.
"""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.exceptions import ConfigurationError


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        config_path = os.environ.get("TENANTLOG_CONFIG_FILE")

    if config_path is None:
        for path in ("config.yaml", "../../config.yaml"):
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            return yaml.safe_load(f) or {}
    return {}


class QueueSettings(BaseSettings):
    """Queue collaborator configuration."""

    url: str = Field(
        validation_alias=AliasChoices("TENANTLOG_QUEUE_URL", "QUEUE_URL"),
        description="Queue endpoint (memory://<name> or http(s)://...)",
    )
    visibility_timeout_seconds: float = Field(default=30.0, gt=0, description="Visibility timeout for received messages")
    wait_seconds: float = Field(default=20.0, ge=0, description="Long-poll wait on receive")
    max_receive_count: int = Field(default=3, ge=1, description="Deliveries before dead-lettering")
    timeout_seconds: int = Field(default=30, description="HTTP request timeout for remote queues")

    @field_validator("url")
    def validate_url(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("queue url must not be empty")
        return v.strip()

    model_config = SettingsConfigDict(env_prefix="TENANTLOG_QUEUE_", populate_by_name=True)


class StoreSettings(BaseSettings):
    """Record store configuration."""

    table: str = Field(
        validation_alias=AliasChoices("TENANTLOG_STORE_TABLE", "TABLE_NAME"),
        description="Table/collection identifier for processed records",
    )
    backend: Literal["file", "memory"] = Field(default="file", description="Store backend")
    root_path: Path = Field(default=Path("./data"), description="Root directory for the file backend")

    @field_validator("table")
    def validate_table(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("store table must not be empty")
        return v.strip()

    model_config = SettingsConfigDict(env_prefix="TENANTLOG_STORE_", populate_by_name=True)


class ProcessingSettings(BaseSettings):
    """Simulated processing cost."""

    per_char_seconds: float = Field(default=0.05, ge=0, description="Delay per character of input")
    cap_seconds: float = Field(default=5.0, ge=0, description="Upper bound on the delay")

    model_config = SettingsConfigDict(env_prefix="TENANTLOG_PROCESSING_")


class WorkerSettings(BaseSettings):
    """Batch worker configuration."""

    enabled: bool = Field(default=False, description="Run the worker inside the API process")
    batch_size: int = Field(default=10, ge=1, le=10, description="Messages per receive")
    max_concurrency: int = Field(default=10, ge=1, description="Messages processed in parallel")
    idle_sleep_seconds: float = Field(default=1.0, ge=0, description="Pause after a poll error")

    model_config = SettingsConfigDict(env_prefix="TENANTLOG_WORKER_")


class Settings(BaseSettings):
    """Main application settings."""

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")
    log_format: Literal["console", "json"] = Field(default="console", description="Log renderer")

    # Component settings
    queue: QueueSettings = Field(default_factory=QueueSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)

    model_config = SettingsConfigDict(env_prefix="TENANTLOG_", case_sensitive=False)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance with config file and env support.

    Raises:
        ConfigurationError: if required settings are missing or invalid
    """
    config_data = load_config_file()

    # Config file provides defaults, env vars override
    if config_data:
        _set_env_from_config(config_data)

    try:
        return Settings()
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) or err["msg"] for err in e.errors()]
        raise ConfigurationError(
            "Invalid or missing configuration",
            details={"fields": missing},
        ) from e


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    mappings = {
        ("server", "host"): "TENANTLOG_HOST",
        ("server", "port"): "TENANTLOG_PORT",
        ("server", "debug"): "TENANTLOG_DEBUG",
        ("server", "log_level"): "TENANTLOG_LOG_LEVEL",
        ("server", "log_format"): "TENANTLOG_LOG_FORMAT",
        ("queue", "url"): "TENANTLOG_QUEUE_URL",
        ("queue", "visibility_timeout_seconds"): "TENANTLOG_QUEUE_VISIBILITY_TIMEOUT_SECONDS",
        ("queue", "wait_seconds"): "TENANTLOG_QUEUE_WAIT_SECONDS",
        ("queue", "max_receive_count"): "TENANTLOG_QUEUE_MAX_RECEIVE_COUNT",
        ("store", "table"): "TENANTLOG_STORE_TABLE",
        ("store", "backend"): "TENANTLOG_STORE_BACKEND",
        ("store", "root_path"): "TENANTLOG_STORE_ROOT_PATH",
        ("processing", "per_char_seconds"): "TENANTLOG_PROCESSING_PER_CHAR_SECONDS",
        ("processing", "cap_seconds"): "TENANTLOG_PROCESSING_CAP_SECONDS",
        ("worker", "enabled"): "TENANTLOG_WORKER_ENABLED",
        ("worker", "batch_size"): "TENANTLOG_WORKER_BATCH_SIZE",
        ("worker", "max_concurrency"): "TENANTLOG_WORKER_MAX_CONCURRENCY",
    }

    # The legacy aliases count as "already set"
    aliases = {
        "TENANTLOG_QUEUE_URL": "QUEUE_URL",
        "TENANTLOG_STORE_TABLE": "TABLE_NAME",
    }

    for (section, key), env_var in mappings.items():
        if env_var in os.environ or aliases.get(env_var, env_var) in os.environ:
            continue
        value = (config_data.get(section) or {}).get(key)
        if value is None:
            continue
        if isinstance(value, (dict, list)):
            os.environ[env_var] = json.dumps(value)
        else:
            os.environ[env_var] = str(value)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
