"""Configuration management for the channel monitoring system."""

import os
import re
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError


DEFAULT_CONFIG_PATH = "config/channel_monitoring.yaml"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str) -> float:
    """Parse a Go-style duration string ("1h", "90s", "1h30m") into seconds."""
    text = str(value or "").strip()
    if not text:
        raise ValueError("empty duration")
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    if total <= 0:
        raise ValueError(f"duration must be positive: {value!r}")
    return total


class UptimeKumaConfig(BaseModel):
    """Uptime Kuma push monitor configuration."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    status: str = Field(default="disabled", description="'enabled' turns push reporting on")
    model_url: Dict[str, str] = Field(default_factory=dict, description="Push URL per model name")
    channel_url: Dict[str, str] = Field(default_factory=dict, description="Push URL per channel ID")

    @property
    def enabled(self) -> bool:
        return self.status.strip().lower() == "enabled"


class ChannelMonitoringConfig(BaseModel):
    """Main configuration for the channel monitoring system."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    # Scheduling
    time_period: str = Field(default="1h", description="Interval between probe cycles (Go duration syntax)")

    # Model selection
    force_models: bool = Field(default=False, description="Always probe the static model list")
    models: List[str] = Field(default_factory=list, description="Static model list")
    exclude_channel: List[int] = Field(default_factory=list, description="Channel IDs never probed")
    exclude_model: List[str] = Field(default_factory=list, description="Model names dropped from discovery")

    # Write-back backend
    oneapi_type: Literal["oneapi", "newapi", "onehub"] = Field(
        default="oneapi", description="Gateway flavour; 'onehub' writes through the management API"
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///one-api.db", description="SQLAlchemy async URL of the gateway database"
    )
    base_url: str = Field(default="", description="Management API base URL (onehub)")
    system_token: str = Field(default="", description="Management API access token (onehub)")

    # Probing
    probe_timeout_seconds: float = Field(default=10.0, description="Timeout of each completion probe")
    probe_concurrency: int = Field(default=0, description="Per-channel probe cap, 0 means unbounded")
    http_timeout_seconds: float = Field(default=30.0, description="Default timeout for other HTTP calls")
    user_agent: str = Field(default="channel-monitoring/0.1", description="User-Agent header")

    # Reporting
    uptime_kuma: UptimeKumaConfig = Field(default_factory=UptimeKumaConfig)

    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("time_period")
    @classmethod
    def _check_time_period(cls, value: str) -> str:
        parse_duration(value)
        return value

    @field_validator("probe_concurrency")
    @classmethod
    def _check_probe_concurrency(cls, value: int) -> int:
        if value < 0:
            raise ValueError("probe_concurrency must be >= 0")
        return value

    @property
    def interval_seconds(self) -> float:
        return parse_duration(self.time_period)

    @property
    def remote_managed(self) -> bool:
        return self.oneapi_type == "onehub"


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def load_config(config_path: Optional[str] = None) -> ChannelMonitoringConfig:
    """Load configuration from file and environment variables."""
    if config_path is None:
        config_path = os.getenv("CHANNEL_MONITORING_CONFIG", DEFAULT_CONFIG_PATH)

    config_data = {}

    # Load from file if exists
    if os.path.exists(config_path):
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config {config_path}: {e}") from e
        if not isinstance(config_data, dict):
            raise ConfigError("Config YAML must be a mapping")

    # Override with environment variables
    env_overrides = {
        "database_url": os.getenv("DATABASE_URL"),
        "oneapi_type": os.getenv("ONEAPI_TYPE"),
        "base_url": os.getenv("ONEAPI_BASE_URL"),
        "system_token": os.getenv("SYSTEM_TOKEN"),
        "time_period": os.getenv("TIME_PERIOD"),
        "log_level": os.getenv("LOG_LEVEL"),
        "force_models": os.getenv("FORCE_MODELS"),
    }

    for key, value in env_overrides.items():
        if value is not None:
            if key == "force_models":
                value = _env_bool(value)
            config_data[key] = value

    try:
        return ChannelMonitoringConfig(**config_data)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
