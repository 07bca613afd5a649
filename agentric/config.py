from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_DEGRADED_AFTER,
    DEFAULT_FREQUENT_RESTART_RATIO,
    DEFAULT_HEALTH_SWEEP_INTERVAL,
    DEFAULT_MAX_RESTARTS,
    DEFAULT_MAX_STEP_RETRIES,
    DEFAULT_RESTART_SETTLE_DELAY,
    DEFAULT_STEP_TIMEOUT_MS,
    DEFAULT_UNRESPONSIVE_AFTER,
)


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Transport configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class WorkflowSettings(BaseModel):
    """Execution engine tuning."""

    default_step_timeout_ms: int = Field(default=DEFAULT_STEP_TIMEOUT_MS, gt=0)
    max_step_retries: int = Field(default=DEFAULT_MAX_STEP_RETRIES, ge=0)


class ProcessSettings(BaseModel):
    """Process lifecycle and health sweep tuning. Durations are in seconds."""

    default_max_restarts: int = Field(default=DEFAULT_MAX_RESTARTS, ge=0)
    restart_settle_delay: float = Field(default=DEFAULT_RESTART_SETTLE_DELAY, ge=0)
    degraded_after: float = DEFAULT_DEGRADED_AFTER
    unresponsive_after: float = DEFAULT_UNRESPONSIVE_AFTER
    frequent_restart_ratio: float = DEFAULT_FREQUENT_RESTART_RATIO
    health_sweep_interval: float = Field(default=DEFAULT_HEALTH_SWEEP_INTERVAL, gt=0)


class AgentricConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = TransportConfig()
    workflow: WorkflowSettings = WorkflowSettings()
    process: ProcessSettings = ProcessSettings()
    database_url: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> AgentricConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to AGENTRIC_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("AGENTRIC_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = AgentricConfig(**data)
    else:
        config = AgentricConfig()

    env_db_url = os.getenv("AGENTRIC_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_log_level = os.getenv("AGENTRIC_LOG_LEVEL")
    if env_log_level:
        config.log_level = env_log_level.upper()
    return config
