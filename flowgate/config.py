from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import DEFAULT_RESUME_ATTEMPTS, DEFAULT_STEP_DELAY


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    key_prefix: str = "flowgate"
    max_backlog: int = 10_000


class TransportConfig(BaseModel):
    """Event transport configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    history_size: int = 100
    redis: RedisConfig = RedisConfig()


class OrchestratorConfig(BaseModel):
    """Step loop behaviour."""

    step_delay: float = DEFAULT_STEP_DELAY
    on_reject: Literal["hold", "fail"] = "hold"


class BlueprintConfig(BaseModel):
    default_policy: Literal["allow", "deny"] = "allow"


class AgentConfig(BaseModel):
    model: str = "openai:gpt-4o"


class ResumeConfig(BaseModel):
    """Where resume signals go once a review is decided."""

    base_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = 10.0
    max_attempts: int = DEFAULT_RESUME_ATTEMPTS


class FlowgateConfig(BaseModel):
    """Top-level configuration model."""

    orchestrator: OrchestratorConfig = OrchestratorConfig()
    blueprint: BlueprintConfig = BlueprintConfig()
    agent: AgentConfig = AgentConfig()
    resume: ResumeConfig = ResumeConfig()
    transport: TransportConfig = TransportConfig()
    database_url: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> FlowgateConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to FLOWGATE_CONFIG env
            variable or 'flowgate.yaml' in the current directory.
    """

    config_path = path or os.getenv("FLOWGATE_CONFIG", "flowgate.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = FlowgateConfig(**data)
    else:
        config = FlowgateConfig()

    env_db_url = os.getenv("FLOWGATE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
