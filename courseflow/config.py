"""Runtime settings, read from COURSEFLOW_* environment variables."""

from datetime import date
from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Orchestrator configuration."""

    model_config = SettingsConfigDict(
        env_prefix="COURSEFLOW_", env_file=None, extra="ignore"
    )

    log_level: str = "INFO"

    # Health monitoring
    health_check_interval_seconds: float = 300.0
    health_check_timeout_seconds: float = 10.0
    service_init_timeout_seconds: float = 60.0

    # Workflow execution
    step_timeout_seconds: Optional[float] = None    # None = unbounded
    run_store_path: str = ":memory:"
    program_start_date: Optional[date] = None       # None = week 1 starts at planning time

    # HTTP ingress
    max_batch_events: int = Field(default=100, ge=1)
    default_plugin_id: str = "pmp-analytics-plugin"
    api_keys: Dict[str, str] = {}                   # plugin id -> API key


@lru_cache
def get_settings() -> Settings:
    """Settings for entry points. Components take settings explicitly."""
    return Settings()
