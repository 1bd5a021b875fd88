"""
Settings Management

Provides centralized, type-safe configuration using Pydantic.
Supports environment variables, .env files, and hierarchical config.

Design decisions:
- Using pydantic-settings for validation and type coercion
- Immutable settings after initialization (frozen model)
- Separate concerns: orchestration vs. persistence vs. observability
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OrchestratorSettings(BaseSettings):
    """Plan-execute-replan loop configuration."""

    model_config = SettingsConfigDict(env_prefix="PLANLOOP_ORCH_")

    max_iterations: int = Field(
        default=10,
        ge=1,
        description="Maximum replan rounds before the run fails",
    )
    abort_on_step_error: bool = Field(
        default=False,
        description="Stop the executing phase at the first failed step",
    )
    run_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Deadline applied to every run (cooperative cancellation)",
    )


class CheckpointSettings(BaseSettings):
    """Checkpoint persistence configuration."""

    model_config = SettingsConfigDict(env_prefix="PLANLOOP_CHECKPOINT_")

    backend: Literal["memory", "file", "redis"] = "memory"

    # File backend
    directory: str = Field(default="./data/checkpoints")

    # Redis backend
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_prefix: str = Field(default="planloop:checkpoint:")

    # Policy
    on_conflict: Literal["overwrite", "error"] = "overwrite"
    delete_on_finish: bool = Field(
        default=True,
        description="Delete a resumed run's checkpoint once it completes or fails",
    )


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(env_prefix="PLANLOOP_OBS_")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: str | None = Field(default=None)

    enable_tracing: bool = Field(default=False)
    trace_sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)


class Settings(BaseSettings):
    """
    Master settings aggregator.

    This is the single source of truth for all configuration.
    Sub-settings are composed here to maintain clear boundaries.
    """

    model_config = SettingsConfigDict(
        env_prefix="PLANLOOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    app_name: str = Field(default="Planloop")
    app_version: str = Field(default="0.1.0")
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = Field(default=False)

    # API settings
    api_prefix: str = Field(default="/api/v1")
    cors_origins: list[str] = Field(default=["*"])

    # Component settings (composed)
    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)
    checkpoint: CheckpointSettings = Field(default_factory=CheckpointSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Safe to cache because settings are frozen.
    """
    return Settings()
