"""Runtime configuration loaded from ``REQLENS_*`` environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REQLENS_", env_file=None)

    # Service
    app_name: str = "reqlens"
    host: str = "0.0.0.0"
    port: int = 3000

    # Storage and sinks
    database_path: str = "reqlens.db"
    log_dir: str = "logs"
    log_backend: Literal["file", "memory"] = "file"
    # Minimum level of the package loggers feeding the app sink
    log_level: str = "INFO"
    # Minimum level of sink entries mirrored to stdout
    console_log_level: str = "INFO"

    # Synthetic noise
    latency_min_ms: int = Field(default=10, ge=0)
    latency_max_ms: int = Field(default=100, ge=0)
    filter_failure_rate: float = Field(default=0.3, ge=0.0, le=1.0)
    compute_failure_rate: float = Field(default=0.8, ge=0.0, le=1.0)
    compute_iterations: int = Field(default=1_000_000, ge=0)
    random_seed: int | None = None

    # Query interception: "first" instruments only the first query of a
    # request, "all" instruments every query
    query_interception: Literal["first", "all"] = "first"
    # SQLite plans carry no cost figures, so measured costs are 0.0 there
    explain_prefix: str = "EXPLAIN QUERY PLAN "

    # Startup
    readiness_attempts: int = Field(default=10, ge=1)
    readiness_delay_ms: int = Field(default=5000, ge=0)
    seed_user_count: int = Field(default=50, ge=0)

    order_batch_size: int = Field(default=10, ge=1)
    exclude_paths: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_latency_range(self) -> "Settings":
        if self.latency_min_ms > self.latency_max_ms:
            raise ValueError("latency_min_ms must not exceed latency_max_ms")
        return self


@lru_cache
def get_settings() -> Settings:
    # Cached settings instance for reuse
    return Settings()
