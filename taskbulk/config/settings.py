"""Engine settings using Pydantic. No side effects at import time."""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    CIRCUIT_BREAKER_PAUSE_MS,
    CIRCUIT_BREAKER_THRESHOLD,
    DEFAULT_FLOOR_MS,
    DEFAULT_INITIAL_DELAY_MS,
    DEFAULT_PEAK_MS,
    MAX_RETRIES,
    RATE_LIMIT_BACKOFF_BASE_MS,
    RATE_LIMIT_BACKOFF_MAX_MS,
    RATE_LIMIT_BACKOFF_STEP_MS,
    TRANSIENT_BASE_DELAY_MS,
)
from .profiles import EngineProfile


class Settings(BaseSettings):
    """Engine settings with validation.

    Loaded from `TASKBULK_*` environment variables and the .env file.
    The .env file is read only when Settings() is instantiated.
    """

    model_config = SettingsConfigDict(
        env_prefix="TASKBULK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Delay controller ===
    floor_ms: Annotated[int, Field(ge=0)] = DEFAULT_FLOOR_MS
    peak_ms: Annotated[int, Field(ge=0)] = DEFAULT_PEAK_MS
    initial_delay_ms: Annotated[int, Field(ge=0)] = DEFAULT_INITIAL_DELAY_MS
    sustainable_ms: Annotated[int, Field(ge=0)] | None = None

    # === Retries ===
    max_retries: Annotated[int, Field(gt=0)] = MAX_RETRIES
    transient_base_delay_ms: Annotated[int, Field(ge=0)] = TRANSIENT_BASE_DELAY_MS
    rate_limit_backoff_base_ms: Annotated[int, Field(ge=0)] = RATE_LIMIT_BACKOFF_BASE_MS
    rate_limit_backoff_step_ms: Annotated[int, Field(ge=0)] = RATE_LIMIT_BACKOFF_STEP_MS
    rate_limit_backoff_max_ms: Annotated[int, Field(ge=0)] = RATE_LIMIT_BACKOFF_MAX_MS

    # === Circuit breaker ===
    circuit_breaker_threshold: Annotated[int, Field(gt=0)] = CIRCUIT_BREAKER_THRESHOLD
    circuit_breaker_pause_ms: Annotated[int, Field(ge=0)] = CIRCUIT_BREAKER_PAUSE_MS

    # === Run behaviour ===
    stop_on_failure: bool = Field(default=True, description="Abandon the run on first failure")

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = False

    def to_profile(self) -> EngineProfile:
        """Build the engine profile described by these settings.

        Raises:
            ValueError: If the delay bounds are inconsistent (floor > peak)
        """
        return EngineProfile(
            floor_ms=self.floor_ms,
            peak_ms=self.peak_ms,
            initial_delay_ms=self.initial_delay_ms,
            sustainable_ms=self.sustainable_ms,
            max_retries=self.max_retries,
            transient_base_delay_ms=self.transient_base_delay_ms,
            rate_limit_backoff_base_ms=self.rate_limit_backoff_base_ms,
            rate_limit_backoff_step_ms=self.rate_limit_backoff_step_ms,
            rate_limit_backoff_max_ms=self.rate_limit_backoff_max_ms,
            circuit_breaker_threshold=self.circuit_breaker_threshold,
            circuit_breaker_pause_ms=self.circuit_breaker_pause_ms,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    This is the recommended way to access settings to avoid
    repeated .env file parsing.
    """
    return Settings()
