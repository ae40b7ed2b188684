"""Configuration module for the bulk engine."""

from .constants import (
    CIRCUIT_BREAKER_PAUSE_MS,
    CIRCUIT_BREAKER_THRESHOLD,
    DEFAULT_FLOOR_MS,
    DEFAULT_INITIAL_DELAY_MS,
    DEFAULT_PEAK_MS,
    MAX_RETRIES,
)
from .profiles import EngineProfile, legacy_profile_for
from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "EngineProfile",
    "legacy_profile_for",
    "DEFAULT_FLOOR_MS",
    "DEFAULT_PEAK_MS",
    "DEFAULT_INITIAL_DELAY_MS",
    "MAX_RETRIES",
    "CIRCUIT_BREAKER_THRESHOLD",
    "CIRCUIT_BREAKER_PAUSE_MS",
]
