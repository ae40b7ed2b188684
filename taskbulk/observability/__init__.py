"""Observability for the bulk engine.

Provides structured logging, run metrics and live telemetry observers.
"""

from .logger import LogContext, get_logger, log_context, setup_logging
from .metrics import RunMetrics
from .telemetry import RecoveryTimer, RequestRateMeter, RunObservers

__all__ = [
    "LogContext",
    "get_logger",
    "log_context",
    "setup_logging",
    "RunMetrics",
    "RunObservers",
    "RequestRateMeter",
    "RecoveryTimer",
]
