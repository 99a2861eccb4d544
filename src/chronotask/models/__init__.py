"""
Data models for the Chronotask error pipeline.
"""

from .log_models import (
    EnvironmentInfo,
    ErrorKindSnapshot,
    LogEntry,
    LogFilters,
    LogLevel,
    LogStats,
    TopError,
)
from .config_models import HandlerConfig, LoggerConfig, RecoveryConfig
from .recovery_models import (
    FieldError,
    HandleResult,
    RecoveryResult,
    ValidationBatchResult,
)
from .protocols import KeyValueStorage, Navigator, NotificationTier, Notifier

__all__ = [
    "EnvironmentInfo",
    "ErrorKindSnapshot",
    "LogEntry",
    "LogFilters",
    "LogLevel",
    "LogStats",
    "TopError",
    "HandlerConfig",
    "LoggerConfig",
    "RecoveryConfig",
    "FieldError",
    "HandleResult",
    "RecoveryResult",
    "ValidationBatchResult",
    "KeyValueStorage",
    "Navigator",
    "NotificationTier",
    "Notifier",
]
