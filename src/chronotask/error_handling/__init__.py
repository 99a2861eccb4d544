"""
Client-side error pipeline: structured logging, recovery strategies with
retry backoff and circuit breakers, and the error handler facade.
"""

from .circuit_breaker import CircuitBreaker, CircuitState
from .component import ComponentErrorHandler
from .defaults import build_error_handler, get_error_handler
from .error_handler import ErrorHandler
from .error_logger import ErrorLogger
from .notifier import LoggingNotifier, RecordingNavigator, RecordingNotifier
from .raw_errors import (
    GenericFailure,
    HttpFailure,
    NetworkFailure,
    RawError,
    TimeoutFailure,
    adapt,
)
from .recovery import CallbackKind, RecoveryEngine, RecoveryState
from .storage import JSONFileStorage, MemoryStorage

__all__ = [
    "CallbackKind",
    "CircuitBreaker",
    "CircuitState",
    "ComponentErrorHandler",
    "ErrorHandler",
    "ErrorLogger",
    "GenericFailure",
    "HttpFailure",
    "JSONFileStorage",
    "LoggingNotifier",
    "MemoryStorage",
    "NetworkFailure",
    "RawError",
    "RecordingNavigator",
    "RecordingNotifier",
    "RecoveryEngine",
    "RecoveryState",
    "TimeoutFailure",
    "adapt",
    "build_error_handler",
    "get_error_handler",
]
