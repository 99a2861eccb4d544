"""
Error taxonomy: the closed catalog of error kinds.

Every failure is mapped to exactly one ErrorKind before anything acts on it.
Severity drives notification styling and log level, recovery drives strategy
dispatch, and user_message is the only copy ever shown to the user.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet


class ErrorCategory(str, Enum):
    """Subsystem an error originates from."""

    API = "api"
    STORAGE = "storage"
    NETWORK = "network"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    PERMISSION = "permission"
    TASK = "task"
    TIMER = "timer"
    PROJECT = "project"
    SETTINGS = "settings"
    UI = "ui"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Error severity levels for prioritization."""

    LOW = "low"  # app continues normally
    MEDIUM = "medium"  # some features affected
    HIGH = "high"  # core functionality affected
    CRITICAL = "critical"  # app-breaking


class RecoveryStrategy(str, Enum):
    """How the recovery engine reacts to an error kind."""

    RETRY = "retry"
    REFRESH = "refresh"
    FALLBACK = "fallback"
    REDIRECT = "redirect"
    MANUAL = "manual"
    IGNORE = "ignore"
    REPORT = "report"


@dataclass(frozen=True)
class ErrorKind:
    """Static catalog entry describing one class of failure."""

    code: str
    category: ErrorCategory
    severity: ErrorSeverity
    recovery: RecoveryStrategy
    message: str
    user_message: str

    def with_recovery(self, recovery: RecoveryStrategy) -> "ErrorKind":
        """Copy of this kind dispatched to a different strategy."""
        return ErrorKind(
            code=self.code,
            category=self.category,
            severity=self.severity,
            recovery=recovery,
            message=self.message,
            user_message=self.user_message,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "category": self.category.value,
            "severity": self.severity.value,
            "recovery": self.recovery.value,
            "message": self.message,
            "userMessage": self.user_message,
        }


_C = ErrorCategory
_S = ErrorSeverity
_R = RecoveryStrategy

ERROR_KINDS: Dict[str, ErrorKind] = {
    kind.code: kind
    for kind in (
        # API
        ErrorKind(
            "API_NETWORK_ERROR", _C.API, _S.HIGH, _R.RETRY,
            "Connection error with the server",
            "Could not connect to the server. Check your internet connection.",
        ),
        ErrorKind(
            "API_TIMEOUT", _C.API, _S.MEDIUM, _R.RETRY,
            "API request timed out",
            "The operation is taking longer than expected. Please try again.",
        ),
        ErrorKind(
            "API_SERVER_ERROR", _C.API, _S.HIGH, _R.REPORT,
            "Internal server error",
            "Internal server error. Please try again later.",
        ),
        ErrorKind(
            "API_NOT_FOUND", _C.API, _S.MEDIUM, _R.FALLBACK,
            "Resource not found",
            "The requested resource was not found.",
        ),
        ErrorKind(
            "API_UNAUTHORIZED", _C.AUTHENTICATION, _S.HIGH, _R.REDIRECT,
            "Unauthorized",
            "Your session has expired. Please log in again.",
        ),
        ErrorKind(
            "API_FORBIDDEN", _C.PERMISSION, _S.HIGH, _R.MANUAL,
            "Access denied",
            "You do not have permission to perform this action.",
        ),
        ErrorKind(
            "API_RATE_LIMIT", _C.API, _S.MEDIUM, _R.RETRY,
            "Request rate limit exceeded",
            "You have made too many requests. Wait a moment and try again.",
        ),
        # Storage
        ErrorKind(
            "STORAGE_QUOTA_EXCEEDED", _C.STORAGE, _S.HIGH, _R.MANUAL,
            "Storage quota exceeded",
            "Local storage is full. Free up space or contact support.",
        ),
        ErrorKind(
            "STORAGE_ACCESS_DENIED", _C.STORAGE, _S.HIGH, _R.FALLBACK,
            "Storage access denied",
            "Storage cannot be accessed. Check your permissions.",
        ),
        ErrorKind(
            "STORAGE_CORRUPTION", _C.STORAGE, _S.CRITICAL, _R.REFRESH,
            "Corrupted data in storage",
            "Local data is corrupted. Your settings will be reset.",
        ),
        ErrorKind(
            "STORAGE_PARSE_ERROR", _C.STORAGE, _S.MEDIUM, _R.FALLBACK,
            "Failed to parse stored data",
            "Saved data could not be read. Default values will be used.",
        ),
        # Validation
        ErrorKind(
            "VALIDATION_REQUIRED_FIELD", _C.VALIDATION, _S.LOW, _R.MANUAL,
            "Required field missing",
            "Please fill in all required fields.",
        ),
        ErrorKind(
            "VALIDATION_INVALID_FORMAT", _C.VALIDATION, _S.LOW, _R.MANUAL,
            "Invalid format",
            "The format of the entered value is not valid.",
        ),
        ErrorKind(
            "VALIDATION_OUT_OF_RANGE", _C.VALIDATION, _S.LOW, _R.MANUAL,
            "Value out of range",
            "The entered value is outside the allowed range.",
        ),
        # Tasks
        ErrorKind(
            "TASK_NOT_FOUND", _C.TASK, _S.MEDIUM, _R.REFRESH,
            "Task not found",
            "The task you are looking for does not exist or was deleted.",
        ),
        ErrorKind(
            "TASK_CREATION_FAILED", _C.TASK, _S.MEDIUM, _R.RETRY,
            "Failed to create task",
            "The task could not be created. Please try again.",
        ),
        ErrorKind(
            "TASK_UPDATE_FAILED", _C.TASK, _S.MEDIUM, _R.RETRY,
            "Failed to update task",
            "The task could not be updated. Please try again.",
        ),
        ErrorKind(
            "TASK_DELETE_FAILED", _C.TASK, _S.MEDIUM, _R.RETRY,
            "Failed to delete task",
            "The task could not be deleted. Please try again.",
        ),
        # Timer
        ErrorKind(
            "TIMER_INIT_FAILED", _C.TIMER, _S.HIGH, _R.REFRESH,
            "Failed to initialize timer",
            "The timer could not be started. Reload the page.",
        ),
        ErrorKind(
            "TIMER_SYNC_FAILED", _C.TIMER, _S.MEDIUM, _R.FALLBACK,
            "Timer synchronization failed",
            "The timer lost synchronization. Restart the session.",
        ),
        # Projects
        ErrorKind(
            "PROJECT_NOT_FOUND", _C.PROJECT, _S.MEDIUM, _R.FALLBACK,
            "Project not found",
            "The selected project does not exist or was deleted.",
        ),
        ErrorKind(
            "PROJECT_ACCESS_DENIED", _C.PROJECT, _S.HIGH, _R.MANUAL,
            "Project access denied",
            "You do not have permission to access this project.",
        ),
        # Settings
        ErrorKind(
            "SETTINGS_LOAD_FAILED", _C.SETTINGS, _S.MEDIUM, _R.FALLBACK,
            "Failed to load settings",
            "Settings could not be loaded. Default values will be used.",
        ),
        ErrorKind(
            "SETTINGS_SAVE_FAILED", _C.SETTINGS, _S.MEDIUM, _R.RETRY,
            "Failed to save settings",
            "Settings could not be saved. Please try again.",
        ),
        # Network
        ErrorKind(
            "NETWORK_OFFLINE", _C.NETWORK, _S.HIGH, _R.FALLBACK,
            "No internet connection",
            "No internet connection. Working in offline mode.",
        ),
        ErrorKind(
            "NETWORK_SLOW", _C.NETWORK, _S.LOW, _R.IGNORE,
            "Slow connection detected",
            "Slow connection detected. Some features may take longer.",
        ),
        # UI
        ErrorKind(
            "UI_COMPONENT_CRASH", _C.UI, _S.HIGH, _R.REFRESH,
            "UI component crashed",
            "A part of the interface failed. Reload the page.",
        ),
        ErrorKind(
            "UI_RENDER_ERROR", _C.UI, _S.MEDIUM, _R.FALLBACK,
            "Render error",
            "The content could not be displayed. Try refreshing.",
        ),
        # Unknown
        ErrorKind(
            "UNKNOWN_ERROR", _C.UNKNOWN, _S.MEDIUM, _R.REPORT,
            "Unknown error",
            "An unexpected error occurred. Please contact support.",
        ),
    )
}

UNKNOWN_ERROR = ERROR_KINDS["UNKNOWN_ERROR"]


def lookup(code: Any) -> ErrorKind:
    """Resolve a code to its catalog entry, defaulting to UNKNOWN_ERROR."""
    if isinstance(code, ErrorKind):
        return code
    if not isinstance(code, str):
        return UNKNOWN_ERROR
    return ERROR_KINDS.get(code, UNKNOWN_ERROR)


def should_retry(kind: ErrorKind) -> bool:
    return kind.recovery == RecoveryStrategy.RETRY


def is_critical(kind: ErrorKind) -> bool:
    return kind.severity == ErrorSeverity.CRITICAL


def by_category(category: ErrorCategory) -> FrozenSet[ErrorKind]:
    """All catalog entries belonging to a category."""
    return frozenset(k for k in ERROR_KINDS.values() if k.category == category)
