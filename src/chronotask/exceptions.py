"""
Custom exception classes for the Chronotask error pipeline.
"""

from typing import Any, Dict, Optional


class ChronotaskError(Exception):
    """Base exception for all Chronotask errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class StorageError(ChronotaskError):
    """Raised when the durable key-value storage fails."""

    def __init__(
        self,
        key: Optional[str],
        reason: str,
        code: str = "STORAGE_ACCESS_DENIED",
    ):
        self.key = key
        self.reason = reason
        super().__init__(
            f"Storage operation on '{key}' failed: {reason}",
            code,
            {"key": key},
        )


class QuotaExceededError(StorageError):
    """Raised when a write does not fit in the storage quota."""

    def __init__(self, key: Optional[str], reason: str = "quota exceeded"):
        super().__init__(key, reason, "STORAGE_QUOTA_EXCEEDED")


class StorageAccessError(StorageError):
    """Raised when the storage cannot be read or written."""

    def __init__(self, key: Optional[str], reason: str = "access denied"):
        super().__init__(key, reason, "STORAGE_ACCESS_DENIED")


class StorageParseError(StorageError):
    """Raised when a stored document is not valid JSON."""

    def __init__(self, key: Optional[str], reason: str = "parse error"):
        super().__init__(key, reason, "STORAGE_PARSE_ERROR")


class ValidationError(ChronotaskError):
    """Raised when input validation fails."""

    def __init__(self, field: str, value: Any, reason: str, rule: str = "invalid"):
        self.field = field
        self.value = value
        self.reason = reason
        self.rule = rule
        super().__init__(
            f"Validation failed for {field}: {reason}",
            "VALIDATION_INVALID_FORMAT",
            {"field": field, "value": value, "reason": reason, "rule": rule},
        )


class RecoveryTimeoutError(ChronotaskError):
    """Raised when a fallback strategy does not finish in time."""

    def __init__(self, code: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Recovery for '{code}' timed out after {timeout:g}s",
            code,
            {"timeout": timeout},
        )

