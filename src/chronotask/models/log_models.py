"""
Models for structured error log entries and their queries.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LogLevel(str, Enum):
    """Error log levels, lowest first."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    @property
    def stdlib_level(self) -> int:
        """Matching level of the stdlib logging module."""
        return _STDLIB_LEVELS[self]


_LEVEL_ORDER = list(LogLevel)

_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.FATAL: logging.CRITICAL,
}


class ErrorKindSnapshot(BaseModel):
    """Copy of the catalog entry at the time the entry was logged."""

    model_config = ConfigDict(frozen=True)

    code: str
    category: str
    severity: str
    recovery: str
    message: str
    user_message: str


class EnvironmentInfo(BaseModel):
    """Snapshot of the process environment an entry was logged from."""

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(..., description="Epoch milliseconds")
    timezone: str
    platform: str
    python_version: str
    hostname: str
    pid: int
    storage_available: bool


class LogEntry(BaseModel):
    """A single structured error log entry. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    session_id: str
    level: LogLevel
    error_type: ErrorKindSnapshot
    context: Dict[str, Any] = Field(default_factory=dict)
    environment: Optional[EnvironmentInfo] = None
    stack: Optional[str] = None
    fingerprint: str


class LogFilters(BaseModel):
    """Filters accepted by ErrorLogger.get_logs."""

    level: Optional[LogLevel] = None
    category: Optional[str] = None
    severity: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None

    @field_validator("since", "until")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Entries carry aware UTC timestamps; treat naive bounds as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def matches(self, entry: LogEntry) -> bool:
        if self.level and entry.level != self.level:
            return False
        if self.category and entry.error_type.category != self.category:
            return False
        if self.severity and entry.error_type.severity != self.severity:
            return False
        if self.since and entry.timestamp < self.since:
            return False
        if self.until and entry.timestamp > self.until:
            return False
        return True


class TopError(BaseModel):
    code: str
    fingerprint: str
    count: int


class LogStats(BaseModel):
    """Aggregate counts over the persisted log store."""

    total: int = 0
    last_hour: int = 0
    last_day: int = 0
    by_level: Dict[str, int] = Field(default_factory=dict)
    by_category: Dict[str, int] = Field(default_factory=dict)
    by_severity: Dict[str, int] = Field(default_factory=dict)
    top_errors: List[TopError] = Field(default_factory=list)
