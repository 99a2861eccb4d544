"""
Typed configuration objects for the error pipeline components.
Defaults come from chronotask.config; every field can be overridden at
construction time.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chronotask import config
from chronotask.models.log_models import LogLevel


class LoggerConfig(BaseModel):
    """Settings for ErrorLogger."""

    model_config = ConfigDict(validate_assignment=True)

    max_logs: int = Field(config.MAX_LOGS, ge=1)
    buffer_flush_size: int = Field(config.LOG_BUFFER_FLUSH_SIZE, ge=1)
    flush_interval: float = Field(config.LOG_FLUSH_INTERVAL, ge=0.0)
    max_age_days: float = Field(config.LOG_MAX_AGE_DAYS, gt=0.0)
    session_timeout: float = Field(config.SESSION_TIMEOUT, gt=0.0)
    log_level: LogLevel = LogLevel(config.MIN_LOG_LEVEL.lower())
    enable_console_output: bool = True
    enable_local_storage: bool = True
    enable_remote_logging: bool = config.ENABLE_REMOTE_LOGGING
    remote_endpoint: Optional[str] = config.REMOTE_LOG_ENDPOINT
    remote_timeout: float = config.REMOTE_LOG_TIMEOUT
    sensitive_fields: List[str] = Field(
        default_factory=lambda: list(config.SENSITIVE_FIELDS)
    )
    exclude_categories: List[str] = Field(default_factory=list)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        """Accept level names in any case."""
        if isinstance(v, str):
            return v.lower()
        return v


class RecoveryConfig(BaseModel):
    """Settings for RecoveryEngine. Durations are in seconds."""

    max_retries: int = Field(config.MAX_RETRIES, ge=0)
    base_retry_delay: float = Field(config.BASE_RETRY_DELAY, ge=0.0)
    max_retry_delay: float = Field(config.MAX_RETRY_DELAY, ge=0.0)
    retry_multiplier: float = Field(config.RETRY_MULTIPLIER, ge=1.0)
    retry_jitter: float = Field(config.RETRY_JITTER, ge=0.0)
    circuit_breaker_threshold: int = Field(config.CIRCUIT_BREAKER_THRESHOLD, ge=1)
    circuit_breaker_timeout: float = Field(config.CIRCUIT_BREAKER_TIMEOUT, ge=0.0)
    fallback_timeout: float = Field(config.FALLBACK_TIMEOUT, gt=0.0)
    refresh_delay: float = Field(config.REFRESH_DELAY, ge=0.0)
    redirect_delay: float = Field(config.REDIRECT_DELAY, ge=0.0)


class HandlerConfig(BaseModel):
    """Settings for ErrorHandler."""

    model_config = ConfigDict(validate_assignment=True)

    enable_auto_recovery: bool = config.ENABLE_AUTO_RECOVERY
    enable_notifications: bool = True
    enable_logging: bool = True
    notification_duration: float = Field(config.NOTIFICATION_DURATION, gt=0.0)
    suppress_duplicates: bool = True
    duplicate_window: float = Field(config.DUPLICATE_WINDOW, ge=0.0)
