"""
Configuration constants and settings for the Chronotask error pipeline.
"""

import os
from pathlib import Path

# Storage
STORAGE_DIR = Path(
    os.getenv("CHRONOTASK_STORAGE_DIR", str(Path.home() / ".chronotask"))
)
STORAGE_PREFIX = "chronotask_"
ERROR_LOGS_KEY = "chronotask_error_logs"
LOG_SETTINGS_KEY = "chronotask_log_settings"
SESSION_ID_KEY = "chronotask_session_id"

# Error logger
MAX_LOGS = int(os.getenv("CHRONOTASK_MAX_LOGS", "100"))
LOG_BUFFER_FLUSH_SIZE = 50
LOG_FLUSH_INTERVAL = 60.0  # seconds since last flush
PERIODIC_FLUSH_INTERVAL = 300.0
LOG_MAX_AGE_DAYS = 7
SESSION_TIMEOUT = 30 * 60.0
MIN_LOG_LEVEL = os.getenv("CHRONOTASK_MIN_LOG_LEVEL", "warn")
SENSITIVE_FIELDS = ["password", "token", "email", "phone"]
REDACTION_MARKER = "[REDACTED]"
REMOTE_LOG_ENDPOINT = os.getenv("CHRONOTASK_REMOTE_LOG_ENDPOINT") or None
REMOTE_LOG_TIMEOUT = 10.0
LOG_SOURCE = "chronotask-web"
LOG_FORMAT_VERSION = "1.0.0"

# Recovery engine (all durations in seconds)
MAX_RETRIES = 3
BASE_RETRY_DELAY = 1.0
MAX_RETRY_DELAY = 10.0
RETRY_MULTIPLIER = 2.0
RETRY_JITTER = 1.0
CIRCUIT_BREAKER_THRESHOLD = 5
CIRCUIT_BREAKER_TIMEOUT = 60.0
FALLBACK_TIMEOUT = 5.0
REFRESH_DELAY = 2.0
REDIRECT_DELAY = 1.0

# Error handler
NOTIFICATION_DURATION = 4.0
DUPLICATE_WINDOW = 5.0

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Feature flags
ENABLE_REMOTE_LOGGING = (
    os.getenv("CHRONOTASK_ENABLE_REMOTE_LOGGING", "false").lower() == "true"
)
ENABLE_AUTO_RECOVERY = (
    os.getenv("CHRONOTASK_ENABLE_AUTO_RECOVERY", "true").lower() == "true"
)

# User-facing copy that is not tied to a single error kind
MESSAGES = {
    "critical_failure": "A critical error occurred. Please reload the page.",
    "service_unavailable": "Service temporarily unavailable. Please try again later.",
    "operation_recovered": "Operation completed successfully.",
    "error_reported": "An error was reported. Our team will look into it.",
    "reloading": "Reloading page...",
    "validation_summary": "{count} validation errors found",
}


def validate_config() -> None:
    """Validate configuration settings."""
    if MAX_LOGS < 1:
        raise ValueError("MAX_LOGS must be positive")

    if MAX_RETRIES < 0:
        raise ValueError("MAX_RETRIES cannot be negative")

    if BASE_RETRY_DELAY > MAX_RETRY_DELAY:
        raise ValueError("BASE_RETRY_DELAY cannot exceed MAX_RETRY_DELAY")

    if CIRCUIT_BREAKER_THRESHOLD < 1:
        raise ValueError("CIRCUIT_BREAKER_THRESHOLD must be positive")

    if MIN_LOG_LEVEL.lower() not in {"debug", "info", "warn", "error", "fatal"}:
        raise ValueError(f"Invalid CHRONOTASK_MIN_LOG_LEVEL: {MIN_LOG_LEVEL}")
