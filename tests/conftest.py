"""
Pytest configuration and fixtures for the error pipeline tests.
"""

import pytest

from chronotask.error_handling import (
    ErrorHandler,
    ErrorLogger,
    MemoryStorage,
    RecordingNavigator,
    RecordingNotifier,
    RecoveryEngine,
)
from chronotask.models import HandlerConfig, LoggerConfig, RecoveryConfig

START_TIME = 1_750_000_000.0


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def navigator():
    return RecordingNavigator()


@pytest.fixture
def logger_config():
    """Log everything, quietly, to local storage only."""
    return LoggerConfig(
        log_level="debug",
        enable_console_output=False,
        enable_remote_logging=False,
    )


@pytest.fixture
def recovery_config():
    """No waiting: zero backoff, jitter and navigation delays."""
    return RecoveryConfig(
        base_retry_delay=0,
        max_retry_delay=0,
        retry_jitter=0,
        refresh_delay=0,
        redirect_delay=0,
        fallback_timeout=0.2,
    )


@pytest.fixture
def error_logger(logger_config, storage, clock):
    return ErrorLogger(config=logger_config, storage=storage, clock=clock)


@pytest.fixture
def recovery_engine(recovery_config, error_logger, notifier, navigator, storage, clock):
    return RecoveryEngine(
        config=recovery_config,
        error_logger=error_logger,
        notifier=notifier,
        navigator=navigator,
        storage=storage,
        clock=clock,
    )


@pytest.fixture
def error_handler(error_logger, recovery_engine, notifier, clock):
    return ErrorHandler(
        config=HandlerConfig(),
        error_logger=error_logger,
        recovery=recovery_engine,
        notifier=notifier,
        clock=clock,
    )
