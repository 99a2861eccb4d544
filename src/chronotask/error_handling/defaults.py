"""
Assembly of the default error pipeline for a process.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

from chronotask.config import STORAGE_DIR
from chronotask.models.config_models import HandlerConfig, LoggerConfig, RecoveryConfig
from chronotask.models.protocols import KeyValueStorage, Navigator, Notifier

from .error_handler import ErrorHandler
from .error_logger import ErrorLogger
from .notifier import LoggingNotifier, RecordingNavigator
from .recovery import RecoveryEngine, ReportSink
from .storage import JSONFileStorage

logger = logging.getLogger(__name__)


def build_error_handler(
    storage: Optional[KeyValueStorage] = None,
    storage_dir: Union[str, Path] = STORAGE_DIR,
    notifier: Optional[Notifier] = None,
    navigator: Optional[Navigator] = None,
    logger_config: Optional[LoggerConfig] = None,
    recovery_config: Optional[RecoveryConfig] = None,
    handler_config: Optional[HandlerConfig] = None,
    report_sink: Optional[ReportSink] = None,
) -> ErrorHandler:
    """Construct storage, logger, recovery engine and handler, wired together."""
    storage = storage if storage is not None else JSONFileStorage(storage_dir)
    notifier = notifier or LoggingNotifier()

    error_logger = ErrorLogger(config=logger_config, storage=storage)
    recovery = RecoveryEngine(
        config=recovery_config,
        error_logger=error_logger,
        notifier=notifier,
        navigator=navigator or RecordingNavigator(),
        storage=storage,
        report_sink=report_sink,
    )
    handler = ErrorHandler(
        config=handler_config,
        error_logger=error_logger,
        recovery=recovery,
        notifier=notifier,
    )
    logger.info(f"Error pipeline assembled (storage: {type(storage).__name__})")
    return handler


@lru_cache(maxsize=1)
def get_error_handler() -> ErrorHandler:
    """Process-wide default handler, built on first use."""
    return build_error_handler()
