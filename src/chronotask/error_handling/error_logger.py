"""
Structured, session-scoped error log with a bounded durable store.

Entries are appended synchronously to an in-memory buffer and persisted in
batches: when the buffer fills up, when the flush interval has elapsed, or as
soon as a CRITICAL entry is buffered. The persisted store keeps at most
`max_logs` entries, newest first, none older than `max_age_days`.
"""

import asyncio
import atexit
import csv
import io
import json
import logging
import os
import platform
import socket
import sys
import threading
import time
import traceback
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Union

import httpx
from pydantic import ValidationError as PydanticValidationError

from chronotask.config import (
    ERROR_LOGS_KEY,
    LOG_FORMAT_VERSION,
    LOG_SETTINGS_KEY,
    LOG_SOURCE,
    PERIODIC_FLUSH_INTERVAL,
    REDACTION_MARKER,
    SESSION_ID_KEY,
    STORAGE_DIR,
)
from chronotask.exceptions import StorageError
from chronotask.models.config_models import LoggerConfig
from chronotask.models.log_models import (
    EnvironmentInfo,
    ErrorKindSnapshot,
    LogEntry,
    LogFilters,
    LogLevel,
    LogStats,
    TopError,
)
from chronotask.models.protocols import KeyValueStorage
from chronotask.taxonomy import ErrorKind, ErrorSeverity, lookup

from .storage import JSONFileStorage, is_available, read_json, write_json

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "timestamp",
    "level",
    "code",
    "category",
    "severity",
    "message",
    "userMessage",
    "component",
    "action",
    "sessionId",
]

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_JSON_SCALARS = (str, int, float, bool, type(None))


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def fingerprint(parts: List[str]) -> str:
    """Stable 32-bit rolling hash of the parts, rendered in base 36."""
    combined = "|".join(parts)
    h = 0
    for ch in combined:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(abs(h))


def error_message(error: Any) -> str:
    if error is None:
        return ""
    message = getattr(error, "message", None)
    if isinstance(message, str):
        return message
    return str(error)


class ErrorLogger:
    """Buffers structured error entries and persists them to durable storage."""

    def __init__(
        self,
        config: Optional[LoggerConfig] = None,
        storage: Optional[KeyValueStorage] = None,
        transport: Optional[Any] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the logger and prune persisted entries past the age ceiling.

        Args:
            config: Logger settings; defaults come from chronotask.config
            storage: Durable key-value storage for entries and the session id
            transport: Optional httpx transport for the remote sink
            clock: Wall clock in epoch seconds
        """
        self.config = config or LoggerConfig()
        self.storage = storage if storage is not None else JSONFileStorage(STORAGE_DIR)
        self.transport = transport
        self.clock = clock

        self.buffer: List[LogEntry] = []
        # Leading buffer entries that are only waiting for a remote retry
        self._retrying = 0
        self.last_flush = self.clock()
        self._session_id: Optional[str] = None
        self._session_last_used = 0.0
        self._pending_sends: Set[asyncio.Task] = set()
        self._previous_hooks: Dict[str, Any] = {}
        self._hooked_loop: Optional[asyncio.AbstractEventLoop] = None

        self._storage_available = is_available(self.storage)
        try:
            self.cleanup_old_logs()
        except Exception as e:
            logger.error(f"Failed to initialize ErrorLogger: {e}")

    # ------------------------------------------------------------------
    # Session scoping
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        """Current session id, minting a new one once the session timed out."""
        now = self.clock()
        if self._session_id is None:
            self._load_session(now)
        if (
            self._session_id is None
            or now - self._session_last_used >= self.config.session_timeout
        ):
            self._session_id = f"session_{int(now * 1000)}_{uuid.uuid4().hex[:9]}"
            logger.debug(f"Started error log session {self._session_id}")
        self._session_last_used = now
        self._save_session()
        return self._session_id

    def _load_session(self, now: float) -> None:
        try:
            stored = read_json(self.storage, SESSION_ID_KEY)
        except StorageError as e:
            logger.debug(f"Ignoring unreadable session record: {e}")
            return
        if isinstance(stored, dict) and isinstance(stored.get("id"), str):
            last_used = float(stored.get("timestamp", 0)) / 1000
            if now - last_used < self.config.session_timeout:
                self._session_id = stored["id"]
                self._session_last_used = last_used

    def _save_session(self) -> None:
        try:
            write_json(
                self.storage,
                SESSION_ID_KEY,
                {
                    "id": self._session_id,
                    "timestamp": int(self._session_last_used * 1000),
                },
            )
        except StorageError as e:
            logger.debug(f"Could not persist session id: {e}")

    def end_session(self) -> bool:
        """Logout: drop the stored entries and forget the session id."""
        cleared = self.clear_logs()
        self._session_id = None
        try:
            self.storage.remove_item(SESSION_ID_KEY)
        except StorageError as e:
            logger.warning(f"Failed to remove session id: {e}")
            return False
        return cleared

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    def log(
        self,
        level: Union[LogLevel, str],
        kind: Union[ErrorKind, str],
        context: Optional[Mapping[str, Any]] = None,
        original_error: Any = None,
    ) -> Optional[LogEntry]:
        """Append an entry to the buffer. Never raises.

        Returns the created entry, or None if it was filtered out.
        """
        try:
            level = LogLevel(level)
            kind = lookup(kind)

            if not self.should_log(level):
                return None

            if kind.category.value in self.config.exclude_categories:
                return None

            entry = self.create_entry(level, kind, context or {}, original_error)
            self.buffer.append(entry)

            if self.config.enable_console_output:
                self._log_to_console(entry)

            if self.should_flush():
                self.flush()

            return entry

        except Exception as e:
            # Fallback logging to prevent infinite loops
            print(f"ErrorLogger.log failed: {e}", file=sys.stderr)
            return None

    def debug(self, kind, context=None, original_error=None):
        return self.log(LogLevel.DEBUG, kind, context, original_error)

    def info(self, kind, context=None, original_error=None):
        return self.log(LogLevel.INFO, kind, context, original_error)

    def warn(self, kind, context=None, original_error=None):
        return self.log(LogLevel.WARN, kind, context, original_error)

    def error(self, kind, context=None, original_error=None):
        return self.log(LogLevel.ERROR, kind, context, original_error)

    def fatal(self, kind, context=None, original_error=None):
        return self.log(LogLevel.FATAL, kind, context, original_error)

    def create_entry(
        self,
        level: LogLevel,
        kind: ErrorKind,
        context: Mapping[str, Any],
        original_error: Any = None,
    ) -> LogEntry:
        now = self.clock()
        sanitized = self.sanitize_context(context)
        return LogEntry(
            id=f"log_{int(now * 1000)}_{uuid.uuid4().hex[:6]}",
            timestamp=datetime.fromtimestamp(now, tz=timezone.utc),
            session_id=self.session_id,
            level=level,
            error_type=ErrorKindSnapshot(
                code=kind.code,
                category=kind.category.value,
                severity=kind.severity.value,
                recovery=kind.recovery.value,
                message=kind.message,
                user_message=kind.user_message,
            ),
            context=sanitized,
            environment=self._environment_info(now),
            stack=self._stack_trace(original_error),
            fingerprint=fingerprint(
                [
                    kind.code,
                    kind.category.value,
                    error_message(original_error),
                    str(context.get("component") or ""),
                    str(context.get("action") or ""),
                ]
            ),
        )

    def sanitize_context(self, context: Any) -> Any:
        """Redact sensitive keys recursively and make values JSON-safe."""
        sensitive = {f.lower() for f in self.config.sensitive_fields}
        return self._sanitize(context, sensitive)

    def _sanitize(self, value: Any, sensitive: Set[str]) -> Any:
        if isinstance(value, Mapping):
            return {
                str(k): (
                    REDACTION_MARKER
                    if str(k).lower() in sensitive
                    else self._sanitize(v, sensitive)
                )
                for k, v in value.items()
            }
        if isinstance(value, (list, tuple, set)):
            return [self._sanitize(v, sensitive) for v in value]
        if isinstance(value, _JSON_SCALARS):
            return value
        if isinstance(value, datetime):
            return value.isoformat()
        return str(value)

    def _environment_info(self, now: float) -> EnvironmentInfo:
        return EnvironmentInfo(
            timestamp=int(now * 1000),
            timezone=datetime.now().astimezone().tzname() or "UTC",
            platform=platform.platform(),
            python_version=platform.python_version(),
            hostname=socket.gethostname(),
            pid=os.getpid(),
            storage_available=self._storage_available,
        )

    @staticmethod
    def _stack_trace(original_error: Any) -> str:
        if isinstance(original_error, BaseException):
            return "".join(
                traceback.format_exception(
                    type(original_error), original_error, original_error.__traceback__
                )
            )
        return "".join(traceback.format_stack(limit=12)[:-2])

    def should_log(self, level: LogLevel) -> bool:
        return level.rank >= self.config.log_level.rank

    def should_flush(self) -> bool:
        """Flush policy over the fresh entries; remote retries wait for the interval."""
        fresh = self.buffer[self._retrying :]
        buffer_full = len(fresh) >= self.config.buffer_flush_size
        time_elapsed = self.clock() - self.last_flush > self.config.flush_interval
        has_critical = any(
            e.error_type.severity == ErrorSeverity.CRITICAL.value for e in fresh
        )
        return buffer_full or time_elapsed or has_critical

    def _log_to_console(self, entry: LogEntry) -> None:
        logger.log(
            entry.level.stdlib_level,
            f"[{entry.timestamp.isoformat()}] [{entry.level.value.upper()}] "
            f"{entry.error_type.code}: {entry.error_type.message}",
            extra={"error_context": entry.context},
        )

    # ------------------------------------------------------------------
    # Flushing
    # ------------------------------------------------------------------

    def _take_batch(self) -> List[LogEntry]:
        batch = list(self.buffer)
        self.buffer.clear()
        self._retrying = 0
        self.last_flush = self.clock()
        return batch

    def flush(self) -> None:
        """Persist the buffered entries; remote delivery is best-effort."""
        if not self.buffer:
            return

        batch = self._take_batch()
        try:
            if self.config.enable_local_storage:
                self._save_to_storage(batch)

            if self.config.enable_remote_logging and self.config.remote_endpoint:
                self._dispatch_remote(batch)

        except Exception as e:
            logger.error(f"Failed to flush logs: {e}")

    async def aflush(self) -> None:
        """Like flush(), but awaits remote delivery."""
        if not self.buffer:
            return

        batch = self._take_batch()
        try:
            if self.config.enable_local_storage:
                self._save_to_storage(batch)

            if self.config.enable_remote_logging and self.config.remote_endpoint:
                await self.send_to_remote(batch)

        except Exception as e:
            logger.error(f"Failed to flush logs: {e}")

    def _save_to_storage(self, batch: List[LogEntry]) -> None:
        try:
            merged: Dict[str, LogEntry] = {e.id: e for e in self.get_stored_logs()}
            merged.update((e.id, e) for e in batch)

            cutoff = self._age_cutoff()
            recent = sorted(
                (e for e in merged.values() if e.timestamp >= cutoff),
                key=lambda e: e.timestamp,
                reverse=True,
            )[: self.config.max_logs]

            self._write_logs(recent)
        except StorageError as e:
            logger.warning(f"Failed to save logs to storage: {e}")

    def _write_logs(self, entries: List[LogEntry]) -> None:
        write_json(
            self.storage,
            ERROR_LOGS_KEY,
            [e.model_dump(mode="json") for e in entries],
        )

    def _remote_payload(self, batch: List[LogEntry]) -> Dict[str, Any]:
        return {
            "logs": [e.model_dump(mode="json") for e in batch],
            "metadata": {
                "version": LOG_FORMAT_VERSION,
                "source": LOG_SOURCE,
                "sessionId": self.session_id,
            },
        }

    def _dispatch_remote(self, batch: List[LogEntry]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._send_to_remote_sync(batch)
            return

        task = loop.create_task(self.send_to_remote(batch))
        self._pending_sends.add(task)
        task.add_done_callback(self._pending_sends.discard)

    def _rebuffer(self, batch: List[LogEntry], reason: Any) -> None:
        logger.warning(f"Failed to send logs to remote endpoint: {reason}")
        known = {e.id for e in self.buffer}
        retry = [e for e in batch if e.id not in known]
        self.buffer[0:0] = retry
        self._retrying += len(retry)

        # Drop the oldest retries beyond max_logs; they are already persisted locally
        overflow = min(len(self.buffer) - self.config.max_logs, self._retrying)
        if overflow > 0:
            del self.buffer[:overflow]
            self._retrying -= overflow
            logger.warning(f"Dropped {overflow} log entries waiting for remote delivery")

    async def send_to_remote(self, batch: List[LogEntry]) -> bool:
        """POST a batch to the remote sink; re-buffers it on failure."""
        if not self.config.remote_endpoint:
            return False

        try:
            async with httpx.AsyncClient(
                timeout=self.config.remote_timeout, transport=self.transport
            ) as client:
                response = await client.post(
                    self.config.remote_endpoint, json=self._remote_payload(batch)
                )
                response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            self._rebuffer(batch, e)
            return False

    def _send_to_remote_sync(self, batch: List[LogEntry]) -> bool:
        try:
            with httpx.Client(
                timeout=self.config.remote_timeout, transport=self.transport
            ) as client:
                response = client.post(
                    self.config.remote_endpoint, json=self._remote_payload(batch)
                )
                response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            self._rebuffer(batch, e)
            return False

    async def wait_pending(self) -> None:
        """Wait for remote deliveries scheduled by flush()."""
        if self._pending_sends:
            await asyncio.gather(*list(self._pending_sends), return_exceptions=True)

    async def run_periodic_flush(
        self, interval: float = PERIODIC_FLUSH_INTERVAL
    ) -> None:
        """Flush on a fixed interval until cancelled."""
        while True:
            await asyncio.sleep(interval)
            if self.buffer:
                await self.aflush()

    # ------------------------------------------------------------------
    # Persisted store
    # ------------------------------------------------------------------

    def _age_cutoff(self) -> datetime:
        now = datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        return now - timedelta(days=self.config.max_age_days)

    def get_stored_logs(self) -> List[LogEntry]:
        try:
            raw = read_json(self.storage, ERROR_LOGS_KEY, default=[])
        except StorageError as e:
            logger.warning(f"Failed to load stored logs: {e}")
            return []

        if not isinstance(raw, list):
            logger.warning("Stored logs are not a list; ignoring them")
            return []

        entries = []
        for item in raw:
            try:
                entries.append(LogEntry.model_validate(item))
            except PydanticValidationError as e:
                logger.debug(f"Skipping malformed log entry: {e}")
        return entries

    def cleanup_old_logs(self) -> int:
        """Drop persisted entries past the age ceiling. Returns how many."""
        logs = self.get_stored_logs()
        cutoff = self._age_cutoff()
        recent = [e for e in logs if e.timestamp >= cutoff]
        removed = len(logs) - len(recent)
        if removed:
            try:
                self._write_logs(recent)
            except StorageError as e:
                logger.warning(f"Failed to clean old logs: {e}")
                return 0
            logger.info(f"Removed {removed} log entries older than the age ceiling")
        return removed

    def get_logs(
        self, filters: Union[LogFilters, Mapping[str, Any], None] = None
    ) -> List[LogEntry]:
        """Persisted entries (newest first) matching the filters."""
        if not isinstance(filters, LogFilters):
            filters = LogFilters.model_validate(dict(filters or {}))
        self.flush()
        return [e for e in self.get_stored_logs() if filters.matches(e)]

    def get_stats(self, top: int = 5) -> LogStats:
        logs = self.get_logs()
        now = datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        hour_ago = now - timedelta(hours=1)
        day_ago = now - timedelta(days=1)

        by_fingerprint = Counter(e.fingerprint for e in logs)
        codes = {e.fingerprint: e.error_type.code for e in logs}

        return LogStats(
            total=len(logs),
            last_hour=sum(1 for e in logs if e.timestamp > hour_ago),
            last_day=sum(1 for e in logs if e.timestamp > day_ago),
            by_level=dict(Counter(e.level.value for e in logs)),
            by_category=dict(Counter(e.error_type.category for e in logs)),
            by_severity=dict(Counter(e.error_type.severity for e in logs)),
            top_errors=[
                TopError(code=codes[fp], fingerprint=fp, count=count)
                for fp, count in by_fingerprint.most_common(top)
            ],
        )

    def clear_logs(self) -> bool:
        try:
            self.storage.remove_item(ERROR_LOGS_KEY)
        except StorageError as e:
            logger.error(f"Failed to clear logs: {e}")
            return False
        self.buffer.clear()
        self._retrying = 0
        return True

    def export_logs(self, format: str = "json") -> str:
        """Serialize the persisted entries as JSON or CSV text."""
        logs = self.get_logs()
        fmt = format.lower()

        if fmt == "json":
            return json.dumps([e.model_dump(mode="json") for e in logs], indent=2)

        if fmt == "csv":
            if not logs:
                return ""
            out = io.StringIO()
            writer = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator="\n")
            writer.writerow(CSV_COLUMNS)
            for e in logs:
                writer.writerow(
                    [
                        e.timestamp.isoformat(),
                        e.level.value,
                        e.error_type.code,
                        e.error_type.category,
                        e.error_type.severity,
                        e.error_type.message,
                        e.error_type.user_message,
                        e.context.get("component", ""),
                        e.context.get("action", ""),
                        e.session_id,
                    ]
                )
            return out.getvalue().rstrip("\n")

        raise ValueError(f"Unsupported export format: {format}")

    def update_config(self, **changes: Any) -> LoggerConfig:
        self.config = LoggerConfig.model_validate(
            {**self.config.model_dump(), **changes}
        )
        try:
            write_json(
                self.storage, LOG_SETTINGS_KEY, self.config.model_dump(mode="json")
            )
        except StorageError as e:
            logger.warning(f"Failed to save logger config: {e}")
        return self.config

    # ------------------------------------------------------------------
    # Global capture
    # ------------------------------------------------------------------

    def install_global_handlers(
        self, loop: Optional[asyncio.AbstractEventLoop] = None
    ) -> None:
        """Route uncaught exceptions and unretrieved task errors into the log."""
        if self._previous_hooks:
            return

        self._previous_hooks = {
            "sys": sys.excepthook,
            "threading": threading.excepthook,
        }
        sys.excepthook = self._handle_uncaught
        threading.excepthook = self._handle_thread_exception

        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
        if loop is not None:
            self._previous_hooks["loop"] = loop.get_exception_handler()
            loop.set_exception_handler(self._handle_loop_exception)
            self._hooked_loop = loop

        atexit.register(self.flush)

    def uninstall_global_handlers(self) -> None:
        if not self._previous_hooks:
            return

        sys.excepthook = self._previous_hooks["sys"]
        threading.excepthook = self._previous_hooks["threading"]
        if self._hooked_loop is not None:
            self._hooked_loop.set_exception_handler(self._previous_hooks.get("loop"))
            self._hooked_loop = None
        atexit.unregister(self.flush)
        self._previous_hooks = {}

    def _handle_uncaught(self, exc_type, exc_value, exc_tb) -> None:
        self.error(
            "UI_COMPONENT_CRASH",
            {
                "component": "global",
                "action": "unhandled_error",
                "exception_type": exc_type.__name__,
            },
            exc_value,
        )
        self.flush()
        self._previous_hooks["sys"](exc_type, exc_value, exc_tb)

    def _handle_thread_exception(self, args) -> None:
        self.error(
            "UI_COMPONENT_CRASH",
            {
                "component": "global",
                "action": "unhandled_thread_error",
                "thread": getattr(args.thread, "name", None),
            },
            args.exc_value,
        )
        self._previous_hooks["threading"](args)

    def _handle_loop_exception(self, loop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        self.error(
            "UNKNOWN_ERROR",
            {
                "component": "global",
                "action": "unhandled_promise_rejection",
                "reason": context.get("message") or error_message(exc),
            },
            exc,
        )
        previous = self._previous_hooks.get("loop")
        if previous is not None:
            previous(loop, context)
        else:
            loop.default_exception_handler(context)

    def close(self) -> None:
        self.flush()
        self.uninstall_global_handlers()
