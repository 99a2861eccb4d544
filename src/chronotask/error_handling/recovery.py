"""
Recovery engine: turns a classified error into a corrective action.

Retry bookkeeping is keyed by (code, component, action); circuit breakers are
keyed by code. All of it lives in a RecoveryState owned by the engine instance.
"""

import asyncio
import copy
import inspect
import logging
import platform
import random
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from chronotask.config import (
    ERROR_LOGS_KEY,
    LOG_SETTINGS_KEY,
    MESSAGES,
    NOTIFICATION_DURATION,
    SESSION_ID_KEY,
    STORAGE_DIR,
    STORAGE_PREFIX,
)
from chronotask.exceptions import ChronotaskError, RecoveryTimeoutError
from chronotask.models.config_models import RecoveryConfig
from chronotask.models.log_models import LogLevel
from chronotask.models.protocols import (
    KeyValueStorage,
    Navigator,
    NotificationTier,
    Notifier,
)
from chronotask.models.recovery_models import RecoveryResult
from chronotask.taxonomy import ErrorKind, RecoveryStrategy, lookup

from .circuit_breaker import CircuitBreaker
from .notifier import LoggingNotifier, RecordingNavigator
from .storage import JSONFileStorage, read_json

logger = logging.getLogger(__name__)

ReportSink = Callable[[Dict[str, Any]], Awaitable[Any]]

REDIRECTS = {
    "API_UNAUTHORIZED": "/login",
    "API_FORBIDDEN": "/",
    "PROJECT_NOT_FOUND": "/projects",
    "TASK_NOT_FOUND": "/tasks",
}
DEFAULT_REDIRECT = "/"

MANUAL_INSTRUCTIONS = {
    "STORAGE_QUOTA_EXCEEDED": [
        "Delete tasks you no longer need",
        "Archive finished projects",
        "Clear the application cache",
        "Export your data and start fresh",
    ],
    "NETWORK_OFFLINE": [
        "Check your internet connection",
        "Try again in a few minutes",
        "Your changes are kept locally until the connection returns",
    ],
    "VALIDATION_REQUIRED_FIELD": [
        "Fill in every required field",
        "Check that the values are in the expected format",
    ],
}
DEFAULT_INSTRUCTIONS = [
    "Reload the page",
    "Clear the application cache",
    "Contact support if the problem persists",
]

DEFAULT_DATA = {
    "tasks": [],
    "projects": [],
    "settings": {
        "workDuration": 25,
        "breakDuration": 5,
        "longBreakDuration": 15,
        "soundEnabled": True,
        "theme": "system",
    },
}

# Keys the quota cleanup never removes
_PROTECTED_KEYS = {ERROR_LOGS_KEY, LOG_SETTINGS_KEY, SESSION_ID_KEY}
_KEEP_AFTER_CLEANUP = 10


class CallbackKind(str, Enum):
    RETRY = "retry"
    REFRESH = "refresh"


class RecoveryState:
    """Attempt counts and circuit breakers shared by every caller of an engine."""

    def __init__(self):
        self.attempts: Dict[str, int] = {}
        self.breakers: Dict[str, CircuitBreaker] = {}

    def reset(self) -> None:
        self.attempts.clear()
        self.breakers.clear()


async def call_maybe_async(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call a sync or async callable and return its result."""
    result = fn(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


class RecoveryEngine:
    """Executes the recovery strategy attached to an error kind."""

    def __init__(
        self,
        config: Optional[RecoveryConfig] = None,
        error_logger=None,
        notifier: Optional[Notifier] = None,
        navigator: Optional[Navigator] = None,
        storage: Optional[KeyValueStorage] = None,
        report_sink: Optional[ReportSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or RecoveryConfig()
        self.error_logger = error_logger
        self.notifier = notifier or LoggingNotifier()
        self.navigator = navigator or RecordingNavigator()
        self.storage = storage if storage is not None else JSONFileStorage(STORAGE_DIR)
        self.report_sink = report_sink
        self.clock = clock

        self.state = RecoveryState()
        self.callbacks: Dict[Tuple[str, CallbackKind], Callable[..., Any]] = {}
        self.fallbacks: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        self._timers: List[asyncio.TimerHandle] = []

        self._register_default_fallbacks()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_recovery_callback(
        self,
        code: str,
        callback: Callable[..., Any],
        kind: CallbackKind = CallbackKind.RETRY,
    ) -> None:
        """Register the callable a RETRY or REFRESH recovery runs for `code`.

        Retry callbacks are called with (context, attempts) and report success
        with a truthy return value. Refresh callbacks are called with (context);
        if one raises, the page reload runs instead.
        """
        self.callbacks[(code, CallbackKind(kind))] = callback

    def unregister_recovery_callback(
        self, code: str, kind: CallbackKind = CallbackKind.RETRY
    ) -> None:
        self.callbacks.pop((code, CallbackKind(kind)), None)

    def register_fallback_strategy(
        self, code: str, fallback: Callable[[Dict[str, Any]], Any]
    ) -> None:
        """Register a fallback; it receives the error context and returns data."""
        self.fallbacks[code] = fallback

    def _register_default_fallbacks(self) -> None:
        self.register_fallback_strategy(
            "STORAGE_ACCESS_DENIED",
            lambda context: {"strategy": "memory_storage", "temporary": True},
        )
        self.register_fallback_strategy("STORAGE_QUOTA_EXCEEDED", self._free_storage)
        self.register_fallback_strategy("API_NETWORK_ERROR", self._cached_data)
        self.register_fallback_strategy(
            "API_SERVER_ERROR",
            lambda context: {"strategy": "default_data", "data": copy.deepcopy(DEFAULT_DATA)},
        )

    def _free_storage(self, context: Dict[str, Any]) -> Dict[str, Any]:
        keys = sorted(
            k
            for k in self.storage.keys()
            if k.startswith(STORAGE_PREFIX) and k not in _PROTECTED_KEYS
        )
        stale = keys[:-_KEEP_AFTER_CLEANUP] if len(keys) > _KEEP_AFTER_CLEANUP else []
        for key in stale:
            self.storage.remove_item(key)
        logger.info(f"Freed storage by removing {len(stale)} keys")
        return {"strategy": "cleanup", "removed": len(stale)}

    def _cached_data(self, context: Dict[str, Any]) -> Dict[str, Any]:
        key = f"cache_{context.get('endpoint')}"
        data = read_json(self.storage, key)
        if data is None:
            raise ChronotaskError("No cached data available", "API_NETWORK_ERROR")
        return {"strategy": "cached_data", "data": data}

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def recover(
        self,
        kind: Any,
        context: Optional[Mapping[str, Any]] = None,
        original_error: Any = None,
        *,
        notify: bool = True,
    ) -> RecoveryResult:
        """Run the recovery strategy for `kind`. Never raises.

        With notify=False a MANUAL outcome is only returned, for callers that
        already told the user.
        """
        kind = lookup(kind)
        context = dict(context or {})

        try:
            self._log(
                LogLevel.INFO,
                kind,
                {**context, "recovery_attempt": True, "strategy": kind.recovery.value},
            )
            result = await self._dispatch(
                kind, kind.recovery, context, original_error, notify
            )
            if result.success:
                self._mark_recovered(kind, context)
            return result

        except Exception as e:
            logger.error(
                f"Recovery strategy {kind.recovery.value} failed for {kind.code}: {e}"
            )
            return await self._recover_after_failure(
                kind, context, original_error, e, notify
            )

    async def _dispatch(
        self,
        kind: ErrorKind,
        strategy: RecoveryStrategy,
        context: Dict[str, Any],
        original_error: Any,
        notify: bool = True,
    ) -> RecoveryResult:
        if strategy == RecoveryStrategy.MANUAL:
            return await self._handle_manual(kind, context, original_error, notify)

        handlers = {
            RecoveryStrategy.RETRY: self._handle_retry,
            RecoveryStrategy.REFRESH: self._handle_refresh,
            RecoveryStrategy.FALLBACK: self._handle_fallback,
            RecoveryStrategy.REDIRECT: self._handle_redirect,
            RecoveryStrategy.IGNORE: self._handle_ignore,
            RecoveryStrategy.REPORT: self._handle_report,
        }
        handler = handlers.get(strategy, self._handle_report)
        return await handler(kind, context, original_error)

    async def _recover_after_failure(
        self,
        kind: ErrorKind,
        context: Dict[str, Any],
        original_error: Any,
        failure: Exception,
        notify: bool = True,
    ) -> RecoveryResult:
        try:
            if kind.recovery != RecoveryStrategy.FALLBACK:
                result = await self._handle_fallback(kind, context, original_error)
                if result.success:
                    return result
            return await self._handle_manual(kind, context, original_error, notify)
        except Exception as e:
            logger.error(f"Manual recovery failed for {kind.code}: {e}")
            return RecoveryResult(
                success=False,
                strategy=RecoveryStrategy.MANUAL.value,
                message=kind.user_message,
                reason="recovery_failed",
                error=str(failure),
                requires_user_action=True,
                instructions=list(DEFAULT_INSTRUCTIONS),
            )

    def _mark_recovered(self, kind: ErrorKind, context: Dict[str, Any]) -> None:
        self.state.attempts.pop(self._retry_key(kind, context), None)
        breaker = self.state.breakers.get(kind.code)
        if breaker is not None:
            breaker.record_success()

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    @staticmethod
    def _retry_key(kind: ErrorKind, context: Mapping[str, Any]) -> str:
        return f"{kind.code}:{context.get('component', '')}:{context.get('action', '')}"

    def _breaker(self, code: str) -> CircuitBreaker:
        breaker = self.state.breakers.get(code)
        if breaker is None:
            breaker = CircuitBreaker(
                failure_threshold=self.config.circuit_breaker_threshold,
                recovery_timeout=self.config.circuit_breaker_timeout,
                clock=self.clock,
            )
            self.state.breakers[code] = breaker
        return breaker

    def retry_delay(self, attempts: int, jitter: bool = True) -> float:
        """Exponential backoff in seconds, capped, plus optional random jitter."""
        delay = min(
            self.config.max_retry_delay,
            self.config.base_retry_delay * self.config.retry_multiplier**attempts,
        )
        if jitter and self.config.retry_jitter > 0:
            delay += random.uniform(0, self.config.retry_jitter)
        return delay

    async def _handle_retry(self, kind, context, original_error) -> RecoveryResult:
        breaker = self._breaker(kind.code)
        if not breaker.can_proceed():
            self.notifier.notify(
                MESSAGES["service_unavailable"],
                NOTIFICATION_DURATION,
                NotificationTier.ERROR,
            )
            return RecoveryResult(
                success=False,
                strategy="circuit_breaker",
                message=MESSAGES["service_unavailable"],
                reason="circuit_breaker_open",
                next_retry_in=breaker.timeout_remaining(),
            )

        key = self._retry_key(kind, context)
        attempts = self.state.attempts.get(key, 0)
        max_retries = self.config.max_retries
        # A half-open breaker lets exactly one attempt through
        probing = breaker.is_half_open

        if attempts >= max_retries and not probing:
            breaker.record_failure()
            return RecoveryResult(
                success=False,
                strategy=RecoveryStrategy.RETRY.value,
                message="Maximum retry attempts exceeded",
                reason="max_retries_exceeded",
                attempts=attempts,
                will_retry=False,
                fallback_required=True,
            )

        await asyncio.sleep(self.retry_delay(attempts))
        attempts += 1
        self.state.attempts[key] = attempts

        callback = self.callbacks.get((kind.code, CallbackKind.RETRY))
        if callback is not None and await self._run_retry_callback(
            kind, callback, context, attempts
        ):
            return RecoveryResult(
                success=True,
                strategy=RecoveryStrategy.RETRY.value,
                message=MESSAGES["operation_recovered"],
                attempts=attempts,
            )

        if probing:
            breaker.record_failure()
            return RecoveryResult(
                success=False,
                strategy=RecoveryStrategy.RETRY.value,
                message="Service still unavailable",
                reason="half_open_attempt_failed",
                attempts=attempts,
                will_retry=False,
                fallback_required=True,
            )

        return RecoveryResult(
            success=False,
            strategy=RecoveryStrategy.RETRY.value,
            message=f"Retry attempt {attempts}/{max_retries}",
            attempts=attempts,
            will_retry=attempts < max_retries,
            next_retry_in=self.retry_delay(attempts, jitter=False),
        )

    async def _run_retry_callback(
        self, kind: ErrorKind, callback, context, attempts: int
    ) -> bool:
        try:
            return bool(await call_maybe_async(callback, context, attempts))
        except Exception as e:
            logger.warning(f"Retry callback for {kind.code} failed: {e}")
            return False

    async def _handle_refresh(self, kind, context, original_error) -> RecoveryResult:
        callback = self.callbacks.get((kind.code, CallbackKind.REFRESH))
        if callback is not None:
            try:
                await call_maybe_async(callback, context)
                return RecoveryResult(
                    success=True,
                    strategy=RecoveryStrategy.REFRESH.value,
                    message="Data refreshed",
                )
            except Exception as e:
                logger.warning(f"Refresh callback for {kind.code} failed: {e}")

        self.notifier.notify(
            MESSAGES["reloading"], self.config.refresh_delay, NotificationTier.INFO
        )
        self._schedule(self.config.refresh_delay, self.navigator.reload)
        return RecoveryResult(
            success=True,
            strategy=RecoveryStrategy.REFRESH.value,
            message="Page will reload",
        )

    async def _handle_fallback(self, kind, context, original_error) -> RecoveryResult:
        fallback = self.fallbacks.get(kind.code)
        if fallback is None:
            return RecoveryResult(
                success=False,
                strategy=RecoveryStrategy.FALLBACK.value,
                message="No fallback strategy available",
                reason="no_fallback_available",
            )

        timeout = self.config.fallback_timeout
        try:
            result = await asyncio.wait_for(call_maybe_async(fallback, context), timeout=timeout)
        except asyncio.TimeoutError:
            error = RecoveryTimeoutError(kind.code, timeout)
            logger.warning(str(error))
            return RecoveryResult(
                success=False,
                strategy=RecoveryStrategy.FALLBACK.value,
                message="Fallback strategy timed out",
                reason="fallback_timeout",
                error=str(error),
            )
        except Exception as e:
            logger.warning(f"Fallback for {kind.code} failed: {e}")
            return RecoveryResult(
                success=False,
                strategy=RecoveryStrategy.FALLBACK.value,
                message="Fallback strategy failed",
                reason="fallback_failed",
                error=str(e),
            )

        return RecoveryResult(
            success=True,
            strategy=RecoveryStrategy.FALLBACK.value,
            message="Fallback strategy executed",
            result=result,
        )

    async def _handle_redirect(self, kind, context, original_error) -> RecoveryResult:
        url = REDIRECTS.get(kind.code, DEFAULT_REDIRECT)
        self.notifier.notify(
            kind.user_message, NOTIFICATION_DURATION, NotificationTier.WARNING
        )
        self._schedule(self.config.redirect_delay, self.navigator.navigate, url)
        return RecoveryResult(
            success=True,
            strategy=RecoveryStrategy.REDIRECT.value,
            message=f"Redirecting to {url}",
            url=url,
        )

    async def _handle_manual(
        self, kind, context, original_error, notify: bool = True
    ) -> RecoveryResult:
        self._log(
            LogLevel.WARN,
            kind,
            {**context, "manual_recovery_required": True},
            original_error,
        )
        if notify:
            try:
                self.notifier.notify(
                    kind.user_message, NOTIFICATION_DURATION * 2, NotificationTier.ERROR
                )
            except Exception as e:
                logger.error(f"Failed to show manual recovery notification: {e}")
        return RecoveryResult(
            success=False,
            strategy=RecoveryStrategy.MANUAL.value,
            message=kind.user_message,
            requires_user_action=True,
            instructions=list(MANUAL_INSTRUCTIONS.get(kind.code, DEFAULT_INSTRUCTIONS)),
        )

    async def _handle_ignore(self, kind, context, original_error) -> RecoveryResult:
        self._log(LogLevel.DEBUG, kind, {**context, "ignored": True}, original_error)
        return RecoveryResult(
            success=True,
            strategy=RecoveryStrategy.IGNORE.value,
            message="Error ignored",
        )

    async def _handle_report(self, kind, context, original_error) -> RecoveryResult:
        now = datetime.now(timezone.utc)
        report_id = f"report_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}"
        report = {
            "id": report_id,
            "error": kind.to_dict(),
            "context": context,
            "originalError": _describe_error(original_error),
            "timestamp": now.isoformat(),
            "environment": {
                "platform": platform.platform(),
                "python_version": platform.python_version(),
            },
        }

        self._log(LogLevel.ERROR, kind, {**context, "report_id": report_id}, original_error)

        if self.report_sink is not None:
            try:
                await self.report_sink(report)
            except Exception as e:
                logger.warning(f"Failed to forward error report {report_id}: {e}")

        self.notifier.notify(
            MESSAGES["error_reported"], NOTIFICATION_DURATION, NotificationTier.INFO
        )
        return RecoveryResult(
            success=True,
            strategy=RecoveryStrategy.REPORT.value,
            message="Error reported",
            reported=True,
            report_id=report_id,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log(self, level, kind, context, original_error=None) -> None:
        if self.error_logger is not None:
            self.error_logger.log(level, kind, context, original_error)

    def _schedule(self, delay: float, fn: Callable[..., Any], *args: Any) -> None:
        """Run `fn` after `delay` seconds on the running loop, or right away."""
        if delay <= 0:
            fn(*args)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            fn(*args)
            return
        self._timers = [t for t in self._timers if t.when() > loop.time()]
        self._timers.append(loop.call_later(delay, fn, *args))

    def get_recovery_stats(self) -> Dict[str, Any]:
        return {
            "retry_attempts": dict(self.state.attempts),
            "circuit_breakers": {
                code: breaker.to_dict() for code, breaker in self.state.breakers.items()
            },
            "recovery_callbacks": len(self.callbacks),
            "fallback_strategies": len(self.fallbacks),
        }

    def reset(self) -> None:
        """Forget attempt counts and breakers, and cancel pending navigations."""
        self.state.reset()
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()


def _describe_error(error: Any) -> Optional[Dict[str, Any]]:
    if error is None:
        return None
    if isinstance(error, BaseException):
        return {"name": type(error).__name__, "message": str(error)}
    return {"name": type(error).__name__, "message": getattr(error, "message", str(error))}
