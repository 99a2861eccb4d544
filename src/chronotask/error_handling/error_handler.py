"""
Error handler facade: the single entry point consumers report failures to.

handle() logs the error, notifies the user and runs the recovery strategy.
The domain wrappers classify a raw failure into a catalog code first.
"""

import functools
import logging
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from chronotask.config import MESSAGES
from chronotask.models.config_models import HandlerConfig
from chronotask.models.log_models import LogLevel
from chronotask.models.protocols import NotificationTier, Notifier
from chronotask.models.recovery_models import HandleResult, ValidationBatchResult
from chronotask.taxonomy import ErrorKind, ErrorSeverity, lookup

from .error_logger import ErrorLogger
from .raw_errors import (
    GenericFailure,
    HttpFailure,
    TimeoutFailure,
    adapt,
    to_field_error,
)
from .recovery import RecoveryEngine

logger = logging.getLogger(__name__)

SEVERITY_LOG_LEVELS = {
    ErrorSeverity.LOW: LogLevel.INFO,
    ErrorSeverity.MEDIUM: LogLevel.WARN,
    ErrorSeverity.HIGH: LogLevel.ERROR,
    ErrorSeverity.CRITICAL: LogLevel.FATAL,
}

# severity -> (duration multiplier, notification tier)
SEVERITY_NOTIFICATIONS = {
    ErrorSeverity.LOW: (1.0, NotificationTier.WARNING),
    ErrorSeverity.MEDIUM: (1.0, NotificationTier.ERROR),
    ErrorSeverity.HIGH: (1.5, NotificationTier.ERROR),
    ErrorSeverity.CRITICAL: (2.0, NotificationTier.CRITICAL),
}

HTTP_STATUS_CODES = {
    401: "API_UNAUTHORIZED",
    403: "API_FORBIDDEN",
    404: "API_NOT_FOUND",
    429: "API_RATE_LIMIT",
}

STORAGE_CODES = {"STORAGE_QUOTA_EXCEEDED", "STORAGE_ACCESS_DENIED", "STORAGE_PARSE_ERROR"}

REQUIRED_RULES = {"required", "missing"}
RANGE_RULES = {
    "too_small",
    "too_big",
    "range",
    "min",
    "max",
    "greater_than",
    "greater_than_equal",
    "less_than",
    "less_than_equal",
    "string_too_short",
    "string_too_long",
}

TASK_OPERATIONS = {
    "create": "TASK_CREATION_FAILED",
    "update": "TASK_UPDATE_FAILED",
    "delete": "TASK_DELETE_FAILED",
    "load": "TASK_NOT_FOUND",
    "get": "TASK_NOT_FOUND",
}

SECRET_KEYS = {"apiKey", "api_key", "token", "password"}
SLOW_CONNECTIONS = {"slow-2g", "2g"}


def _pick(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _strip(values: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Copy of a props/settings mapping without secrets or callables."""
    if values is None:
        return None
    return {
        k: v for k, v in values.items() if k not in SECRET_KEYS and not callable(v)
    }


def _status_of(raw) -> Optional[int]:
    return raw.status if isinstance(raw, HttpFailure) else None


def never_raises(method: Callable) -> Callable:
    """Turn an exception inside a wrapper into an unhandled HandleResult."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except Exception as e:
            return self._internal_failure(e)

    return wrapper


class ErrorHandler:
    """Logs, notifies and recovers from classified errors."""

    def __init__(
        self,
        config: Optional[HandlerConfig] = None,
        error_logger: Optional[ErrorLogger] = None,
        recovery: Optional[RecoveryEngine] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or HandlerConfig()
        self.error_logger = error_logger or ErrorLogger()
        self.recovery = recovery or RecoveryEngine(
            error_logger=self.error_logger, notifier=notifier
        )
        self.notifier = notifier or self.recovery.notifier
        self.clock = clock

        self._recent: Dict[Tuple[str, str, str], float] = {}
        self._counts: Counter = Counter()
        self._by_code: Counter = Counter()

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    async def handle(
        self,
        error: Any,
        context: Optional[Mapping[str, Any]] = None,
        original_error: Any = None,
        *,
        silent: bool = False,
        skip_recovery: bool = False,
        message: Optional[str] = None,
        duration: Optional[float] = None,
    ) -> HandleResult:
        """
        Handle an error code or catalog entry.

        Args:
            error: Catalog code or ErrorKind; unknown codes become UNKNOWN_ERROR
            context: Where the error happened (component, action, domain fields)
            original_error: The raw exception or failure shape, if any
            silent: Do not notify the user
            skip_recovery: Do not run the recovery strategy
            message: Notification text instead of the kind's user message
            duration: Base notification duration in seconds

        Returns:
            HandleResult; never raises
        """
        try:
            kind = lookup(error)
            context = {
                **(context or {}),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

            if self.config.suppress_duplicates and self._is_duplicate(kind, context):
                self._counts["suppressed"] += 1
                logger.debug(f"Suppressed duplicate {kind.code}")
                return HandleResult(
                    success=False, suppressed=True, error_kind=kind, context=context
                )

            self._counts["handled"] += 1
            self._by_code[kind.code] += 1

            if self.config.enable_logging:
                self.error_logger.log(
                    SEVERITY_LOG_LEVELS[kind.severity], kind, context, original_error
                )

            if self.config.enable_notifications and not silent:
                self._notify(kind, message, duration)

            recovery = None
            if self.config.enable_auto_recovery and not skip_recovery:
                recovery = await self.recovery.recover(
                    kind, context, original_error, notify=False
                )

            return HandleResult(
                success=bool(recovery and recovery.success),
                error_kind=kind,
                context=context,
                recovery=recovery,
            )

        except Exception as e:
            return self._internal_failure(e)

    def _internal_failure(self, error: Exception) -> HandleResult:
        self._counts["failed"] += 1
        logger.error(f"Error handler failed: {error}", exc_info=True)
        try:
            self.notifier.notify(
                MESSAGES["critical_failure"],
                self.config.notification_duration * 2,
                NotificationTier.CRITICAL,
            )
        except Exception as notify_error:
            logger.error(f"Failed to show failure notification: {notify_error}")
        return HandleResult(success=False, handled=False, error=str(error))

    def _is_duplicate(self, kind: ErrorKind, context: Mapping[str, Any]) -> bool:
        now = self.clock()
        window = self.config.duplicate_window
        self._recent = {k: t for k, t in self._recent.items() if now - t < window}

        key = (
            kind.code,
            str(context.get("component") or ""),
            str(context.get("field") or ""),
        )
        if key in self._recent:
            return True
        self._recent[key] = now
        return False

    def _notify(
        self, kind: ErrorKind, message: Optional[str], duration: Optional[float]
    ) -> None:
        multiplier, tier = SEVERITY_NOTIFICATIONS[kind.severity]
        base = duration if duration is not None else self.config.notification_duration
        self.notifier.notify(message or kind.user_message, base * multiplier, tier)

    # ------------------------------------------------------------------
    # Domain wrappers
    # ------------------------------------------------------------------

    @never_raises
    async def api(
        self, error: Any, context: Optional[Mapping[str, Any]] = None, **options
    ) -> HandleResult:
        """Classify a failed backend request by HTTP status."""
        raw = adapt(error)
        status = _status_of(raw)

        if status is not None:
            code = HTTP_STATUS_CODES.get(status, "API_SERVER_ERROR")
        elif isinstance(raw, TimeoutFailure) or (
            isinstance(raw, GenericFailure) and "timeout" in raw.message.lower()
        ):
            code = "API_TIMEOUT"
        else:
            code = "API_NETWORK_ERROR"

        enriched = {
            "component": "api",
            "status": status,
            "url": getattr(raw, "url", None),
            "method": getattr(raw, "method", None),
            **(context or {}),
        }
        return await self.handle(code, enriched, error, **options)

    @never_raises
    async def storage(
        self,
        error: Any,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
        **options,
    ) -> HandleResult:
        raw = adapt(error)
        name = getattr(raw, "name", "")
        message = raw.message.lower()

        if isinstance(raw, GenericFailure) and raw.code in STORAGE_CODES:
            code = raw.code
        elif name == "QuotaExceededError" or "quota" in message:
            code = "STORAGE_QUOTA_EXCEEDED"
        elif (
            name == "SecurityError" or "securityerror" in message or "access" in message
        ):
            code = "STORAGE_ACCESS_DENIED"
        elif (
            name == "JSONDecodeError"
            or operation == "parse"
            or "json" in message
            or "parse" in message
        ):
            code = "STORAGE_PARSE_ERROR"
        else:
            code = "STORAGE_ACCESS_DENIED"

        enriched = {
            "component": "storage",
            "operation": operation,
            "key": key,
            **(context or {}),
        }
        return await self.handle(code, enriched, error, **options)

    async def validation(
        self,
        errors: Any,
        context: Optional[Mapping[str, Any]] = None,
        silent: bool = False,
        **options,
    ) -> ValidationBatchResult:
        """Handle one field error or a batch of them.

        A batch is handled silently per field, with one summary notification.
        """
        try:
            batch = isinstance(errors, (list, tuple))
            items = list(errors) if batch else [errors]

            results = []
            for item in items:
                field_error = to_field_error(item)
                enriched = {
                    "component": "validation",
                    "field": field_error.field,
                    "value": field_error.value,
                    "rule": field_error.code,
                    **(context or {}),
                }
                results.append(
                    await self.handle(
                        self._validation_code(field_error.code),
                        enriched,
                        item,
                        silent=silent or batch,
                        **options,
                    )
                )

            if batch and items and not silent and self.config.enable_notifications:
                self.notifier.notify(
                    MESSAGES["validation_summary"].format(count=len(items)),
                    self.config.notification_duration,
                    NotificationTier.WARNING,
                )

            return ValidationBatchResult(
                success=all(r.success for r in results),
                results=results,
                error_count=len(items),
            )

        except Exception as e:
            return ValidationBatchResult(
                success=False, results=[self._internal_failure(e)], error_count=0
            )

    @staticmethod
    def _validation_code(rule: Optional[str]) -> str:
        rule = (rule or "").lower()
        if rule in REQUIRED_RULES:
            return "VALIDATION_REQUIRED_FIELD"
        if rule in RANGE_RULES:
            return "VALIDATION_OUT_OF_RANGE"
        return "VALIDATION_INVALID_FORMAT"

    @never_raises
    async def network(
        self,
        error: Any = None,
        online: Optional[bool] = None,
        effective_type: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
        **options,
    ) -> HandleResult:
        if online is False:
            code = "NETWORK_OFFLINE"
        elif effective_type in SLOW_CONNECTIONS:
            code = "NETWORK_SLOW"
        else:
            code = "API_NETWORK_ERROR"

        enriched = {
            "component": "network",
            "online": online,
            "effective_type": effective_type,
            **(context or {}),
        }
        return await self.handle(code, enriched, error, **options)

    @never_raises
    async def task(
        self,
        error: Any,
        operation: Optional[str] = None,
        task: Any = None,
        context: Optional[Mapping[str, Any]] = None,
        **options,
    ) -> HandleResult:
        code = TASK_OPERATIONS.get(operation or "", "TASK_UPDATE_FAILED")
        enriched = {
            "component": "task",
            "action": operation,
            "task_id": _pick(task, "id"),
            "task_title": _pick(task, "title"),
            **(context or {}),
        }
        return await self.handle(code, enriched, error, **options)

    @never_raises
    async def timer(
        self,
        error: Any,
        timer_state: Optional[Mapping[str, Any]] = None,
        context: Optional[Mapping[str, Any]] = None,
        **options,
    ) -> HandleResult:
        raw = adapt(error)
        message = raw.message.lower()
        if "sync" in message or "drift" in message:
            code = "TIMER_SYNC_FAILED"
        else:
            code = "TIMER_INIT_FAILED"

        enriched = {
            "component": "timer",
            "timer_state": dict(timer_state) if timer_state else None,
            **(context or {}),
        }
        return await self.handle(code, enriched, error, **options)

    @never_raises
    async def project(
        self,
        error: Any,
        operation: Optional[str] = None,
        project: Any = None,
        context: Optional[Mapping[str, Any]] = None,
        **options,
    ) -> HandleResult:
        raw = adapt(error)
        if _status_of(raw) == 403:
            code = "PROJECT_ACCESS_DENIED"
        else:
            code = "PROJECT_NOT_FOUND"

        enriched = {
            "component": "project",
            "action": operation,
            "project_id": _pick(project, "id"),
            "project_name": _pick(project, "name"),
            **(context or {}),
        }
        return await self.handle(code, enriched, error, **options)

    @never_raises
    async def settings(
        self,
        error: Any,
        operation: Optional[str] = None,
        settings: Optional[Mapping[str, Any]] = None,
        context: Optional[Mapping[str, Any]] = None,
        **options,
    ) -> HandleResult:
        if operation in ("load", "get"):
            code = "SETTINGS_LOAD_FAILED"
        else:
            code = "SETTINGS_SAVE_FAILED"

        enriched = {
            "component": "settings",
            "action": operation,
            "settings": _strip(settings),
            **(context or {}),
        }
        return await self.handle(code, enriched, error, **options)

    @never_raises
    async def auth(
        self,
        error: Any,
        operation: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
        **options,
    ) -> HandleResult:
        raw = adapt(error)
        code = "API_FORBIDDEN" if _status_of(raw) == 403 else "API_UNAUTHORIZED"
        enriched = {"component": "auth", "action": operation, **(context or {})}
        return await self.handle(code, enriched, error, **options)

    @never_raises
    async def ui(
        self,
        error: Any,
        component: Optional[str] = None,
        props: Optional[Mapping[str, Any]] = None,
        state: Optional[Mapping[str, Any]] = None,
        context: Optional[Mapping[str, Any]] = None,
        **options,
    ) -> HandleResult:
        raw = adapt(error)
        if "render" in raw.message.lower() or getattr(raw, "name", "") == "ChunkLoadError":
            code = "UI_RENDER_ERROR"
        else:
            code = "UI_COMPONENT_CRASH"

        enriched = {
            "component": component or "ui",
            "props": _strip(props),
            "state": _strip(state),
            **(context or {}),
        }
        return await self.handle(code, enriched, error, **options)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        return {
            "handled": self._counts["handled"],
            "suppressed": self._counts["suppressed"],
            "failed": self._counts["failed"],
            "by_code": dict(self._by_code),
            "tracked_duplicates": len(self._recent),
            "logs": self.error_logger.get_stats().model_dump(),
            "recovery": self.recovery.get_recovery_stats(),
        }

    def get_config(self) -> Dict[str, Any]:
        return {
            "handler": self.config.model_dump(),
            "logger": self.error_logger.config.model_dump(mode="json"),
            "recovery": self.recovery.config.model_dump(),
        }

    def update_config(self, **changes: Any) -> HandlerConfig:
        self.config = HandlerConfig.model_validate(
            {**self.config.model_dump(), **changes}
        )
        return self.config

    def reset(self) -> None:
        """Clear duplicate tracking, counters and recovery state."""
        self._recent.clear()
        self._counts.clear()
        self._by_code.clear()
        self.recovery.reset()

