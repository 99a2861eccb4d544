"""
Per-component binding of the error handler.
"""

import functools
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from chronotask.models.recovery_models import HandleResult

from .error_handler import ErrorHandler
from .recovery import call_maybe_async

logger = logging.getLogger(__name__)

HISTORY_SIZE = 10


class ComponentError(BaseModel):
    """One error a component reported, newest first in the history."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    code: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    result: HandleResult
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ComponentErrorHandler:
    """Binds a component name into every context and keeps recent errors."""

    def __init__(
        self,
        handler: ErrorHandler,
        component: str,
        history_size: int = HISTORY_SIZE,
    ):
        self.handler = handler
        self.component = component
        self.history_size = history_size
        self.last_error: Optional[ComponentError] = None
        self.error_history: List[ComponentError] = []

    def _context(self, context: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return {"component": self.component, **(context or {})}

    def _record(self, result: HandleResult) -> HandleResult:
        if result.suppressed:
            return result
        entry = ComponentError(
            code=result.error_kind.code if result.error_kind else None,
            context=result.context,
            result=result,
        )
        self.last_error = entry
        self.error_history = [entry, *self.error_history][: self.history_size]
        return result

    async def handle(
        self,
        error: Any,
        context: Optional[Mapping[str, Any]] = None,
        original_error: Any = None,
        **options,
    ) -> HandleResult:
        result = await self.handler.handle(
            error, self._context(context), original_error, **options
        )
        return self._record(result)

    async def api(self, error, context=None, **options) -> HandleResult:
        return self._record(
            await self.handler.api(error, self._context(context), **options)
        )

    async def storage(
        self, error, operation=None, key=None, context=None, **options
    ) -> HandleResult:
        return self._record(
            await self.handler.storage(
                error, operation, key, self._context(context), **options
            )
        )

    async def validation(self, errors, context=None, **options):
        batch = await self.handler.validation(errors, self._context(context), **options)
        for result in batch.results:
            self._record(result)
        return batch

    async def network(
        self, error=None, online=None, effective_type=None, context=None, **options
    ) -> HandleResult:
        return self._record(
            await self.handler.network(
                error, online, effective_type, self._context(context), **options
            )
        )

    async def task(
        self, error, operation=None, task=None, context=None, **options
    ) -> HandleResult:
        return self._record(
            await self.handler.task(
                error, operation, task, self._context(context), **options
            )
        )

    async def timer(self, error, timer_state=None, context=None, **options):
        return self._record(
            await self.handler.timer(
                error, timer_state, self._context(context), **options
            )
        )

    async def project(
        self, error, operation=None, project=None, context=None, **options
    ) -> HandleResult:
        return self._record(
            await self.handler.project(
                error, operation, project, self._context(context), **options
            )
        )

    async def settings(
        self, error, operation=None, settings=None, context=None, **options
    ) -> HandleResult:
        return self._record(
            await self.handler.settings(
                error, operation, settings, self._context(context), **options
            )
        )

    async def auth(self, error, operation=None, context=None, **options):
        return self._record(
            await self.handler.auth(error, operation, self._context(context), **options)
        )

    async def ui(self, error, props=None, state=None, context=None, **options):
        return self._record(
            await self.handler.ui(
                error, self.component, props, state, context, **options
            )
        )

    # ------------------------------------------------------------------
    # Call wrappers
    # ------------------------------------------------------------------

    def with_error_handling(
        self, code: str = "UNKNOWN_ERROR", context: Optional[Mapping[str, Any]] = None
    ) -> Callable:
        """Decorator for coroutines: report a raised exception as `code`, then re-raise."""

        def decorator(fn: Callable[..., Awaitable[Any]]):
            @functools.wraps(fn)
            async def wrapper(*args, **kwargs):
                try:
                    return await fn(*args, **kwargs)
                except Exception as e:
                    await self.handle(code, {"action": fn.__name__, **(context or {})}, e)
                    raise

            return wrapper

        return decorator

    def api_request(
        self, fn: Callable[..., Any], endpoint: str = "unknown"
    ) -> Callable[..., Awaitable[Dict[str, Any]]]:
        """Wrap a request function so it returns {success, data} or the handling outcome."""

        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> Dict[str, Any]:
            try:
                return {"success": True, "data": await call_maybe_async(fn, *args, **kwargs)}
            except Exception as e:
                result = await self.api(e, {"endpoint": endpoint, "action": "api_request"})
                return {
                    "success": False,
                    "error": e,
                    "handled": result.success,
                    "recovery": result.recovery,
                }

        return wrapper

    def storage_operation(
        self, fn: Callable[..., Any], key: Optional[str] = None
    ) -> Callable[..., Awaitable[Dict[str, Any]]]:
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> Dict[str, Any]:
            try:
                return {"success": True, "data": await call_maybe_async(fn, *args, **kwargs)}
            except Exception as e:
                result = await self.storage(e, fn.__name__, key)
                return {
                    "success": False,
                    "error": e,
                    "handled": result.success,
                    "recovery": result.recovery,
                }

        return wrapper

    def form_submit(
        self,
        submit: Callable[[Any], Any],
        validate: Optional[Callable[[Any], Any]] = None,
    ) -> Callable[[Any], Awaitable[Dict[str, Any]]]:
        """Wrap a form submission with optional validation.

        `validate` returns a list of field errors (empty when the data is valid).
        """

        async def wrapper(data: Any) -> Dict[str, Any]:
            if validate is not None:
                errors = await call_maybe_async(validate, data)
                if errors:
                    await self.validation(list(errors), {"action": "form_submit"})
                    return {"success": False, "errors": list(errors)}
            try:
                return {"success": True, "result": await call_maybe_async(submit, data)}
            except Exception as e:
                await self.handle("UNKNOWN_ERROR", {"action": "form_submit"}, e)
                return {"success": False, "error": e}

        return wrapper

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def clear_errors(self) -> None:
        self.last_error = None
        self.error_history = []

    def clear_last_error(self) -> None:
        self.last_error = None

    @property
    def has_errors(self) -> bool:
        return self.last_error is not None

    def get_error_stats(self) -> Dict[str, Any]:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=5)
        return {
            "total": len(self.error_history),
            "recent": sum(1 for e in self.error_history if e.timestamp > cutoff),
            "last_error": self.last_error.code if self.last_error else None,
            "component": self.component,
        }
