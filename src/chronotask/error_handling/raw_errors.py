"""
Known shapes of raw failures, and the adapter that produces them.

Classification in the error handler only ever inspects these shapes, never
arbitrary exception attributes.
"""

import builtins
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx

from chronotask.exceptions import ChronotaskError, ValidationError
from chronotask.models.recovery_models import FieldError


@dataclass(frozen=True)
class HttpFailure:
    """The backend answered with a non-success status."""

    status: int
    body: Any = None
    url: Optional[str] = None
    method: Optional[str] = None

    @property
    def message(self) -> str:
        return f"HTTP {self.status}"


@dataclass(frozen=True)
class TimeoutFailure:
    """The request gave up waiting for a response."""

    message: str = "timeout"
    url: Optional[str] = None


@dataclass(frozen=True)
class NetworkFailure:
    """No response at all (DNS, refused connection, offline)."""

    message: str = "Network Error"
    url: Optional[str] = None


@dataclass(frozen=True)
class GenericFailure:
    message: str = ""
    name: str = "Error"
    code: Optional[str] = None


RawError = Union[HttpFailure, TimeoutFailure, NetworkFailure, GenericFailure]

_RAW_TYPES = (HttpFailure, TimeoutFailure, NetworkFailure, GenericFailure)


def adapt(error: Any) -> RawError:
    """Convert an exception (or an already adapted shape) to a RawError."""
    if isinstance(error, _RAW_TYPES):
        return error

    if isinstance(error, httpx.HTTPStatusError):
        request = error.request
        response = error.response
        return HttpFailure(
            status=response.status_code,
            body=response.text,
            url=str(request.url),
            method=request.method,
        )

    if isinstance(error, httpx.TimeoutException):
        return TimeoutFailure(message=str(error) or "timeout", url=_request_url(error))

    if isinstance(error, httpx.TransportError):
        return NetworkFailure(
            message=str(error) or "Network Error", url=_request_url(error)
        )

    if isinstance(error, builtins.TimeoutError):
        return TimeoutFailure(message=str(error) or "timeout")

    if isinstance(error, ConnectionError):
        return NetworkFailure(message=str(error) or "Network Error")

    if isinstance(error, ChronotaskError):
        return GenericFailure(
            message=error.message, name=type(error).__name__, code=error.code
        )

    if isinstance(error, BaseException):
        return GenericFailure(message=str(error), name=type(error).__name__)

    if error is None:
        return GenericFailure()

    return GenericFailure(message=str(error))


def to_field_error(error: Any) -> FieldError:
    """Normalize one validation failure into a FieldError."""
    if isinstance(error, FieldError):
        return error
    if isinstance(error, ValidationError):
        return FieldError(
            field=error.field, value=error.value, code=error.rule, message=error.reason
        )
    if isinstance(error, dict):
        # pydantic's ValidationError.errors() items: {"type", "loc", "msg", "input"}
        loc = error.get("loc")
        field = error.get("field") or error.get("path")
        if field is None and loc:
            field = ".".join(str(part) for part in loc)
        return FieldError(
            field=field,
            value=error.get("value", error.get("input")),
            code=error.get("code") or error.get("rule") or error.get("type"),
            message=str(error.get("message") or error.get("msg") or ""),
        )
    return FieldError(message=str(error))


def _request_url(error: httpx.RequestError) -> Optional[str]:
    try:
        return str(error.request.url)
    except RuntimeError:
        # httpx raises when the exception was built without a request
        return None
