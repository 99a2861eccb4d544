"""
Result models returned by the recovery engine and the error handler.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from chronotask.taxonomy import ErrorKind


class RecoveryResult(BaseModel):
    """Outcome of one recovery attempt.

    `strategy` is a RecoveryStrategy value, or "circuit_breaker" / "none" when
    the engine short-circuited or never ran.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    strategy: str
    message: str = ""
    reason: Optional[str] = None

    # retry
    attempts: Optional[int] = None
    will_retry: Optional[bool] = None
    next_retry_in: Optional[float] = None
    fallback_required: bool = False

    # fallback
    result: Any = None
    error: Optional[str] = None

    # redirect
    url: Optional[str] = None

    # manual
    requires_user_action: bool = False
    instructions: List[str] = Field(default_factory=list)

    # report
    reported: bool = False
    report_id: Optional[str] = None


class HandleResult(BaseModel):
    """What ErrorHandler.handle hands back to its caller."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    handled: bool = True
    suppressed: bool = False
    error_kind: Optional[ErrorKind] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    recovery: Optional[RecoveryResult] = None
    error: Optional[str] = None


class FieldError(BaseModel):
    """One failed field check, as produced by form or schema validation."""

    field: Optional[str] = None
    value: Any = None
    code: Optional[str] = None
    message: str = ""


class ValidationBatchResult(BaseModel):
    success: bool
    results: List[HandleResult] = Field(default_factory=list)
    error_count: int = 0
