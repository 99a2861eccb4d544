"""
Tests for adapting raw failures to known shapes.
"""

import json

import httpx
import pytest
from pydantic import BaseModel, ValidationError as PydanticValidationError

from chronotask.error_handling.raw_errors import (
    GenericFailure,
    HttpFailure,
    NetworkFailure,
    TimeoutFailure,
    adapt,
    to_field_error,
)
from chronotask.exceptions import QuotaExceededError, ValidationError
from chronotask.models import FieldError


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.example.test/tasks")
    response = httpx.Response(status, request=request, text="nope")
    return httpx.HTTPStatusError("failed", request=request, response=response)


class TestAdapt:
    """Test the raw error adapter."""

    def test_http_status_error(self):
        raw = adapt(_status_error(401))
        assert raw == HttpFailure(
            status=401, body="nope", url="https://api.example.test/tasks", method="GET"
        )
        assert raw.message == "HTTP 401"

    def test_httpx_timeout(self):
        request = httpx.Request("GET", "https://api.example.test/slow")
        raw = adapt(httpx.ReadTimeout("timed out", request=request))
        assert isinstance(raw, TimeoutFailure)
        assert raw.url == "https://api.example.test/slow"

    def test_httpx_connect_error(self):
        raw = adapt(httpx.ConnectError("connection refused"))
        assert isinstance(raw, NetworkFailure)
        assert raw.url is None

    def test_builtin_exceptions(self):
        assert isinstance(adapt(TimeoutError()), TimeoutFailure)
        assert isinstance(adapt(ConnectionResetError("reset")), NetworkFailure)

    def test_package_error_keeps_code(self):
        raw = adapt(QuotaExceededError("chronotask_tasks"))
        assert raw.name == "QuotaExceededError"
        assert raw.code == "STORAGE_QUOTA_EXCEEDED"

    def test_json_error(self):
        with pytest.raises(json.JSONDecodeError) as exc_info:
            json.loads("{")
        assert adapt(exc_info.value).name == "JSONDecodeError"

    def test_shapes_pass_through(self):
        shape = HttpFailure(status=500)
        assert adapt(shape) is shape

    def test_non_exceptions(self):
        assert adapt(None) == GenericFailure()
        assert adapt("boom") == GenericFailure(message="boom")


class TestFieldErrors:
    """Test normalizing validation failures."""

    def test_package_validation_error(self):
        error = ValidationError("title", "", "Title is required", rule="required")
        assert to_field_error(error) == FieldError(
            field="title", value="", code="required", message="Title is required"
        )

    def test_pydantic_errors(self):
        """Test pydantic error dicts map loc/type/msg/input."""

        class Task(BaseModel):
            title: str
            estimate: int

        with pytest.raises(PydanticValidationError) as exc_info:
            Task(estimate="many")

        fields = {fe.field: fe for fe in map(to_field_error, exc_info.value.errors())}
        assert fields["title"].code == "missing"
        assert fields["estimate"].code == "int_parsing"
        assert fields["estimate"].value == "many"

    def test_plain_dict(self):
        fe = to_field_error({"field": "pomodoros", "code": "too_big", "message": "max 12"})
        assert fe.field == "pomodoros"
        assert fe.code == "too_big"
