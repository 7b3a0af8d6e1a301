"""Tests for the error taxonomy and dialect error mapping."""

import pytest

from lmbridge.core.error_map import Dialect, error_body, map_error, parse_embedded_failure
from lmbridge.core.exceptions import (
    ContentBlockedError,
    ErrorKind,
    HostModelError,
    ModelNotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    RequestCancelledError,
    ValidationError,
)


class TestOpenAIMapping:
    """Tests for the OpenAI error table (Chat and Responses)."""

    @pytest.mark.parametrize("dialect", [Dialect.OPENAI_CHAT, Dialect.OPENAI_RESPONSES])
    def test_validation_error(self, dialect):
        """Validation errors map to 400 invalid_request_error and keep their param."""
        mapped = map_error(ValidationError("The messages field is required", param="messages"), dialect)
        assert mapped.status_code == 400
        assert mapped.error == {
            "message": "The messages field is required",
            "type": "invalid_request_error",
            "param": "messages",
            "code": "invalid_request",
        }

    def test_model_not_found(self):
        """Unknown models map to 404 with code model_not_found and param model."""
        mapped = map_error(ModelNotFoundError("Model x not found"), Dialect.OPENAI_CHAT)
        assert mapped.status_code == 404
        assert mapped.error["type"] == "not_found_error"
        assert mapped.error["code"] == "model_not_found"
        assert mapped.error["param"] == "model"

    @pytest.mark.parametrize(
        "exc,status,error_type,code",
        [
            (PermissionDeniedError("no"), 403, "access_terminated", "access_terminated"),
            (ContentBlockedError("blocked"), 403, "blocked", "blocked"),
            (QuotaExceededError("quota"), 429, "insufficient_quota", "quota_exceeded"),
            (HostModelError(ErrorKind.UNKNOWN, "boom"), 500, "server_error", "internal_server_error"),
        ],
    )
    def test_host_error_kinds(self, exc, status, error_type, code):
        """Each host error kind has a fixed status, type and code."""
        mapped = map_error(exc, Dialect.OPENAI_RESPONSES)
        assert mapped.status_code == status
        assert mapped.error["type"] == error_type
        assert mapped.error["code"] == code

    def test_plain_exception_falls_back_to_internal_error(self):
        """Exceptions outside the taxonomy map to 500 api_error."""
        mapped = map_error(RuntimeError("unexpected"), Dialect.OPENAI_CHAT)
        assert mapped.status_code == 500
        assert mapped.error["type"] == "api_error"
        assert mapped.error["code"] == "internal_error"
        assert mapped.error["message"] == "unexpected"

    def test_cancelled_is_not_in_table(self):
        """Cancellation has no table entry and falls back to 500."""
        mapped = map_error(RequestCancelledError("cancelled"), Dialect.OPENAI_CHAT)
        assert mapped.status_code == 500
        assert mapped.error["type"] == "api_error"

    def test_openai_does_not_unwrap_embedded_failure(self):
        """The Request Failed shim is Anthropic only."""
        exc = HostModelError(ErrorKind.UNKNOWN, 'Request Failed: 418 {"error":{"type":"teapot","message":"short"}}')
        mapped = map_error(exc, Dialect.OPENAI_CHAT)
        assert mapped.status_code == 500
        assert mapped.error["type"] == "server_error"

    def test_error_body_envelope(self):
        """OpenAI errors are wrapped in a top-level error member."""
        mapped = map_error(ValidationError("bad"), Dialect.OPENAI_CHAT)
        assert error_body(mapped, Dialect.OPENAI_CHAT) == {"error": mapped.error}


class TestAnthropicMapping:
    """Tests for the Anthropic error table."""

    @pytest.mark.parametrize(
        "exc,status,error_type",
        [
            (ValidationError("bad"), 400, "invalid_request_error"),
            (PermissionDeniedError("no"), 403, "permission_error"),
            (ContentBlockedError("blocked"), 403, "permission_error"),
            (ModelNotFoundError("missing"), 404, "not_found_error"),
            (QuotaExceededError("quota"), 429, "rate_limit_error"),
            (HostModelError(ErrorKind.UNKNOWN, "boom"), 500, "api_error"),
        ],
    )
    def test_error_kinds(self, exc, status, error_type):
        """Each kind maps to the Anthropic status and type."""
        mapped = map_error(exc, Dialect.ANTHROPIC)
        assert mapped.status_code == status
        assert mapped.error == {"type": error_type, "message": exc.message}

    def test_error_body_envelope(self):
        """Anthropic errors are wrapped as {type: error, error: {...}}."""
        mapped = map_error(QuotaExceededError("slow down"), Dialect.ANTHROPIC)
        assert error_body(mapped, Dialect.ANTHROPIC) == {
            "type": "error",
            "error": {"type": "rate_limit_error", "message": "slow down"},
        }

    def test_embedded_failure_is_unwrapped(self):
        """Unknown errors carrying Request Failed: <status> <json> use the embedded status and error."""
        exc = HostModelError(
            ErrorKind.UNKNOWN,
            'Request Failed: 529 {"error":{"type":"overloaded_error","message":"Overloaded"}}',
        )
        mapped = map_error(exc, Dialect.ANTHROPIC)
        assert mapped.status_code == 529
        assert mapped.error == {"type": "overloaded_error", "message": "Overloaded"}

    def test_embedded_failure_ignored_for_known_kinds(self):
        """The shim only applies to unknown errors."""
        exc = QuotaExceededError('Request Failed: 529 {"error":{"type":"overloaded_error","message":"x"}}')
        mapped = map_error(exc, Dialect.ANTHROPIC)
        assert mapped.status_code == 429

    def test_plain_exception_maps_to_api_error(self):
        """Non-bridge exceptions map to 500 api_error."""
        mapped = map_error(ValueError("oops"), Dialect.ANTHROPIC)
        assert mapped.status_code == 500
        assert mapped.error == {"type": "api_error", "message": "oops"}


class TestParseEmbeddedFailure:
    """Tests for parse_embedded_failure."""

    def test_no_pattern(self):
        """Plain messages are not parsed."""
        assert parse_embedded_failure("something broke") is None

    def test_invalid_json(self):
        """A pattern with a non-JSON body is ignored."""
        assert parse_embedded_failure("Request Failed: 500 {not json}") is None

    def test_missing_error_member(self):
        """A JSON body without an error object is ignored."""
        assert parse_embedded_failure('Request Failed: 500 {"detail":"x"}') is None

    def test_defaults_missing_fields(self):
        """Missing type and message fall back to defaults."""
        mapped = parse_embedded_failure('Request Failed: 502 {"error":{}}')
        assert mapped is not None
        assert mapped.status_code == 502
        assert mapped.error["type"] == "api_error"
        assert mapped.error["message"]
