"""Map bridge errors onto each dialect's HTTP status and error body.

Each dialect family owns one table keyed by ``ErrorKind``. Adding a
dialect means adding a table here, not touching the handlers. Kinds
missing from a table, and exceptions that are not ``BridgeError`` at all,
map to a 500 internal error in every dialect.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .exceptions import BridgeError, ErrorKind

logger = logging.getLogger("lmbridge")


class Dialect(str, Enum):
    """Public wire dialects."""
    OPENAI_CHAT = "openai_chat"
    OPENAI_RESPONSES = "openai_responses"
    ANTHROPIC = "anthropic"


@dataclass(frozen=True)
class ErrorMapping:
    """Status code and error vocabulary for one error kind."""
    status_code: int
    error_type: str
    code: Optional[str] = None
    param: Optional[str] = None


@dataclass
class MappedError:
    """Result of mapping an exception for a dialect."""
    status_code: int
    error: dict[str, Any]


OPENAI_ERROR_TABLE: dict[ErrorKind, ErrorMapping] = {
    ErrorKind.INVALID_MESSAGE_FORMAT: ErrorMapping(400, "invalid_request_error", "invalid_message_format"),
    ErrorKind.INVALID_MODEL: ErrorMapping(400, "invalid_request_error", "invalid_model"),
    ErrorKind.INVALID_REQUEST: ErrorMapping(400, "invalid_request_error", "invalid_request"),
    ErrorKind.NO_PERMISSIONS: ErrorMapping(403, "access_terminated", "access_terminated"),
    ErrorKind.BLOCKED: ErrorMapping(403, "blocked", "blocked"),
    ErrorKind.NOT_FOUND: ErrorMapping(404, "not_found_error", "model_not_found", "model"),
    ErrorKind.QUOTA_EXCEEDED: ErrorMapping(429, "insufficient_quota", "quota_exceeded"),
    ErrorKind.UNKNOWN: ErrorMapping(500, "server_error", "internal_server_error"),
}

ANTHROPIC_ERROR_TABLE: dict[ErrorKind, ErrorMapping] = {
    ErrorKind.INVALID_MESSAGE_FORMAT: ErrorMapping(400, "invalid_request_error"),
    ErrorKind.INVALID_MODEL: ErrorMapping(400, "invalid_request_error"),
    ErrorKind.INVALID_REQUEST: ErrorMapping(400, "invalid_request_error"),
    ErrorKind.NO_PERMISSIONS: ErrorMapping(403, "permission_error"),
    ErrorKind.BLOCKED: ErrorMapping(403, "permission_error"),
    ErrorKind.NOT_FOUND: ErrorMapping(404, "not_found_error"),
    ErrorKind.QUOTA_EXCEEDED: ErrorMapping(429, "rate_limit_error"),
    ErrorKind.UNKNOWN: ErrorMapping(500, "api_error"),
}

DIALECT_ERROR_TABLES: dict[Dialect, dict[ErrorKind, ErrorMapping]] = {
    Dialect.OPENAI_CHAT: OPENAI_ERROR_TABLE,
    Dialect.OPENAI_RESPONSES: OPENAI_ERROR_TABLE,
    Dialect.ANTHROPIC: ANTHROPIC_ERROR_TABLE,
}

FALLBACK_MAPPING = ErrorMapping(500, "api_error", "internal_error")

DEFAULT_ERROR_MESSAGE = "An unknown error has occurred"

# Compatibility shim for host backends that only report upstream failures
# as text. Replace with a structured channel if the backend ever grows one.
_REQUEST_FAILED_PATTERN = re.compile(r"Request Failed: (\d+)\s+(\{.*\})", re.DOTALL)


def _error_kind(exc: BaseException) -> Optional[ErrorKind]:
    if isinstance(exc, BridgeError):
        return exc.kind
    return None


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, BridgeError):
        return exc.message or DEFAULT_ERROR_MESSAGE
    return str(exc) or DEFAULT_ERROR_MESSAGE


def parse_embedded_failure(message: str) -> Optional[MappedError]:
    """Extract an embedded ``Request Failed: <status> <json>`` error.

    Returns None when the message does not carry the pattern or the
    embedded body is not a JSON error object.
    """
    match = _REQUEST_FAILED_PATTERN.search(message or "")
    if not match:
        return None
    try:
        payload = json.loads(match.group(2))
    except json.JSONDecodeError:
        logger.warning("Embedded upstream error body is not valid JSON: %s", match.group(2)[:200])
        return None
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return None
    return MappedError(
        status_code=int(match.group(1)),
        error={
            "type": error.get("type") or FALLBACK_MAPPING.error_type,
            "message": error.get("message") or DEFAULT_ERROR_MESSAGE,
        },
    )


def map_error(exc: BaseException, dialect: Dialect) -> MappedError:
    """Map an exception to ``(status_code, error object)`` for a dialect.

    The error object is the inner ``error`` member; use ``error_body`` to
    wrap it in the dialect's envelope.
    """
    kind = _error_kind(exc)
    message = _error_message(exc)

    if dialect == Dialect.ANTHROPIC:
        if kind in (None, ErrorKind.UNKNOWN):
            embedded = parse_embedded_failure(message)
            if embedded is not None:
                return embedded
        mapping = ANTHROPIC_ERROR_TABLE.get(kind, FALLBACK_MAPPING) if kind else FALLBACK_MAPPING
        return MappedError(
            status_code=mapping.status_code,
            error={"type": mapping.error_type, "message": message},
        )

    table = DIALECT_ERROR_TABLES[dialect]
    mapping = table.get(kind, FALLBACK_MAPPING) if kind else FALLBACK_MAPPING
    code = mapping.code
    param = mapping.param
    if isinstance(exc, BridgeError):
        code = exc.code or code
        param = exc.param or param
    return MappedError(
        status_code=mapping.status_code,
        error={
            "message": message,
            "type": mapping.error_type,
            "param": param,
            "code": code,
        },
    )


def error_body(mapped: MappedError, dialect: Dialect) -> dict[str, Any]:
    """Wrap a mapped error in the dialect's top-level error envelope."""
    if dialect == Dialect.ANTHROPIC:
        return {"type": "error", "error": mapped.error}
    return {"error": mapped.error}
