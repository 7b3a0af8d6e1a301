"""Core exceptions for the bridge.

Every failure that can reach a client is a ``BridgeError`` carrying an
``ErrorKind``. The kind is what the dialect error tables key on; the
concrete subclass is only a convenience for raising sites.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced by normalizers and the host model."""
    INVALID_MESSAGE_FORMAT = "invalid_message_format"
    INVALID_MODEL = "invalid_model"
    INVALID_REQUEST = "invalid_request"
    NO_PERMISSIONS = "no_permissions"
    BLOCKED = "blocked"
    NOT_FOUND = "not_found"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNKNOWN = "unknown"
    CANCELLED = "cancelled"


class BridgeError(Exception):
    """Base exception for bridge errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        param: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.param = param
        self.cause = cause


class ValidationError(BridgeError):
    """Raised when an incoming request is missing a required field."""

    kind = ErrorKind.INVALID_REQUEST

    def __init__(
        self,
        message: str,
        *,
        code: str = "invalid_request",
        param: Optional[str] = None,
    ) -> None:
        super().__init__(message, code=code, param=param)


class ModelNotFoundError(BridgeError):
    """Raised when a requested model cannot be resolved."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, *, param: Optional[str] = "model") -> None:
        super().__init__(message, code="model_not_found", param=param)


class PermissionDeniedError(BridgeError):
    """The host model refused access to the requested model."""

    kind = ErrorKind.NO_PERMISSIONS


class ContentBlockedError(BridgeError):
    """The host model blocked the request content."""

    kind = ErrorKind.BLOCKED


class QuotaExceededError(BridgeError):
    """The host model reported an exhausted quota."""

    kind = ErrorKind.QUOTA_EXCEEDED


class HostModelError(BridgeError):
    """An error reported by the host model backend with an explicit kind."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        code: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, code=code, cause=cause)
        self.kind = kind


class RequestCancelledError(BridgeError):
    """The caller cancelled the request while the host model was streaming."""

    kind = ErrorKind.CANCELLED


class ConfigurationError(BridgeError):
    """Raised when there's an issue with the configuration."""
    pass
