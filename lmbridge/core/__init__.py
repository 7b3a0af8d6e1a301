"""Core components shared by every dialect."""

from .error_map import Dialect, MappedError, error_body, map_error
from .exceptions import (
    BridgeError,
    ConfigurationError,
    ContentBlockedError,
    ErrorKind,
    HostModelError,
    ModelNotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    RequestCancelledError,
    ValidationError,
)
from .stream_state import BlockStateMachine, RunState, StopReasonTracker
from .tokens import TokenAccountant

__all__ = [
    "BlockStateMachine",
    "BridgeError",
    "ConfigurationError",
    "ContentBlockedError",
    "Dialect",
    "ErrorKind",
    "HostModelError",
    "MappedError",
    "ModelNotFoundError",
    "PermissionDeniedError",
    "QuotaExceededError",
    "RequestCancelledError",
    "RunState",
    "StopReasonTracker",
    "TokenAccountant",
    "ValidationError",
    "error_body",
    "map_error",
]
