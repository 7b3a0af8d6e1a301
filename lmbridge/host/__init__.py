"""Host model backends and model selection."""

from .base import (
    CancellationToken,
    HostModel,
    ModelInfo,
    RequestOptions,
    guard_stream,
    prime_stream,
)
from .echo import EchoHostModel
from .openai_upstream import OpenAIUpstreamHostModel
from .selection import DEFAULT_MODEL_ALIAS, ModelSelectionSettings, ModelSelector

__all__ = [
    "CancellationToken",
    "DEFAULT_MODEL_ALIAS",
    "EchoHostModel",
    "HostModel",
    "ModelInfo",
    "ModelSelectionSettings",
    "ModelSelector",
    "OpenAIUpstreamHostModel",
    "RequestOptions",
    "guard_stream",
    "prime_stream",
]
