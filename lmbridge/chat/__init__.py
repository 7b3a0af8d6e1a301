"""OpenAI Chat Completions dialect."""

from .stream_adapter import FragmentToChatStreamAdapter, adapt_fragments_to_chat
from .translator import (
    generate_chat_completion_id,
    normalize_chat_request,
    synthesize_chat_completion,
    validate_chat_request,
)

__all__ = [
    "FragmentToChatStreamAdapter",
    "adapt_fragments_to_chat",
    "generate_chat_completion_id",
    "normalize_chat_request",
    "synthesize_chat_completion",
    "validate_chat_request",
]
