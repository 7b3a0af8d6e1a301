"""Anthropic Messages dialect."""

from .stream_adapter import FragmentToMessagesStreamAdapter, adapt_fragments_to_messages
from .translator import (
    generate_message_id,
    normalize_messages_request,
    synthesize_message,
    validate_messages_request,
)

__all__ = [
    "FragmentToMessagesStreamAdapter",
    "adapt_fragments_to_messages",
    "generate_message_id",
    "normalize_messages_request",
    "synthesize_message",
    "validate_messages_request",
]
