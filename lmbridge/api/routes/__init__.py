"""API routes for the bridge."""

from .chat import chat_completions
from .messages import (
    claude_count_tokens_endpoint,
    claude_messages_endpoint,
    count_tokens_endpoint,
    messages_endpoint,
)
from .models import get_anthropic_model, get_openai_model, list_anthropic_models, list_openai_models
from .responses import create_response
from .status import server_status

__all__ = [
    "chat_completions",
    "claude_count_tokens_endpoint",
    "claude_messages_endpoint",
    "count_tokens_endpoint",
    "create_response",
    "get_anthropic_model",
    "get_openai_model",
    "list_anthropic_models",
    "list_openai_models",
    "messages_endpoint",
    "server_status",
]
