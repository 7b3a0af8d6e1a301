"""OpenAI Responses API dialect."""

from .stream_adapter import FragmentToResponsesStreamAdapter, adapt_fragments_to_responses
from .translator import (
    build_response_object,
    generate_response_id,
    normalize_responses_request,
    synthesize_response,
    validate_responses_request,
)

__all__ = [
    "FragmentToResponsesStreamAdapter",
    "adapt_fragments_to_responses",
    "build_response_object",
    "generate_response_id",
    "normalize_responses_request",
    "synthesize_response",
    "validate_responses_request",
]
