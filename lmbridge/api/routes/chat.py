"""OpenAI-compatible Chat Completions endpoint."""

import logging
import time

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.requests import ClientDisconnect

from ...chat import (
    adapt_fragments_to_chat,
    generate_chat_completion_id,
    normalize_chat_request,
    synthesize_chat_completion,
    validate_chat_request,
)
from ...core.error_map import Dialect
from ...core.tokens import TokenAccountant
from ...host.base import CancellationToken
from ...host.selection import PROVIDER_OPENAI
from .common import (
    describe_client,
    error_response,
    get_host,
    get_selector,
    new_request_id,
    open_host_stream,
    read_json_body,
    streaming_response,
)

logger = logging.getLogger("lmbridge")


async def chat_completions(request: Request) -> Response:
    """POST /openai/v1/chat/completions - OpenAI Chat Completions compatible endpoint."""
    req_id = new_request_id()
    start_time = time.perf_counter()
    logger.info(f"[{req_id}] Chat completions request from {describe_client(request)}")

    try:
        payload = await read_json_body(request)
        validate_chat_request(payload)

        host = get_host(request)
        model = await get_selector(request).resolve(payload["model"], PROVIDER_OPENAI)
        accountant = TokenAccountant(host, model.id)
        canonical, input_tokens = await normalize_chat_request(payload, accountant)

        is_stream = bool(payload.get("stream"))
        cancellation = CancellationToken()
        fragments = await open_host_stream(host, model.id, canonical, cancellation, stream=is_stream)
        completion_id = generate_chat_completion_id()

        if is_stream:
            elapsed = time.perf_counter() - start_time
            logger.info(
                f"[{req_id}] Starting streaming chat completion for {model.id}, "
                f"setup took {elapsed:.3f}s"
            )
            events = adapt_fragments_to_chat(completion_id, model.id, fragments, accountant, input_tokens)
            return streaming_response(events, cancellation, req_id)

        completion = await synthesize_chat_completion(
            fragments,
            model=model.id,
            accountant=accountant,
            input_tokens=input_tokens,
            completion_id=completion_id,
        )
        elapsed = time.perf_counter() - start_time
        logger.info(f"[{req_id}] Completed chat completion for {model.id}, took {elapsed:.3f}s")
        return JSONResponse(completion)
    except ClientDisconnect:
        logger.warning(f"[{req_id}] Client disconnected before the request body was read")
        return Response(status_code=499)
    except Exception as exc:
        return error_response(exc, Dialect.OPENAI_CHAT, req_id)
