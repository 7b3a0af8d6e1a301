"""Anthropic-compatible Messages API endpoints.

The same handlers serve the plain Anthropic routes and the Claude Code
routes; the latter resolve models with the ``claude`` alias remap.
"""

import logging
import time

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.requests import ClientDisconnect

from ...core.error_map import Dialect
from ...core.tokens import TokenAccountant
from ...host.base import CancellationToken
from ...host.selection import PROVIDER_ANTHROPIC, PROVIDER_CLAUDE
from ...messages import (
    adapt_fragments_to_messages,
    generate_message_id,
    normalize_messages_request,
    synthesize_message,
    validate_messages_request,
)
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


async def _handle_messages(request: Request, provider: str) -> Response:
    req_id = new_request_id()
    start_time = time.perf_counter()
    logger.info(f"[{req_id}] Messages API request ({provider}) from {describe_client(request)}")

    try:
        payload = await read_json_body(request)
        validate_messages_request(payload)

        host = get_host(request)
        model = await get_selector(request).resolve(payload["model"], provider)
        if model.id != payload["model"]:
            logger.info(f"[{req_id}] Model {payload['model']} resolved to {model.id}")
        accountant = TokenAccountant(host, model.id)
        canonical, input_tokens = await normalize_messages_request(payload, accountant)

        is_stream = bool(payload.get("stream"))
        cancellation = CancellationToken()
        fragments = await open_host_stream(host, model.id, canonical, cancellation, stream=is_stream)
        message_id = generate_message_id()

        if is_stream:
            elapsed = time.perf_counter() - start_time
            logger.info(
                f"[{req_id}] Starting streaming message {message_id} for {model.id}, "
                f"setup took {elapsed:.3f}s"
            )
            events = adapt_fragments_to_messages(message_id, model.id, fragments, accountant, input_tokens)
            return streaming_response(events, cancellation, req_id)

        message = await synthesize_message(
            fragments,
            model=model.id,
            accountant=accountant,
            input_tokens=input_tokens,
            message_id=message_id,
        )
        elapsed = time.perf_counter() - start_time
        logger.info(f"[{req_id}] Completed message {message_id} for {model.id}, took {elapsed:.3f}s")
        return JSONResponse(message)
    except ClientDisconnect:
        logger.warning(f"[{req_id}] Client disconnected before the request body was read")
        return Response(status_code=499)
    except Exception as exc:
        return error_response(exc, Dialect.ANTHROPIC, req_id)


async def _handle_count_tokens(request: Request, provider: str) -> Response:
    req_id = new_request_id()
    logger.info(f"[{req_id}] Count tokens request ({provider}) from {describe_client(request)}")

    try:
        payload = await read_json_body(request)
        validate_messages_request(payload)
        host = get_host(request)
        model = await get_selector(request).resolve(payload["model"], provider)
        input_tokens = await TokenAccountant(host, model.id).count_anthropic_request(payload)
        return JSONResponse({"input_tokens": input_tokens})
    except ClientDisconnect:
        logger.warning(f"[{req_id}] Client disconnected before the request body was read")
        return Response(status_code=499)
    except Exception as exc:
        return error_response(exc, Dialect.ANTHROPIC, req_id)


async def messages_endpoint(request: Request) -> Response:
    """POST /anthropic/v1/messages - Anthropic Messages API compatible endpoint."""
    return await _handle_messages(request, PROVIDER_ANTHROPIC)


async def claude_messages_endpoint(request: Request) -> Response:
    """POST /anthropic/claude/v1/messages - Messages API with Claude Code model aliases."""
    return await _handle_messages(request, PROVIDER_CLAUDE)


async def count_tokens_endpoint(request: Request) -> Response:
    """POST /anthropic/v1/messages/count_tokens"""
    return await _handle_count_tokens(request, PROVIDER_ANTHROPIC)


async def claude_count_tokens_endpoint(request: Request) -> Response:
    """POST /anthropic/claude/v1/messages/count_tokens"""
    return await _handle_count_tokens(request, PROVIDER_CLAUDE)
