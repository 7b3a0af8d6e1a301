"""OpenAI-compatible Responses API endpoint."""

import logging
import time

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.requests import ClientDisconnect

from ...core.error_map import Dialect
from ...core.tokens import TokenAccountant
from ...host.base import CancellationToken
from ...host.selection import PROVIDER_OPENAI
from ...responses import (
    adapt_fragments_to_responses,
    generate_response_id,
    normalize_responses_request,
    synthesize_response,
    validate_responses_request,
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


async def create_response(request: Request) -> Response:
    """POST /openai/v1/responses - OpenAI Responses API compatible endpoint."""
    req_id = new_request_id()
    start_time = time.perf_counter()
    logger.info(f"[{req_id}] Responses API request from {describe_client(request)}")

    try:
        payload = await read_json_body(request)
        validate_responses_request(payload)

        host = get_host(request)
        model = await get_selector(request).resolve(payload["model"], PROVIDER_OPENAI)
        accountant = TokenAccountant(host, model.id)
        canonical, input_tokens = await normalize_responses_request(payload, accountant)

        is_stream = bool(payload.get("stream"))
        cancellation = CancellationToken()
        fragments = await open_host_stream(host, model.id, canonical, cancellation, stream=is_stream)
        response_id = generate_response_id()

        if is_stream:
            elapsed = time.perf_counter() - start_time
            logger.info(
                f"[{req_id}] Starting streaming response {response_id} for {model.id}, "
                f"setup took {elapsed:.3f}s"
            )
            events = adapt_fragments_to_responses(
                response_id, model.id, fragments, accountant, input_tokens, payload
            )
            return streaming_response(events, cancellation, req_id)

        response = await synthesize_response(
            fragments,
            model=model.id,
            request=payload,
            accountant=accountant,
            input_tokens=input_tokens,
            response_id=response_id,
        )
        elapsed = time.perf_counter() - start_time
        logger.info(f"[{req_id}] Completed response {response_id} for {model.id}, took {elapsed:.3f}s")
        return JSONResponse(response)
    except ClientDisconnect:
        logger.warning(f"[{req_id}] Client disconnected before the request body was read")
        return Response(status_code=499)
    except Exception as exc:
        return error_response(exc, Dialect.OPENAI_RESPONSES, req_id)
