"""Helpers shared by the dialect endpoints."""

import json
import logging
import uuid
from typing import Any, AsyncIterator, Mapping

from fastapi import Request
from fastapi.responses import JSONResponse, StreamingResponse

from ...core.error_map import Dialect, error_body, map_error
from ...core.exceptions import BridgeError, ValidationError
from ...core.sse import STREAMING_HEADERS
from ...host.base import CancellationToken, HostModel, RequestOptions, guard_stream, prime_stream
from ...host.selection import ModelSelector
from ...types.canonical import CanonicalRequest, StreamPart

logger = logging.getLogger("lmbridge")


def new_request_id() -> str:
    """Short id used to correlate log lines of one request."""
    return uuid.uuid4().hex[:8]


def describe_client(request: Request) -> str:
    if request.client is None:
        return "unknown"
    return f"{request.client.host}:{request.client.port}"


def get_host(request: Request) -> HostModel:
    return request.app.state.host


def get_selector(request: Request) -> ModelSelector:
    return request.app.state.selector


async def read_json_body(request: Request) -> Mapping[str, Any]:
    """Read and decode the request body.

    Raises:
        ValidationError: If the body is not a JSON object.
    """
    body = await request.body()
    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Invalid JSON payload: {exc}", code="invalid_json") from exc
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be a JSON object", code="invalid_json_shape")
    return payload


def error_response(exc: BaseException, dialect: Dialect, req_id: str) -> JSONResponse:
    """Map ``exc`` onto the dialect's error envelope."""
    if isinstance(exc, BridgeError):
        logger.warning(f"[{req_id}] {dialect.value} request failed: {exc.kind.value}: {exc.message}")
    else:
        logger.exception(f"[{req_id}] Unexpected error handling {dialect.value} request")
    mapped = map_error(exc, dialect)
    return JSONResponse(error_body(mapped, dialect), status_code=mapped.status_code)


async def open_host_stream(
    host: HostModel,
    model_id: str,
    canonical: CanonicalRequest,
    cancellation: CancellationToken,
    *,
    stream: bool,
) -> AsyncIterator[StreamPart]:
    """Start the host call for ``canonical``.

    Streaming requests are primed so a failure to start generating is
    reported as a plain HTTP error instead of an in-band stream error.
    """
    fragments = guard_stream(
        host.send_request(model_id, canonical.messages, RequestOptions.from_request(canonical), cancellation),
        cancellation,
    )
    if stream:
        return await prime_stream(fragments)
    return fragments


def streaming_response(
    events: AsyncIterator[bytes],
    cancellation: CancellationToken,
    req_id: str,
) -> StreamingResponse:
    """Wrap dialect events in an SSE response that cancels the host call on disconnect."""

    async def cancelling_stream() -> AsyncIterator[bytes]:
        completed = False
        try:
            async for event in events:
                yield event
            completed = True
        finally:
            if not completed:
                logger.info(f"[{req_id}] Client went away, cancelling host request")
                cancellation.cancel()

    return StreamingResponse(
        cancelling_stream(),
        media_type="text/event-stream",
        headers=STREAMING_HEADERS,
    )
