"""Model listing endpoints in OpenAI and Anthropic format.

Both listings include the synthetic default model id alongside the host
model catalogue.
"""

import logging
import time
from datetime import datetime, timezone

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from ...core.error_map import Dialect
from ...core.exceptions import ModelNotFoundError
from ...host.base import ModelInfo
from ...types.chat import AnthropicModel, OpenAIModel
from .common import error_response, get_host, get_selector, new_request_id

logger = logging.getLogger("lmbridge")

SYNTHETIC_OWNER = "lmbridge"


async def _catalogue(request: Request) -> list[ModelInfo]:
    """Host models followed by the synthetic default model."""
    alias = get_selector(request).default_model_alias
    models = [m for m in await get_host(request).list_models() if m.id != alias]
    models.append(ModelInfo(id=alias, display_name=alias, vendor=SYNTHETIC_OWNER))
    return models


def _find(models: list[ModelInfo], model_id: str) -> ModelInfo:
    for model in models:
        if model.id == model_id:
            return model
    raise ModelNotFoundError(f"Model {model_id} not found")


def _openai_model(model: ModelInfo, created: int) -> OpenAIModel:
    return {"id": model.id, "object": "model", "created": created, "owned_by": model.vendor}


def _anthropic_model(model: ModelInfo, created_at: str) -> AnthropicModel:
    return {"type": "model", "id": model.id, "display_name": model.display_name, "created_at": created_at}


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


async def list_openai_models(request: Request) -> Response:
    """List available models in OpenAI API format.

    GET /openai/v1/models
    """
    req_id = new_request_id()
    logger.info(f"[{req_id}] Received OpenAI models list request")
    try:
        created = int(time.time())
        data = [_openai_model(m, created) for m in await _catalogue(request)]
        return JSONResponse({"object": "list", "data": data})
    except Exception as exc:
        return error_response(exc, Dialect.OPENAI_CHAT, req_id)


async def get_openai_model(model_id: str, request: Request) -> Response:
    """GET /openai/v1/models/{model_id}"""
    req_id = new_request_id()
    try:
        model = _find(await _catalogue(request), model_id)
        return JSONResponse(_openai_model(model, int(time.time())))
    except Exception as exc:
        return error_response(exc, Dialect.OPENAI_CHAT, req_id)


async def list_anthropic_models(request: Request) -> Response:
    """List available models in Anthropic API format.

    GET /anthropic/v1/models
    """
    req_id = new_request_id()
    logger.info(f"[{req_id}] Received Anthropic models list request")
    try:
        created_at = _iso_now()
        data = [_anthropic_model(m, created_at) for m in await _catalogue(request)]
        return JSONResponse({
            "data": data,
            "first_id": data[0]["id"] if data else None,
            "last_id": data[-1]["id"] if data else None,
            "has_more": False,
        })
    except Exception as exc:
        return error_response(exc, Dialect.ANTHROPIC, req_id)


async def get_anthropic_model(model_id: str, request: Request) -> Response:
    """GET /anthropic/v1/models/{model_id}"""
    req_id = new_request_id()
    try:
        model = _find(await _catalogue(request), model_id)
        return JSONResponse(_anthropic_model(model, _iso_now()))
    except Exception as exc:
        return error_response(exc, Dialect.ANTHROPIC, req_id)
