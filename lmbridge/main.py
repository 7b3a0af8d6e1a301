"""Main FastAPI application for the lmbridge server."""

import logging
import socket
from typing import Any, Mapping, Optional

import uvicorn
from fastapi import FastAPI

from .api.routes import (
    chat_completions,
    claude_count_tokens_endpoint,
    claude_messages_endpoint,
    count_tokens_endpoint,
    create_response,
    get_anthropic_model,
    get_openai_model,
    list_anthropic_models,
    list_openai_models,
    messages_endpoint,
    server_status,
)
from .config_loader import build_host_model, load_config
from .host.base import HostModel
from .host.selection import ModelSelectionSettings, ModelSelector
from .logging import setup_logging

logger = logging.getLogger("lmbridge")


def _register_routes(app: FastAPI) -> None:
    app.get("/")(server_status)

    for prefix in ("/openai", "/openai/v1"):
        app.post(f"{prefix}/chat/completions")(chat_completions)
        app.post(f"{prefix}/responses")(create_response)
        app.get(f"{prefix}/models")(list_openai_models)
        app.get(f"{prefix}/models/{{model_id}}")(get_openai_model)

    for base, messages, count_tokens in (
        ("/anthropic", messages_endpoint, count_tokens_endpoint),
        ("/anthropic/claude", claude_messages_endpoint, claude_count_tokens_endpoint),
    ):
        for prefix in (base, f"{base}/v1"):
            app.post(f"{prefix}/messages")(messages)
            app.post(f"{prefix}/messages/count_tokens")(count_tokens)
            app.get(f"{prefix}/models")(list_anthropic_models)
            app.get(f"{prefix}/models/{{model_id}}")(get_anthropic_model)


def _log_bind_address(server_host: str, server_port: Any) -> None:
    logger.info("Configured bind address %s:%s", server_host, server_port)
    if server_host == "0.0.0.0":
        hostname = socket.gethostname()
        logger.info("Reachable on local network at http://%s:%s", hostname, server_port)


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    host: Optional[HostModel] = None,
    selector: Optional[ModelSelector] = None,
) -> FastAPI:
    """Factory function to create the FastAPI application.

    Args:
        config: Parsed configuration; loaded with ``load_config()`` when omitted.
        host: Host model backend; built from ``host_model`` config when omitted.
        selector: Model selector; built from ``models`` config when omitted.

    Returns:
        The configured FastAPI application instance.
    """
    if config is None:
        config = load_config()
    setup_logging((config.get("logging") or {}).get("level", "INFO"))

    if host is None:
        host = build_host_model(config)
    if selector is None:
        selector = ModelSelector(host, ModelSelectionSettings.from_config(config))

    app = FastAPI(title="lmbridge")
    app.state.config = config
    app.state.host = host
    app.state.selector = selector
    _register_routes(app)

    @app.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        server_cfg = config.get("server") or {}
        logger.info("lmbridge server starting up...")
        _log_bind_address(str(server_cfg.get("host", "127.0.0.1")), server_cfg.get("port", 4000))
        logger.info(f"Host model backend: {type(host).__name__}")
        logger.info(f"Default model alias: {selector.default_model_alias}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Handle application shutdown."""
        await host.aclose()
        logger.info("lmbridge server stopped")

    logger.info("FastAPI application created")
    return app


_app: Optional[FastAPI] = None


def get_app() -> FastAPI:
    """Return the module-level application, creating it on first use."""
    global _app
    if _app is None:
        _app = create_app()
    return _app


def __getattr__(name: str) -> Any:
    # Lets ``uvicorn lmbridge.main:app`` build the app on first access
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def run() -> None:
    """Console entry point: start uvicorn with host and port from config."""
    config = load_config()
    server_cfg = config.get("server") or {}
    server_host = str(server_cfg.get("host", "127.0.0.1"))
    try:
        server_port = int(server_cfg.get("port", 4000))
    except (TypeError, ValueError):
        server_port = 4000
    uvicorn.run(create_app(config), host=server_host, port=server_port)


__all__ = ["create_app", "get_app", "run"]
