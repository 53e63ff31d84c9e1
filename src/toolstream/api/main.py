from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from functools import partial

import httpx

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from toolstream.api.middleware.exception_handlers import register_exception_handlers
from toolstream.api.middleware.request_context import RequestContextMiddleware
from toolstream.api.routes import chat, health, mcp
from toolstream.core.constants import Settings, get_settings
from toolstream.integrations.mcp_config_store import ServerConfigStore
from toolstream.integrations.mcp_registry import ConnectionRegistry
from toolstream.integrations.mcp_transport import create_transport
from toolstream.integrations.model_provider import ModelProvider, OpenAIModelProvider
from toolstream.utils.client_factory import create_provider_clients
from toolstream.utils.logger import logger


def _build_provider(settings: Settings) -> tuple[ModelProvider | None, httpx.AsyncClient | None]:
    """Create the OpenAI-backed provider and the httpx client it owns."""
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set; /api/chat is unavailable until configured")
        return None, None

    client, http_client = create_provider_clients(settings)
    logger.info(f"Configured OpenAI client (model: {settings.model})")
    provider = OpenAIModelProvider(
        client,
        model=settings.model,
        temperature=settings.temperature,
        max_output_tokens=settings.max_output_tokens,
        system_prompt=settings.system_prompt,
    )
    return provider, http_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build shared services, close every MCP connection on shutdown."""
    settings: Settings = app.state.settings
    http_client: httpx.AsyncClient | None = None

    if getattr(app.state, "registry", None) is None:
        app.state.registry = ConnectionRegistry(
            transport_factory=partial(
                create_transport,
                connect_timeout=settings.mcp_connect_timeout,
                call_timeout=settings.mcp_call_tool_timeout,
            )
        )
    if getattr(app.state, "config_store", None) is None:
        app.state.config_store = ServerConfigStore()
    if getattr(app.state, "provider", None) is None:
        app.state.provider, http_client = _build_provider(settings)

    try:
        yield
    finally:
        errors = await app.state.registry.disconnect_all()
        if errors:
            logger.warning(f"MCP shutdown errors: {', '.join(errors)}")
        else:
            logger.info("MCP connections closed")
        if http_client is not None:
            await http_client.aclose()


def create_app(
    settings: Settings | None = None,
    registry: ConnectionRegistry | None = None,
    provider: ModelProvider | None = None,
    config_store: ServerConfigStore | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Services not passed in are created in the lifespan from settings.
    """
    settings = settings or get_settings()
    logger.configure(settings)

    app = FastAPI(title="toolstream API", version=settings.app_version, lifespan=lifespan)
    app.state.settings = settings
    app.state.registry = registry
    app.state.provider = provider
    app.state.config_store = config_store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)

    app.include_router(health.router, tags=["health"])
    app.include_router(chat.router, prefix="/api", tags=["chat"])
    app.include_router(mcp.router, prefix="/api/mcp", tags=["mcp"])

    return app
