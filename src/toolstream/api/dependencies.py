from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from toolstream.core.constants import Settings
from toolstream.core.exceptions import AppException
from toolstream.integrations.mcp_config_store import ServerConfigStore
from toolstream.integrations.mcp_registry import ConnectionRegistry
from toolstream.integrations.model_provider import ModelProvider
from toolstream.models.error_models import ErrorCode


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    settings: Settings = request.app.state.settings
    return settings


def get_registry(request: Request) -> ConnectionRegistry:
    """Get the connection registry from application state."""
    registry: ConnectionRegistry = request.app.state.registry
    return registry


def get_config_store(request: Request) -> ServerConfigStore:
    store: ServerConfigStore = request.app.state.config_store
    return store


def get_provider(request: Request) -> ModelProvider:
    """Get the model provider; fails when no API key was configured."""
    provider: ModelProvider | None = getattr(request.app.state, "provider", None)
    if provider is None:
        raise AppException(
            code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            message="Model provider is not configured; set OPENAI_API_KEY",
        )
    return provider


# Type aliases for cleaner route signatures
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Registry = Annotated[ConnectionRegistry, Depends(get_registry)]
ConfigStore = Annotated[ServerConfigStore, Depends(get_config_store)]
Provider = Annotated[ModelProvider, Depends(get_provider)]
