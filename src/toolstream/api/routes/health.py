from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from toolstream.api.dependencies import AppSettings, Registry

router = APIRouter()


@router.get("/health")
async def health_check(settings: AppSettings, registry: Registry, request: Request) -> dict[str, Any]:
    """Health check with MCP connection and model provider status."""
    provider_ready = getattr(request.app.state, "provider", None) is not None
    return {
        "status": "healthy" if provider_ready else "degraded",
        "version": settings.app_version,
        "environment": settings.app_env,
        "model": {"configured": provider_ready, "name": settings.model},
        "mcp": {"connections": len(registry.list_connections())},
    }


@router.get("/health/live")
async def liveness_check() -> dict[str, Any]:
    """Liveness probe (just confirms process is running)."""
    return {"alive": True}
