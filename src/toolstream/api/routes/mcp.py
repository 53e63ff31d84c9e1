"""
MCP management endpoints: connection lifecycle, capability listing and
execution, and saved server records with export/import.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, HTTPException, Query, Response

from toolstream.api.dependencies import ConfigStore, Registry
from toolstream.models.api_models import (
    ActionResponse,
    ConnectRequest,
    CreateServerRequest,
    DisconnectRequest,
    ExecuteRequest,
    ImportConfigRequest,
    ListType,
)
from toolstream.models.mcp_models import MCPServerConfig

router = APIRouter()


def _dump_config(config: MCPServerConfig) -> dict[str, Any]:
    return config.model_dump(by_alias=True, exclude_none=True)


# ============================================================================
# Connections
# ============================================================================


@router.post("/connect")
async def connect_server(body: ConnectRequest, registry: Registry, store: ConfigStore) -> ActionResponse:
    """Connect to the server described by ``serverConfig`` under its id."""
    config = body.server_config
    await registry.connect(config.id, config)
    store.save(config)
    return ActionResponse(message=f"Connected to {config.name}")


@router.post("/disconnect")
async def disconnect_server(body: DisconnectRequest, registry: Registry) -> ActionResponse:
    await registry.disconnect(body.server_id)
    return ActionResponse(message="Disconnected successfully")


@router.get("/status")
async def connection_status(registry: Registry) -> dict[str, Any]:
    connections = registry.get_connection_info()
    return {
        "connectedServers": [c["server_id"] for c in connections if c["status"] == "connected"],
        "connections": connections,
        "count": len(connections),
    }


@router.get("/list")
async def list_capabilities(
    registry: Registry,
    server_id: Annotated[str, Query(alias="serverId", min_length=1)],
    list_type: Annotated[ListType, Query(alias="type")],
) -> dict[str, Any]:
    """List tools, prompts or resources of a connected server."""
    if list_type == "tools":
        items: list[Any] = await registry.list_tools(server_id)
    elif list_type == "prompts":
        items = await registry.list_prompts(server_id)
    else:
        items = await registry.list_resources(server_id)
    return {list_type: [item.model_dump(exclude_none=True) for item in items]}


@router.post("/execute")
async def execute_action(body: ExecuteRequest, registry: Registry) -> dict[str, Any]:
    """Call a tool, render a prompt or read a resource."""
    if body.action in ("callTool", "getPrompt") and not body.name:
        raise HTTPException(status_code=400, detail=f"'name' is required for {body.action}")
    if body.action == "readResource" and not body.uri:
        raise HTTPException(status_code=400, detail="'uri' is required for readResource")

    result: Any
    if body.action == "callTool":
        result = await registry.call_tool(body.server_id, body.name or "", body.arguments or {})
    elif body.action == "getPrompt":
        prompt_args = {k: str(v) for k, v in (body.arguments or {}).items()} or None
        result = await registry.get_prompt(body.server_id, body.name or "", prompt_args)
    else:
        result = await registry.read_resource(body.server_id, body.uri or "")
    return {"result": result}


# ============================================================================
# Saved server records
# ============================================================================


@router.get("/servers")
async def list_servers(store: ConfigStore) -> dict[str, Any]:
    return {"servers": [_dump_config(c) for c in store.list_configs()]}


@router.post("/servers", status_code=201)
async def create_server(body: CreateServerRequest, store: ConfigStore) -> dict[str, Any]:
    config = store.save(body.to_config())
    return {"server": _dump_config(config)}


@router.delete("/servers")
async def delete_server(
    store: ConfigStore,
    server_id: Annotated[str, Query(alias="id", min_length=1)],
) -> ActionResponse:
    if not store.delete(server_id):
        raise HTTPException(status_code=404, detail=f"Server '{server_id}' not found")
    return ActionResponse(message="Server deleted")


@router.get("/config")
async def export_config(store: ConfigStore) -> Response:
    """Download saved server records as a JSON array."""
    return Response(
        content=store.export(),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="mcp-config.json"'},
    )


@router.post("/config")
async def import_config(body: ImportConfigRequest, store: ConfigStore) -> dict[str, Any]:
    """Validate and add exported records; invalid payloads add nothing."""
    imported = store.import_configs(body.config)
    return {
        "success": True,
        "message": f"Imported {len(imported)} server(s)",
        "servers": [_dump_config(c) for c in imported],
    }
