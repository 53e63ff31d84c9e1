"""
Request and response models for the MCP management endpoints.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from toolstream.models.mcp_models import MCPServerConfig, TransportType

ListType = Literal["tools", "prompts", "resources"]
ExecuteAction = Literal["callTool", "getPrompt", "readResource"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConnectRequest(_CamelModel):
    server_config: MCPServerConfig


class DisconnectRequest(_CamelModel):
    server_id: str = Field(min_length=1)


class ExecuteRequest(_CamelModel):
    """Body of ``POST /api/mcp/execute``.

    ``name`` is required for callTool/getPrompt, ``uri`` for readResource.
    """

    server_id: str = Field(min_length=1)
    action: ExecuteAction
    name: str | None = None
    arguments: dict[str, Any] | None = None
    uri: str | None = None


class CreateServerRequest(_CamelModel):
    """New server record; id and createdAt are assigned by the store."""

    name: str = Field(min_length=1)
    description: str | None = None
    transport_type: TransportType
    command: str | None = None
    args: list[str] | None = None
    env: dict[str, str] | None = None
    url: str | None = None

    def to_config(self) -> MCPServerConfig:
        return MCPServerConfig(**self.model_dump())


class ImportConfigRequest(BaseModel):
    """Exported config, either the JSON text or the parsed array."""

    config: str | list[Any]


class ActionResponse(BaseModel):
    success: bool = True
    message: str
