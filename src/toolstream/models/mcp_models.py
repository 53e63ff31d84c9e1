"""
Pydantic models for MCP (Model Context Protocol).

These models provide type safety for:
- Server configuration records (MCPServerConfig) and their export/import
- Tool, prompt and resource listings (MCPTool, MCPPrompt, MCPResource)
- Tool execution results (MCPResult)
- Registry-wide tool descriptors tagged with their server (ToolDescriptor)
"""

from __future__ import annotations

import json
import secrets
import time

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from toolstream.core.exceptions import ConfigError

TransportType = Literal["stdio", "sse", "http", "websocket"]


def generate_server_id() -> str:
    """Generate a unique server config id (e.g. ``mcp_1718000000000_a1b2c3d4``)."""
    return f"mcp_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def _now_ms() -> int:
    return int(time.time() * 1000)


class MCPServerConfig(BaseModel):
    """Persisted MCP server record.

    Serialized with camelCase keys (``transportType``, ``createdAt``) so exported
    files match what clients store. Transport-specific fields are checked at
    connect time, not here.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(default_factory=generate_server_id)
    name: str
    description: str | None = None
    transport_type: TransportType
    # stdio
    command: str | None = None
    args: list[str] | None = None
    env: dict[str, str] | None = None
    # sse / http / websocket
    url: str | None = None
    created_at: int = Field(default_factory=_now_ms)


class MCPTool(BaseModel):
    """Model for an MCP tool definition."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    description: str | None = None
    inputSchema: dict[str, Any] = Field(default_factory=dict)


class MCPPromptArgument(BaseModel):
    """Argument accepted by an MCP prompt."""

    model_config = ConfigDict(extra="allow")

    name: str
    description: str | None = None
    required: bool | None = None


class MCPPrompt(BaseModel):
    """Model for an MCP prompt definition."""

    model_config = ConfigDict(extra="allow")

    name: str
    description: str | None = None
    arguments: list[MCPPromptArgument] | None = None


class MCPResource(BaseModel):
    """Model for an MCP resource listing entry."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    uri: str
    name: str
    description: str | None = None
    mimeType: str | None = None


class MCPResult(BaseModel):
    """Model for an MCP tool execution result.

    ``content`` holds the raw content blocks; ``structuredContent`` is set when
    the server returns structured output.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    content: list[dict[str, Any]] = Field(default_factory=list)
    structuredContent: dict[str, Any] | None = None
    isError: bool = False

    def payload(self) -> Any:
        """Structured content when present, else the content blocks."""
        return self.structuredContent if self.structuredContent is not None else self.content

    def error_text(self) -> str:
        """Concatenated text blocks, used as the message of an error result."""
        texts = [str(block.get("text", "")) for block in self.content if block.get("type") == "text"]
        return "\n".join(t for t in texts if t) or "Tool reported an error"


class ToolDescriptor(BaseModel):
    """A tool listed by a live connection, tagged with its owning server."""

    server_id: str
    name: str
    description: str | None = None
    input_schema: dict[str, Any] = Field(default_factory=dict)


def export_server_configs(configs: list[MCPServerConfig]) -> str:
    """Serialize server records as the literal JSON array of records."""
    return json.dumps([c.model_dump(by_alias=True, exclude_none=True) for c in configs], indent=2)


def import_server_configs(data: str | list[Any]) -> list[MCPServerConfig]:
    """Validate an exported array and return fresh records.

    Each record's ``transportType`` is re-validated against the closed set; ``id``
    and ``createdAt`` are reassigned.

    Raises:
        ConfigError: If the payload is not a JSON array of valid records.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Config is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise ConfigError("Config must be a JSON array of server records")

    imported: list[MCPServerConfig] = []
    for index, record in enumerate(data):
        if not isinstance(record, dict):
            raise ConfigError(f"Record {index} is not an object")
        fields = {k: v for k, v in record.items() if k not in ("id", "createdAt", "created_at")}
        try:
            imported.append(MCPServerConfig.model_validate(fields))
        except ValidationError as e:
            raise ConfigError(f"Record {index} is invalid: {e.errors()[0]['msg']}", field=str(index)) from e
    return imported
