"""
Adapter exposing an ``mcp.ClientSession`` through the same surface as
WebSocketMCPClient, with results converted to toolstream's pydantic models.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from mcp import ClientSession
from pydantic import AnyUrl

from toolstream.core.constants import MCP_CALL_TOOL_TIMEOUT
from toolstream.models.mcp_models import MCPPrompt, MCPResource, MCPResult, MCPTool


class SessionMCPClient:
    """Wraps an initialized ClientSession owned by a transport."""

    def __init__(self, session: ClientSession, server_name: str, call_timeout: float = MCP_CALL_TOOL_TIMEOUT):
        self.session = session
        self.server_name = server_name
        self.call_timeout = call_timeout

    async def list_tools(self) -> list[MCPTool]:
        result = await self.session.list_tools()
        return [MCPTool.model_validate(t.model_dump(exclude_none=True)) for t in result.tools]

    async def list_prompts(self) -> list[MCPPrompt]:
        result = await self.session.list_prompts()
        return [MCPPrompt.model_validate(p.model_dump(exclude_none=True)) for p in result.prompts]

    async def list_resources(self) -> list[MCPResource]:
        result = await self.session.list_resources()
        return [MCPResource.model_validate(r.model_dump(mode="json", exclude_none=True)) for r in result.resources]

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> MCPResult:
        result = await self.session.call_tool(
            tool_name,
            arguments,
            read_timeout_seconds=timedelta(seconds=self.call_timeout),
        )
        return MCPResult.model_validate(result.model_dump(mode="json", exclude_none=True))

    async def get_prompt(self, prompt_name: str, arguments: dict[str, str] | None = None) -> dict[str, Any]:
        result = await self.session.get_prompt(prompt_name, arguments)
        return result.model_dump(mode="json", exclude_none=True)

    async def read_resource(self, uri: str) -> list[dict[str, Any]]:
        result = await self.session.read_resource(AnyUrl(uri))
        return [c.model_dump(mode="json", exclude_none=True) for c in result.contents]
