"""Tests for the ClientSession adapter."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from mcp import types
from pydantic import AnyUrl

from toolstream.integrations.mcp_session_client import SessionMCPClient
from toolstream.models.mcp_models import MCPPrompt, MCPResource, MCPResult, MCPTool


@pytest.fixture
def session() -> MagicMock:
    session = MagicMock()
    session.list_tools = AsyncMock(
        return_value=types.ListToolsResult(
            tools=[types.Tool(name="search", description="Search", inputSchema={"type": "object"})]
        )
    )
    session.list_prompts = AsyncMock(
        return_value=types.ListPromptsResult(
            prompts=[types.Prompt(name="greet", arguments=[types.PromptArgument(name="who", required=True)])]
        )
    )
    session.list_resources = AsyncMock(
        return_value=types.ListResourcesResult(
            resources=[types.Resource(uri=AnyUrl("file:///a.txt"), name="a", mimeType="text/plain")]
        )
    )
    session.call_tool = AsyncMock(
        return_value=types.CallToolResult(content=[types.TextContent(type="text", text="found")], isError=False)
    )
    session.get_prompt = AsyncMock(
        return_value=types.GetPromptResult(
            messages=[types.PromptMessage(role="user", content=types.TextContent(type="text", text="hi ada"))]
        )
    )
    session.read_resource = AsyncMock(
        return_value=types.ReadResourceResult(
            contents=[types.TextResourceContents(uri=AnyUrl("file:///a.txt"), text="alpha")]
        )
    )
    return session


class TestSessionMCPClient:
    """Tests for SessionMCPClient result conversion."""

    @pytest.mark.asyncio
    async def test_list_tools(self, session: MagicMock) -> None:
        tools = await SessionMCPClient(session, "s").list_tools()

        assert isinstance(tools[0], MCPTool)
        assert tools[0].name == "search"
        assert tools[0].inputSchema == {"type": "object"}

    @pytest.mark.asyncio
    async def test_list_prompts_and_resources(self, session: MagicMock) -> None:
        client = SessionMCPClient(session, "s")

        prompts = await client.list_prompts()
        resources = await client.list_resources()

        assert isinstance(prompts[0], MCPPrompt)
        assert prompts[0].arguments is not None and prompts[0].arguments[0].required is True
        assert isinstance(resources[0], MCPResource)
        assert resources[0].uri == "file:///a.txt"

    @pytest.mark.asyncio
    async def test_call_tool_passes_timeout(self, session: MagicMock) -> None:
        result = await SessionMCPClient(session, "s", call_timeout=12.0).call_tool("search", {"q": "x"})

        session.call_tool.assert_awaited_once_with("search", {"q": "x"}, read_timeout_seconds=timedelta(seconds=12.0))
        assert isinstance(result, MCPResult)
        assert result.content == [{"type": "text", "text": "found"}]
        assert result.isError is False

    @pytest.mark.asyncio
    async def test_call_tool_error_result(self, session: MagicMock) -> None:
        session.call_tool.return_value = types.CallToolResult(
            content=[types.TextContent(type="text", text="bad input")], isError=True
        )

        result = await SessionMCPClient(session, "s").call_tool("search", {})

        assert result.isError is True
        assert result.error_text() == "bad input"

    @pytest.mark.asyncio
    async def test_get_prompt_and_read_resource(self, session: MagicMock) -> None:
        client = SessionMCPClient(session, "s")

        prompt = await client.get_prompt("greet", {"who": "ada"})
        contents = await client.read_resource("file:///a.txt")

        session.get_prompt.assert_awaited_once_with("greet", {"who": "ada"})
        assert prompt["messages"][0]["content"]["text"] == "hi ada"
        assert contents[0]["uri"] == "file:///a.txt"
        assert contents[0]["text"] == "alpha"
