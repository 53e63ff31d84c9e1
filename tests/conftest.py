"""Shared test fixtures for the toolstream test suite.

Provides scripted fakes for MCP transports/clients and the model provider so
the registry, agentic loop and API can be exercised without network access.
"""

from __future__ import annotations

import asyncio
import os

from collections.abc import AsyncIterator, Callable, Generator
from typing import Any

# Keep tests from writing logs/errors.jsonl; must run before toolstream imports
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("APP_ENV", "test")

import pytest

from fastapi.testclient import TestClient

from toolstream.api.main import create_app
from toolstream.core.constants import Settings, clear_settings_cache
from toolstream.integrations.mcp_registry import ConnectionRegistry
from toolstream.integrations.mcp_transport import MCPTransport
from toolstream.models.chat_models import FunctionCallRequest, HistoryTurn, ModelFragment, ToolDeclaration
from toolstream.models.mcp_models import MCPPrompt, MCPResource, MCPResult, MCPServerConfig, MCPTool

# ============================================================================
# Test Isolation: Settings Cache
# ============================================================================


@pytest.fixture(autouse=True)
def clear_settings() -> Generator[None, None, None]:
    """Ensure each test sees freshly loaded settings."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(app_env="test", openai_api_key=None, max_tool_rounds=3, log_to_file=False)


# ============================================================================
# MCP Fakes
# ============================================================================


class FakeMCPClient:
    """In-memory MCP client with per-tool handlers."""

    def __init__(self, tools: dict[str, Callable[[dict[str, Any]], Any]] | None = None):
        self.tools = tools or {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_listing = False

    async def list_tools(self) -> list[MCPTool]:
        if self.fail_listing:
            raise RuntimeError("listing unavailable")
        return [MCPTool(name=name, description=f"{name} tool") for name in self.tools]

    async def list_prompts(self) -> list[MCPPrompt]:
        return [MCPPrompt(name="summarize", description="Summarize text")]

    async def list_resources(self) -> list[MCPResource]:
        return [MCPResource(uri="file:///notes.txt", name="notes", mimeType="text/plain")]

    async def get_prompt(self, name: str, arguments: dict[str, str] | None = None) -> dict[str, Any]:
        return {"messages": [{"role": "user", "content": {"type": "text", "text": f"{name}:{arguments}"}}]}

    async def read_resource(self, uri: str) -> list[dict[str, Any]]:
        return [{"uri": uri, "text": "hello"}]

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> MCPResult:
        self.calls.append((tool_name, arguments))
        handler = self.tools.get(tool_name)
        if handler is None:
            return MCPResult(content=[{"type": "text", "text": f"Unknown tool: {tool_name}"}], isError=True)
        value = handler(arguments)
        if asyncio.iscoroutine(value):
            value = await value
        if isinstance(value, MCPResult):
            return value
        return MCPResult(content=[{"type": "text", "text": str(value)}])


class FakeTransport(MCPTransport):
    """Transport handing out a FakeMCPClient; can be told to fail or stall."""

    def __init__(
        self,
        client: FakeMCPClient,
        server_name: str = "fake",
        fail_connect: bool = False,
        fail_disconnect: bool = False,
        connect_delay: float = 0.0,
    ):
        self.client = client
        self.server_name = server_name
        self.fail_connect = fail_connect
        self.fail_disconnect = fail_disconnect
        self.connect_delay = connect_delay
        self.connect_count = 0
        self.disconnect_count = 0
        self.failure: Exception | None = None

    @property
    def error(self) -> Exception | None:
        return self.failure

    async def connect(self) -> FakeMCPClient:
        self.connect_count += 1
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.fail_connect:
            raise RuntimeError("handshake refused")
        return self.client

    async def disconnect(self) -> None:
        self.disconnect_count += 1
        if self.fail_disconnect:
            raise RuntimeError("close failed")


class TransportFactory:
    """Async transport factory recording every transport it creates."""

    def __init__(self, make: Callable[[MCPServerConfig], FakeTransport]):
        self.make = make
        self.created: list[FakeTransport] = []

    async def __call__(self, config: MCPServerConfig) -> FakeTransport:
        transport = self.make(config)
        self.created.append(transport)
        return transport


def make_config(name: str = "test", transport_type: str = "stdio", **kwargs: Any) -> MCPServerConfig:
    if transport_type == "stdio":
        kwargs.setdefault("command", "echo")
    else:
        kwargs.setdefault("url", "http://localhost:9000/mcp")
    return MCPServerConfig(name=name, transport_type=transport_type, **kwargs)  # type: ignore[arg-type]


@pytest.fixture
def fake_client() -> FakeMCPClient:
    return FakeMCPClient(
        tools={
            "search": lambda args: f"results for {args.get('q', '')}",
            "echo": lambda args: args,
        }
    )


@pytest.fixture
def transport_factory(fake_client: FakeMCPClient) -> TransportFactory:
    return TransportFactory(lambda config: FakeTransport(fake_client, server_name=config.name))


@pytest.fixture
def registry(transport_factory: TransportFactory) -> ConnectionRegistry:
    return ConnectionRegistry(transport_factory=transport_factory)


# ============================================================================
# Model Provider Fake
# ============================================================================


class ScriptedProvider:
    """ModelProvider replaying one scripted fragment list per round.

    A script entry that is an Exception instance is raised at that point of
    the stream. When the script runs out, the last round is repeated.
    """

    def __init__(self, rounds: list[list[ModelFragment | Exception]]):
        self.rounds = rounds
        self.requests: list[tuple[str, list[HistoryTurn], list[ToolDeclaration]]] = []
        self.closed = 0

    async def stream(
        self,
        prompt: str,
        history: list[HistoryTurn],
        tools: list[ToolDeclaration],
    ) -> AsyncIterator[ModelFragment]:
        index = min(len(self.requests), len(self.rounds) - 1)
        self.requests.append((prompt, list(history), list(tools)))
        try:
            for item in self.rounds[index]:
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.closed += 1


def text(value: str) -> ModelFragment:
    return ModelFragment(text=value)


def calls(*requests: tuple[str, dict[str, Any]]) -> ModelFragment:
    return ModelFragment(function_calls=[FunctionCallRequest(name=n, arguments=a) for n, a in requests])


# ============================================================================
# API App
# ============================================================================


@pytest.fixture
def scripted_provider() -> ScriptedProvider:
    return ScriptedProvider(
        [
            [text("Looking "), calls(("s1__search", {"q": "cats"}))],
            [text("Found cats.")],
        ]
    )


@pytest.fixture
def app_client(
    test_settings: Settings,
    registry: ConnectionRegistry,
    scripted_provider: ScriptedProvider,
) -> Generator[TestClient, None, None]:
    """TestClient running the full app lifespan over fake MCP and model services."""
    app = create_app(settings=test_settings, registry=registry, provider=scripted_provider)
    with TestClient(app) as client:
        yield client
