"""Tests for the MCP connection registry."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeMCPClient, FakeTransport, TransportFactory, make_config

from toolstream.core.exceptions import ConfigError, NotConnectedError, ServerConnectionError, ToolInvocationError
from toolstream.core.tool_names import qualify_tool_name, split_qualified_name
from toolstream.integrations.mcp_registry import ConnectionRegistry
from toolstream.models.mcp_models import MCPResult


class TestConnect:
    """Tests for connect/disconnect lifecycle."""

    @pytest.mark.asyncio
    async def test_connect_registers_server(
        self, registry: ConnectionRegistry, transport_factory: TransportFactory
    ) -> None:
        await registry.connect("s1", make_config("one"))

        assert registry.is_connected("s1")
        assert registry.list_connections() == ["s1"]
        assert transport_factory.created[0].connect_count == 1

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(
        self, registry: ConnectionRegistry, transport_factory: TransportFactory
    ) -> None:
        await registry.connect("s1", make_config())
        await registry.connect("s1", make_config())

        assert len(transport_factory.created) == 1

    @pytest.mark.asyncio
    async def test_concurrent_connects_create_one_transport(self, fake_client: FakeMCPClient) -> None:
        factory = TransportFactory(lambda config: FakeTransport(fake_client, connect_delay=0.01))
        registry = ConnectionRegistry(transport_factory=factory)

        await asyncio.gather(*(registry.connect("s1", make_config()) for _ in range(5)))

        assert len(factory.created) == 1
        assert registry.list_connections() == ["s1"]

    @pytest.mark.asyncio
    async def test_handshake_failure_leaves_registry_unchanged(self, fake_client: FakeMCPClient) -> None:
        factory = TransportFactory(lambda config: FakeTransport(fake_client, fail_connect=True))
        registry = ConnectionRegistry(transport_factory=factory)

        with pytest.raises(ServerConnectionError) as exc_info:
            await registry.connect("s1", make_config())

        assert "handshake refused" in exc_info.value.message
        assert not registry.is_connected("s1")
        assert factory.created[0].disconnect_count == 1

    @pytest.mark.asyncio
    async def test_config_error_propagates(self) -> None:
        async def factory(config: object) -> FakeTransport:
            raise ConfigError("'command' is required for stdio transport", field="command")

        registry = ConnectionRegistry(transport_factory=factory)  # type: ignore[arg-type]

        with pytest.raises(ConfigError):
            await registry.connect("s1", make_config())
        assert registry.list_connections() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("server_id", ["bad__id", "s1_", "_", "__s1", ""])
    async def test_rejects_ids_that_break_qualified_names(
        self, registry: ConnectionRegistry, transport_factory: TransportFactory, server_id: str
    ) -> None:
        with pytest.raises(ConfigError) as exc_info:
            await registry.connect(server_id, make_config())

        assert exc_info.value.details["field"] == "serverId"
        assert transport_factory.created == []

    @pytest.mark.asyncio
    async def test_leading_underscore_routes_back(self, registry: ConnectionRegistry) -> None:
        await registry.connect("_s1", make_config())

        (descriptor, *_) = await registry.get_all_tools()
        server_id, tool_name = split_qualified_name(qualify_tool_name(descriptor.server_id, descriptor.name))

        assert server_id == "_s1"
        assert tool_name == descriptor.name

    @pytest.mark.asyncio
    async def test_disconnect_absent_is_noop(self, registry: ConnectionRegistry) -> None:
        await registry.disconnect("missing")

        assert registry.list_connections() == []

    @pytest.mark.asyncio
    async def test_locks_are_released_after_use(self, registry: ConnectionRegistry) -> None:
        await registry.disconnect("ghost")
        await registry.connect("s1", make_config())
        await registry.disconnect("s1")

        assert registry._locks == {}
        assert registry._lock_users == {}

    @pytest.mark.asyncio
    async def test_disconnect_removes_and_closes(
        self, registry: ConnectionRegistry, transport_factory: TransportFactory
    ) -> None:
        await registry.connect("s1", make_config())
        await registry.disconnect("s1")

        assert not registry.is_connected("s1")
        assert transport_factory.created[0].disconnect_count == 1

    @pytest.mark.asyncio
    async def test_disconnect_failure_still_removes(self, fake_client: FakeMCPClient) -> None:
        registry = ConnectionRegistry(
            transport_factory=TransportFactory(lambda config: FakeTransport(fake_client, fail_disconnect=True))
        )
        await registry.connect("s1", make_config())

        with pytest.raises(ServerConnectionError):
            await registry.disconnect("s1")
        assert not registry.is_connected("s1")

    @pytest.mark.asyncio
    async def test_disconnect_all_collects_errors(self, fake_client: FakeMCPClient) -> None:
        registry = ConnectionRegistry(
            transport_factory=TransportFactory(
                lambda config: FakeTransport(fake_client, fail_disconnect=config.name == "bad")
            )
        )
        await registry.connect("good", make_config("good"))
        await registry.connect("bad", make_config("bad"))

        errors = await registry.disconnect_all()

        assert list(errors) == ["bad"]
        assert isinstance(errors["bad"], ServerConnectionError)
        assert registry.list_connections() == []

    @pytest.mark.asyncio
    async def test_connection_info(self, registry: ConnectionRegistry) -> None:
        await registry.connect("s1", make_config("files", transport_type="sse"))

        (info,) = registry.get_connection_info()

        assert info["server_id"] == "s1"
        assert info["name"] == "files"
        assert info["transport_type"] == "sse"
        assert info["connected_at"] > 0
        assert info["status"] == "connected"
        assert "error" not in info

    @pytest.mark.asyncio
    async def test_dead_transport_is_reported(
        self, registry: ConnectionRegistry, transport_factory: TransportFactory
    ) -> None:
        await registry.connect("s1", make_config())
        transport_factory.created[0].failure = RuntimeError("stream reset")

        (info,) = registry.get_connection_info()

        assert info["status"] == "failed"
        assert info["error"] == "stream reset"
        assert not registry.is_connected("s1")
        assert registry.list_connections() == []
        with pytest.raises(ServerConnectionError, match="connection lost: stream reset"):
            await registry.list_tools("s1")
        assert await registry.get_all_tools() == []

    @pytest.mark.asyncio
    async def test_connect_replaces_dead_transport(
        self, registry: ConnectionRegistry, transport_factory: TransportFactory
    ) -> None:
        await registry.connect("s1", make_config())
        dead = transport_factory.created[0]
        dead.failure = RuntimeError("stream reset")

        await registry.connect("s1", make_config())

        assert len(transport_factory.created) == 2
        assert dead.disconnect_count == 1
        assert registry.is_connected("s1")
        assert registry.get_connection_info()[0]["status"] == "connected"


class TestCapabilities:
    """Tests for capability queries through the registry."""

    @pytest.mark.asyncio
    async def test_operations_require_connection(self, registry: ConnectionRegistry) -> None:
        with pytest.raises(NotConnectedError):
            await registry.list_tools("missing")
        with pytest.raises(NotConnectedError):
            await registry.call_tool("missing", "search", {})
        with pytest.raises(NotConnectedError):
            await registry.read_resource("missing", "file:///x")

    @pytest.mark.asyncio
    async def test_listings(self, registry: ConnectionRegistry) -> None:
        await registry.connect("s1", make_config())

        tools = await registry.list_tools("s1")
        prompts = await registry.list_prompts("s1")
        resources = await registry.list_resources("s1")

        assert sorted(t.name for t in tools) == ["echo", "search"]
        assert prompts[0].name == "summarize"
        assert resources[0].uri == "file:///notes.txt"

    @pytest.mark.asyncio
    async def test_get_prompt_and_read_resource(self, registry: ConnectionRegistry) -> None:
        await registry.connect("s1", make_config())

        prompt = await registry.get_prompt("s1", "summarize", {"text": "hi"})
        contents = await registry.read_resource("s1", "file:///notes.txt")

        assert prompt["messages"][0]["role"] == "user"
        assert contents == [{"uri": "file:///notes.txt", "text": "hello"}]

    @pytest.mark.asyncio
    async def test_listing_failure_is_connection_error(
        self, registry: ConnectionRegistry, fake_client: FakeMCPClient
    ) -> None:
        await registry.connect("s1", make_config())
        fake_client.fail_listing = True

        with pytest.raises(ServerConnectionError):
            await registry.list_tools("s1")

    @pytest.mark.asyncio
    async def test_call_tool_returns_content(self, registry: ConnectionRegistry, fake_client: FakeMCPClient) -> None:
        await registry.connect("s1", make_config())

        result = await registry.call_tool("s1", "search", {"q": "cats"})

        assert result == [{"type": "text", "text": "results for cats"}]
        assert fake_client.calls == [("search", {"q": "cats"})]

    @pytest.mark.asyncio
    async def test_call_tool_returns_structured_content(self, fake_client: FakeMCPClient) -> None:
        fake_client.tools["stats"] = lambda args: MCPResult(structuredContent={"count": 2})
        registry = ConnectionRegistry(transport_factory=TransportFactory(lambda c: FakeTransport(fake_client)))
        await registry.connect("s1", make_config())

        assert await registry.call_tool("s1", "stats", {}) == {"count": 2}

    @pytest.mark.asyncio
    async def test_call_tool_error_result(self, registry: ConnectionRegistry) -> None:
        await registry.connect("s1", make_config())

        with pytest.raises(ToolInvocationError) as exc_info:
            await registry.call_tool("s1", "nope", {})

        assert exc_info.value.message == "Unknown tool: nope"

    @pytest.mark.asyncio
    async def test_call_tool_exception(self, fake_client: FakeMCPClient) -> None:
        def explode(args: dict[str, object]) -> None:
            raise RuntimeError("tool crashed")

        fake_client.tools["explode"] = explode
        registry = ConnectionRegistry(transport_factory=TransportFactory(lambda c: FakeTransport(fake_client)))
        await registry.connect("s1", make_config())

        with pytest.raises(ToolInvocationError, match="tool crashed"):
            await registry.call_tool("s1", "explode", {})

    @pytest.mark.asyncio
    async def test_get_all_tools_skips_failing_servers(self) -> None:
        healthy = FakeMCPClient(tools={"search": lambda a: "ok"})
        broken = FakeMCPClient(tools={"read": lambda a: "ok"})
        broken.fail_listing = True
        clients = {"healthy": healthy, "broken": broken}
        registry = ConnectionRegistry(
            transport_factory=TransportFactory(lambda config: FakeTransport(clients[config.name]))
        )
        await registry.connect("a", make_config("healthy"))
        await registry.connect("b", make_config("broken"))

        descriptors = await registry.get_all_tools()

        assert [(d.server_id, d.name) for d in descriptors] == [("a", "search")]
