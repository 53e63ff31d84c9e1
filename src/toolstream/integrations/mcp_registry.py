"""
MCP Connection Registry - owns every live MCP server connection.

Maps server ids to ServerConnection records and mediates all capability calls.
Writes (connect/disconnect) are serialized per server id; reads work on
snapshots and never block.
"""

from __future__ import annotations

import asyncio
import contextlib
import time

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from toolstream.core.constants import QUALIFIED_NAME_SEPARATOR
from toolstream.core.exceptions import ConfigError, NotConnectedError, ServerConnectionError, ToolInvocationError
from toolstream.core.tool_names import is_valid_server_id
from toolstream.models.mcp_models import MCPPrompt, MCPResource, MCPServerConfig, MCPTool, ToolDescriptor
from toolstream.utils.logger import logger

from .mcp_transport import MCPTransport, create_transport

TransportFactory = Callable[[MCPServerConfig], Awaitable[MCPTransport]]


@dataclass
class ServerConnection:
    """A live connection owned by the registry."""

    server_id: str
    config: MCPServerConfig
    transport: MCPTransport
    client: Any
    connected_at: float = field(default_factory=time.time)

    @property
    def alive(self) -> bool:
        return self.transport.error is None

    def info(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "server_id": self.server_id,
            "name": self.config.name,
            "transport_type": self.config.transport_type,
            "connected_at": self.connected_at,
            "status": "connected" if self.alive else "failed",
        }
        if not self.alive:
            info["error"] = str(self.transport.error)
        return info


class ConnectionRegistry:
    """Registry of live MCP server connections keyed by server id."""

    def __init__(self, transport_factory: TransportFactory = create_transport):
        self._transport_factory = transport_factory
        self._connections: dict[str, ServerConnection] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def _locked(self, server_id: str) -> AsyncIterator[None]:
        """Serialize writes for one server id; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(server_id, asyncio.Lock())
        self._lock_users[server_id] = self._lock_users.get(server_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[server_id] -= 1
            if not self._lock_users[server_id]:
                del self._lock_users[server_id]
                del self._locks[server_id]

    def _require(self, server_id: str) -> ServerConnection:
        connection = self._connections.get(server_id)
        if connection is None:
            raise NotConnectedError(server_id)
        if not connection.alive:
            error = connection.transport.error
            raise ServerConnectionError(server_id, f"connection lost: {error}", cause=error)
        return connection

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, server_id: str, config: MCPServerConfig) -> None:
        """Establish a connection; no-op if a live one already exists for server_id.

        Raises:
            ConfigError: Transport-specific fields missing or invalid.
            ServerConnectionError: Handshake failed. No connection is registered for server_id.
        """
        if not is_valid_server_id(server_id):
            raise ConfigError(
                f"Invalid server id '{server_id}': must be non-empty, not contain '{QUALIFIED_NAME_SEPARATOR}'"
                " and not end with '_'",
                field="serverId",
            )

        async with self._locked(server_id):
            existing = self._connections.get(server_id)
            if existing is not None and existing.alive:
                logger.debug(f"MCP server '{server_id}' already connected")
                return
            if existing is not None:
                # Replace a connection whose transport died
                del self._connections[server_id]
                with contextlib.suppress(Exception):
                    await existing.transport.disconnect()
                logger.info(f"Reconnecting MCP server '{server_id}' after: {existing.transport.error}")

            transport = await self._transport_factory(config)
            try:
                client = await transport.connect()
            except Exception as e:
                with contextlib.suppress(Exception):
                    await transport.disconnect()
                logger.error(f"Failed to connect MCP server '{server_id}': {e}")
                raise ServerConnectionError(server_id, f"connection failed: {e}", cause=e) from e

            self._connections[server_id] = ServerConnection(
                server_id=server_id,
                config=config,
                transport=transport,
                client=client,
            )
            logger.info(f"MCP server '{server_id}' connected ({config.transport_type})")

    async def disconnect(self, server_id: str) -> None:
        """Remove and close a connection; no-op if absent.

        Raises:
            ServerConnectionError: Closing failed (the entry is still removed).
        """
        async with self._locked(server_id):
            connection = self._connections.pop(server_id, None)
            if connection is None:
                return
            try:
                await connection.transport.disconnect()
            except Exception as e:
                logger.warning(f"Error disconnecting MCP server '{server_id}': {e}")
                raise ServerConnectionError(server_id, f"close failed: {e}", cause=e) from e
            logger.info(f"MCP server '{server_id}' disconnected")

    async def disconnect_all(self) -> dict[str, Exception]:
        """Disconnect every server concurrently.

        Returns:
            Mapping of server id to the error raised while closing it
        """
        server_ids = list(self._connections)
        results = await asyncio.gather(*(self.disconnect(sid) for sid in server_ids), return_exceptions=True)
        errors: dict[str, Exception] = {}
        for sid, result in zip(server_ids, results, strict=True):
            if isinstance(result, Exception):
                errors[sid] = result
        if errors:
            logger.warning(f"disconnect_all finished with {len(errors)} error(s): {sorted(errors)}")
        return errors

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def is_connected(self, server_id: str) -> bool:
        connection = self._connections.get(server_id)
        return connection is not None and connection.alive

    def list_connections(self) -> list[str]:
        """Ids of connections whose transport is still alive."""
        return [sid for sid, c in list(self._connections.items()) if c.alive]

    def get_connection_info(self) -> list[dict[str, Any]]:
        """Status snapshot of every registered connection.

        A transport that died after its handshake stays listed with status
        "failed" and its error until it is disconnected.
        """
        return [c.info() for c in list(self._connections.values())]

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def _query(self, server_id: str, operation: str, *args: Any) -> Any:
        connection = self._require(server_id)
        try:
            return await getattr(connection.client, operation)(*args)
        except Exception as e:
            raise ServerConnectionError(server_id, f"{operation} failed: {e}", cause=e) from e

    async def list_tools(self, server_id: str) -> list[MCPTool]:
        tools: list[MCPTool] = await self._query(server_id, "list_tools")
        return tools

    async def list_prompts(self, server_id: str) -> list[MCPPrompt]:
        prompts: list[MCPPrompt] = await self._query(server_id, "list_prompts")
        return prompts

    async def list_resources(self, server_id: str) -> list[MCPResource]:
        resources: list[MCPResource] = await self._query(server_id, "list_resources")
        return resources

    async def get_prompt(self, server_id: str, name: str, arguments: dict[str, str] | None = None) -> dict[str, Any]:
        prompt: dict[str, Any] = await self._query(server_id, "get_prompt", name, arguments)
        return prompt

    async def read_resource(self, server_id: str, uri: str) -> list[dict[str, Any]]:
        contents: list[dict[str, Any]] = await self._query(server_id, "read_resource", uri)
        return contents

    async def call_tool(self, server_id: str, tool_name: str, arguments: dict[str, Any]) -> Any:
        """Invoke a tool and return its structured content or content blocks.

        Raises:
            NotConnectedError: No connection for server_id.
            ServerConnectionError: The connection's transport has died.
            ToolInvocationError: The call failed or the tool reported an error.
        """
        connection = self._require(server_id)
        try:
            result = await connection.client.call_tool(tool_name, arguments)
        except Exception as e:
            raise ToolInvocationError(tool_name, f"Tool '{tool_name}' on '{server_id}' failed: {e}", cause=e) from e

        if result.isError:
            raise ToolInvocationError(tool_name, result.error_text())
        return result.payload()

    async def get_all_tools(self) -> list[ToolDescriptor]:
        """Tools of every live connection; servers that fail to list are skipped."""
        server_ids = self.list_connections()
        results = await asyncio.gather(*(self.list_tools(sid) for sid in server_ids), return_exceptions=True)

        descriptors: list[ToolDescriptor] = []
        for sid, result in zip(server_ids, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(f"Skipping tools from '{sid}': {result}")
                continue
            descriptors.extend(
                ToolDescriptor(server_id=sid, name=t.name, description=t.description, input_schema=t.inputSchema)
                for t in result
            )
        return descriptors
