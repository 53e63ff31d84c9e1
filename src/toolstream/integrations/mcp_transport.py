"""
MCP Transport Abstraction Layer.

Supports four transports for MCP servers:
- stdio: local subprocess (mcp SDK)
- sse: long-lived server-sent events stream (mcp SDK)
- http: streamable HTTP request/response (mcp SDK)
- websocket: containerized servers (WebSocketMCPClient)
"""

from __future__ import annotations

import asyncio
import contextlib
import os

from abc import ABC, abstractmethod
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client

from toolstream.core.constants import MCP_CALL_TOOL_TIMEOUT, MCP_CONNECT_TIMEOUT
from toolstream.core.exceptions import ConfigError
from toolstream.models.mcp_models import MCPServerConfig
from toolstream.utils.logger import logger

from .mcp_session_client import SessionMCPClient
from .mcp_websocket_client import WebSocketMCPClient


class MCPTransport(ABC):
    """Abstract base for MCP server transports."""

    server_name: str

    @abstractmethod
    async def connect(self) -> Any:
        """Connect to MCP server and return client instance.

        Returns:
            MCP client exposing list_tools/call_tool/list_prompts/...
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from MCP server and cleanup resources."""
        pass

    @property
    def error(self) -> Exception | None:
        """Why the connection died after the handshake, or None while it is alive."""
        return None


class SessionTransport(MCPTransport):
    """Base for transports backed by an ``mcp.ClientSession``.

    The SDK's stream contexts are anyio task groups and must be exited by the
    task that entered them. Each connection therefore runs inside its own owner
    task; connect() waits for the handshake, disconnect() signals the owner to
    unwind. Both may be called from different request tasks.
    """

    def __init__(
        self,
        server_name: str,
        connect_timeout: float = MCP_CONNECT_TIMEOUT,
        call_timeout: float = MCP_CALL_TOOL_TIMEOUT,
    ):
        self.server_name = server_name
        self.connect_timeout = connect_timeout
        self.call_timeout = call_timeout
        self._client: SessionMCPClient | None = None
        self._task: asyncio.Task[None] | None = None
        self._ready: asyncio.Future[SessionMCPClient] | None = None
        self._stop = asyncio.Event()
        self._close_error: Exception | None = None
        self._failure: Exception | None = None

    @abstractmethod
    def _open_streams(self) -> contextlib.AbstractAsyncContextManager[Any]:
        """Return the SDK context manager yielding (read, write, ...) streams."""

    @property
    def transport_label(self) -> str:
        return type(self).__name__.removesuffix("Transport").lower()

    @property
    def error(self) -> Exception | None:
        return self._failure

    async def connect(self) -> SessionMCPClient:
        self._ready = asyncio.get_running_loop().create_future()
        self._stop = asyncio.Event()
        self._close_error = None
        self._failure = None
        self._task = asyncio.create_task(self._run(), name=f"mcp-{self.server_name}")

        try:
            self._client = await asyncio.wait_for(asyncio.shield(self._ready), timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            await self._shutdown()
            raise RuntimeError(f"Handshake timed out after {self.connect_timeout}s") from None
        except BaseException:
            await self._shutdown()
            raise

        logger.info(f"{self.server_name} connected via {self.transport_label}")
        return self._client

    async def _run(self) -> None:
        assert self._ready is not None
        ready = self._ready
        try:
            async with AsyncExitStack() as stack:
                streams = await stack.enter_async_context(self._open_streams())
                read_stream, write_stream = streams[0], streams[1]
                session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
                await session.initialize()

                if not ready.done():
                    ready.set_result(SessionMCPClient(session, self.server_name, call_timeout=self.call_timeout))
                await self._stop.wait()
        except Exception as e:
            if not ready.done():
                ready.set_exception(e)
            elif self._stop.is_set():
                self._close_error = e
                logger.warning(f"{self.server_name} transport closed with error: {e}")
            else:
                self._failure = e
                logger.error(f"{self.server_name} transport failed: {e}")
        finally:
            if not ready.done():
                ready.cancel()

    async def _shutdown(self) -> None:
        self._stop.set()
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            try:
                await asyncio.wait_for(task, timeout=self.connect_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"{self.server_name} did not shut down in time; cancelled")

    async def disconnect(self) -> None:
        """Stop the owner task; re-raise any error raised while closing."""
        self._client = None
        await self._shutdown()
        if self._close_error is not None:
            error, self._close_error = self._close_error, None
            raise error
        logger.info(f"{self.server_name} disconnected")


class StdioTransport(SessionTransport):
    """Local subprocess speaking MCP over stdin/stdout."""

    def __init__(
        self,
        command: str,
        args: list[str] | None,
        env: dict[str, str] | None,
        server_name: str,
        **kwargs: Any,
    ):
        super().__init__(server_name, **kwargs)
        self.command = command
        self.args = args or []
        self.env = env

    def _open_streams(self) -> contextlib.AbstractAsyncContextManager[Any]:
        # Explicit env replaces the SDK's inherited defaults, so layer it over ours
        env = {**os.environ, **self.env} if self.env else None
        params = StdioServerParameters(command=self.command, args=self.args, env=env)
        return stdio_client(params)


class SSETransport(SessionTransport):
    """Server-sent events transport."""

    def __init__(self, url: str, server_name: str, **kwargs: Any):
        super().__init__(server_name, **kwargs)
        self.url = url

    def _open_streams(self) -> contextlib.AbstractAsyncContextManager[Any]:
        return sse_client(self.url, timeout=self.connect_timeout)


class StreamableHTTPTransport(SessionTransport):
    """Streamable HTTP transport."""

    def __init__(self, url: str, server_name: str, **kwargs: Any):
        super().__init__(server_name, **kwargs)
        self.url = url

    @property
    def transport_label(self) -> str:
        return "http"

    def _open_streams(self) -> contextlib.AbstractAsyncContextManager[Any]:
        return streamablehttp_client(self.url)


class WebSocketTransport(MCPTransport):
    """WebSocket transport for containerized MCP servers.

    Uses WebSocket for persistent bidirectional communication with Docker containers.
    """

    def __init__(
        self,
        ws_url: str,
        server_name: str,
        connect_timeout: float = MCP_CONNECT_TIMEOUT,
        call_timeout: float = MCP_CALL_TOOL_TIMEOUT,
    ):
        """Initialize WebSocket transport.

        Args:
            ws_url: WebSocket endpoint URL (e.g., "ws://localhost:8081/ws")
            server_name: Human-readable server name for logging
        """
        self.ws_url = ws_url
        self.server_name = server_name
        self.connect_timeout = connect_timeout
        self.call_timeout = call_timeout
        self._client: WebSocketMCPClient | None = None

    @property
    def error(self) -> Exception | None:
        return self._client.connection_error if self._client else None

    async def connect(self) -> WebSocketMCPClient:
        """Connect to MCP server via WebSocket."""
        client = WebSocketMCPClient(
            self.ws_url,
            self.server_name,
            connect_timeout=self.connect_timeout,
            call_timeout=self.call_timeout,
        )
        await client.__aenter__()
        self._client = client
        logger.info(f"{self.server_name} connected via WebSocket ({self.ws_url})")
        return client

    async def disconnect(self) -> None:
        """Disconnect from WebSocket MCP server."""
        if self._client:
            client, self._client = self._client, None
            await client.close()
            logger.info(f"{self.server_name} WebSocket disconnected")


def _require(value: str | None, field: str, transport_type: str) -> str:
    if not value:
        raise ConfigError(f"'{field}' is required for {transport_type} transport", field=field)
    return value


async def create_transport(
    config: MCPServerConfig,
    connect_timeout: float = MCP_CONNECT_TIMEOUT,
    call_timeout: float = MCP_CALL_TOOL_TIMEOUT,
) -> MCPTransport:
    """Factory function to create appropriate transport based on config.

    Args:
        config: Server configuration record
        connect_timeout: Handshake timeout in seconds
        call_timeout: tools/call timeout in seconds

    Returns:
        MCPTransport instance for the configured transport type

    Raises:
        ConfigError: If transport-specific fields are missing or invalid
    """
    timeouts: dict[str, Any] = {"connect_timeout": connect_timeout, "call_timeout": call_timeout}
    transport_type = config.transport_type

    if transport_type == "stdio":
        command = _require(config.command, "command", transport_type)
        return StdioTransport(command, config.args, config.env, server_name=config.name, **timeouts)

    url = _require(config.url, "url", transport_type)
    scheme = url.split("://", 1)[0].lower() if "://" in url else ""

    if transport_type == "websocket":
        if scheme not in ("ws", "wss"):
            raise ConfigError("websocket transport requires a ws:// or wss:// url", field="url")
        return WebSocketTransport(ws_url=url, server_name=config.name, **timeouts)

    if scheme not in ("http", "https"):
        raise ConfigError(f"{transport_type} transport requires an http:// or https:// url", field="url")
    if transport_type == "sse":
        return SSETransport(url, server_name=config.name, **timeouts)
    if transport_type == "http":
        return StreamableHTTPTransport(url, server_name=config.name, **timeouts)

    raise ConfigError(f"Unknown transport type: {transport_type}", field="transportType")
