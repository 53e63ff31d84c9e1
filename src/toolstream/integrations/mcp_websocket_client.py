"""WebSocket MCP Client for containerized MCP servers.

This client connects to MCP servers via WebSocket, performs the MCP handshake,
and exposes the same capability surface as the SDK-backed session client.
"""

import asyncio
import contextlib
import json

from typing import Any

import websockets

from websockets.asyncio.client import ClientConnection

from toolstream.core.constants import (
    MCP_CALL_TOOL_TIMEOUT,
    MCP_CLIENT_NAME,
    MCP_CLIENT_VERSION,
    MCP_CONNECT_TIMEOUT,
    MCP_LIST_TOOLS_TIMEOUT,
    MCP_PROTOCOL_VERSION,
)
from toolstream.models.mcp_models import MCPPrompt, MCPResource, MCPResult, MCPTool
from toolstream.utils.logger import logger


class WebSocketMCPClient:
    """MCP client using WebSocket transport.

    Lightweight JSON-RPC wrapper around websockets. A background listener loop
    dispatches responses to pending requests, so concurrent calls share one
    connection.
    """

    def __init__(
        self,
        ws_url: str,
        server_name: str,
        connect_timeout: float = MCP_CONNECT_TIMEOUT,
        call_timeout: float = MCP_CALL_TOOL_TIMEOUT,
    ):
        """Initialize WebSocket MCP client.

        Args:
            ws_url: WebSocket URL (e.g., "ws://localhost:8081/ws")
            server_name: Human-readable server name for logging
            connect_timeout: Handshake timeout in seconds
            call_timeout: tools/call timeout in seconds
        """
        self.ws_url = ws_url
        self.server_name = server_name
        self.connect_timeout = connect_timeout
        self.call_timeout = call_timeout
        self._ws: ClientConnection | None = None
        self._msg_id = 0
        self._initialized = False

        # Multiplexing state
        self._pending_requests: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._listen_task: asyncio.Task[None] | None = None
        self._write_lock = asyncio.Lock()
        self.connection_error: Exception | None = None

    async def __aenter__(self) -> "WebSocketMCPClient":
        """Connect and initialize MCP server."""
        try:
            self._ws = await websockets.connect(self.ws_url, open_timeout=self.connect_timeout)
            logger.info(f"{self.server_name}: WebSocket connected")

            self._listen_task = asyncio.create_task(self._listen_loop())

            await self._send_request(
                "initialize",
                {
                    "protocolVersion": MCP_PROTOCOL_VERSION,
                    "capabilities": {},
                    "clientInfo": {"name": MCP_CLIENT_NAME, "version": MCP_CLIENT_VERSION},
                },
                timeout=self.connect_timeout,
            )
            logger.info(f"{self.server_name}: Initialized successfully")

            init_notif = {"jsonrpc": "2.0", "method": "notifications/initialized"}
            await self._ws.send(json.dumps(init_notif))

            self._initialized = True
            return self

        except Exception as e:
            logger.error(f"{self.server_name}: Connection failed: {e}")
            await self._cleanup()
            raise

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Close WebSocket connection."""
        await self._cleanup()

    async def close(self) -> None:
        await self._cleanup()

    async def _cleanup(self) -> None:
        """Cleanup resources and pending requests."""
        self._initialized = False

        if self._listen_task:
            self._listen_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listen_task
            self._listen_task = None

        for future in self._pending_requests.values():
            if not future.done():
                future.cancel()
        self._pending_requests.clear()

        if self._ws:
            ws, self._ws = self._ws, None
            await ws.close()
            logger.info(f"{self.server_name}: WebSocket closed")

    async def _listen_loop(self) -> None:
        """Background loop to receive messages and dispatch to pending requests."""
        if not self._ws:
            return

        try:
            async for message in self._ws:
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.warning(f"{self.server_name}: Received invalid JSON")
                    continue

                if "id" in data:
                    msg_id = data["id"]
                    future = self._pending_requests.pop(msg_id, None)
                    if future is None:
                        # Server-initiated requests are ignored; we only act as a client
                        logger.debug(f"{self.server_name}: Received message with unknown ID: {msg_id}")
                    elif not future.done():
                        if "error" in data:
                            future.set_exception(RuntimeError(f"MCP error: {data['error']}"))
                        else:
                            future.set_result(data)
                else:
                    logger.debug(f"{self.server_name}: Received notification: {data.get('method')}")

            if self._initialized:
                self.connection_error = RuntimeError("Connection closed by server")

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"{self.server_name}: Listen loop error: {e}")
            error = RuntimeError(f"Connection lost: {e}")
            self.connection_error = error
            for future in self._pending_requests.values():
                if not future.done():
                    future.set_exception(error)
            self._pending_requests.clear()

    def _next_id(self) -> int:
        self._msg_id += 1
        return self._msg_id

    async def _send_request(self, method: str, params: dict[str, Any], timeout: float) -> dict[str, Any]:
        """Send a JSON-RPC request and wait for the response."""
        if not self._ws:
            raise RuntimeError("WebSocket not connected")

        async with self._write_lock:
            msg_id = self._next_id()
            future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
            self._pending_requests[msg_id] = future

            req = {
                "jsonrpc": "2.0",
                "id": msg_id,
                "method": method,
                "params": params,
            }
            await self._ws.send(json.dumps(req))

        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            self._pending_requests.pop(msg_id, None)
            raise RuntimeError(f"Request {method} timed out after {timeout}s") from None
        except Exception:
            self._pending_requests.pop(msg_id, None)
            raise

    async def _request_result(self, method: str, params: dict[str, Any], timeout: float) -> dict[str, Any]:
        if not self._initialized:
            raise RuntimeError("Client not initialized")
        response = await self._send_request(method, params, timeout=timeout)
        result: dict[str, Any] = response.get("result", {})
        return result

    async def list_tools(self) -> list[MCPTool]:
        result = await self._request_result("tools/list", {}, MCP_LIST_TOOLS_TIMEOUT)
        return [MCPTool(**t) for t in result.get("tools", [])]

    async def list_prompts(self) -> list[MCPPrompt]:
        result = await self._request_result("prompts/list", {}, MCP_LIST_TOOLS_TIMEOUT)
        return [MCPPrompt(**p) for p in result.get("prompts", [])]

    async def list_resources(self) -> list[MCPResource]:
        result = await self._request_result("resources/list", {}, MCP_LIST_TOOLS_TIMEOUT)
        return [MCPResource(**r) for r in result.get("resources", [])]

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> MCPResult:
        result = await self._request_result(
            "tools/call", {"name": tool_name, "arguments": arguments}, self.call_timeout
        )
        return MCPResult(**result)

    async def get_prompt(self, prompt_name: str, arguments: dict[str, str] | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"name": prompt_name}
        if arguments:
            params["arguments"] = arguments
        return await self._request_result("prompts/get", params, MCP_LIST_TOOLS_TIMEOUT)

    async def read_resource(self, uri: str) -> list[dict[str, Any]]:
        result = await self._request_result("resources/read", {"uri": uri}, MCP_LIST_TOOLS_TIMEOUT)
        contents: list[dict[str, Any]] = result.get("contents", [])
        return contents
