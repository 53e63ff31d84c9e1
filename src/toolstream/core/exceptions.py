"""
Exception taxonomy for toolstream.

Every error carries an ErrorCode so the HTTP layer can render it with the
standard error response format. Inside the agentic loop, ToolInvocationError
is converted into a structured error result instead of propagating.
"""

from __future__ import annotations

from typing import Any

from toolstream.models.error_models import ErrorCode


class AppException(Exception):
    """Base application exception with error code support.

    Example:
        raise AppException(
            code=ErrorCode.MCP_NOT_CONNECTED,
            message="Server 'fs' is not connected",
            details={"server_id": "fs"},
        )
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        self.cause = cause
        super().__init__(message)


class ConfigError(AppException):
    """Missing or invalid transport-specific configuration."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            code=ErrorCode.MCP_CONFIG_INVALID,
            message=message,
            details={"field": field} if field else None,
        )


class ServerConnectionError(AppException):
    """MCP handshake failed or the transport died."""

    def __init__(self, server_id: str, message: str, cause: Exception | None = None):
        self.server_id = server_id
        super().__init__(
            code=ErrorCode.MCP_CONNECTION_FAILED,
            message=f"Server '{server_id}': {message}",
            details={"server_id": server_id},
            cause=cause,
        )


class NotConnectedError(AppException):
    """Operation referenced a server id with no live connection."""

    def __init__(self, server_id: str):
        self.server_id = server_id
        super().__init__(
            code=ErrorCode.MCP_NOT_CONNECTED,
            message=f"Server '{server_id}' is not connected",
            details={"server_id": server_id},
        )


class ToolInvocationError(AppException):
    """Remote tool call failed, or a qualified tool name was malformed."""

    def __init__(self, tool_name: str, message: str, cause: Exception | None = None):
        self.tool_name = tool_name
        super().__init__(
            code=ErrorCode.MCP_TOOL_FAILED,
            message=message,
            details={"tool": tool_name},
            cause=cause,
        )


class StreamError(AppException):
    """The model provider's stream faulted mid-round."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(code=ErrorCode.MODEL_STREAM_FAILED, message=message, cause=cause)


__all__ = [
    "AppException",
    "ConfigError",
    "NotConnectedError",
    "ServerConnectionError",
    "StreamError",
    "ToolInvocationError",
]
