"""
Error body returned by every toolstream endpoint.

    {"error": {"code": "MCP_7003", "message": "Server 'fs' is not connected",
               "request_id": "req_...", "timestamp": "...", "path": "/api/mcp/list"}}

Codes are grouped by origin (validation, lookup, MCP, model, internal) and
each maps to one HTTP status.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    # Request validation
    VALIDATION_ERROR = "VAL_2001"

    # Lookups
    RESOURCE_NOT_FOUND = "RES_3001"

    # MCP servers
    MCP_CONFIG_INVALID = "MCP_7001"
    MCP_CONNECTION_FAILED = "MCP_7002"
    MCP_NOT_CONNECTED = "MCP_7003"
    MCP_TOOL_FAILED = "MCP_7004"

    # Model provider
    MODEL_STREAM_FAILED = "LLM_7501"

    # Internal
    INTERNAL_ERROR = "INT_9001"
    INTERNAL_CONFIGURATION_ERROR = "INT_9002"


class ErrorDetail(BaseModel):
    """One field-level problem, e.g. a failed validation location or the config field at fault."""

    field: str | None = None
    message: str
    code: str | None = None


class ErrorResponse(BaseModel):
    code: ErrorCode
    message: str
    request_id: str | None = None
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    details: list[ErrorDetail] | None = None
    path: str | None = None
    # Only rendered when Settings.debug is on
    debug: dict[str, Any] | None = Field(default=None, exclude=True)

    def to_dict(self, include_debug: bool = False) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude_none=True)
        if include_debug and self.debug:
            data["debug"] = self.debug
        return {"error": data}


ERROR_CODE_TO_STATUS: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.MCP_CONFIG_INVALID: 400,
    ErrorCode.MCP_NOT_CONNECTED: 404,
    # Upstream failures: the MCP server or model misbehaved, not the caller
    ErrorCode.MCP_CONNECTION_FAILED: 502,
    ErrorCode.MCP_TOOL_FAILED: 502,
    ErrorCode.MODEL_STREAM_FAILED: 502,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.INTERNAL_CONFIGURATION_ERROR: 500,
}


def get_status_code(error_code: ErrorCode) -> int:
    return ERROR_CODE_TO_STATUS.get(error_code, 500)


__all__ = [
    "ERROR_CODE_TO_STATUS",
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "get_status_code",
]
