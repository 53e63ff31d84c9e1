"""
Request-scoped context for the toolstream API.

Each HTTP request gets a RequestContext bound to a ContextVar. The agentic loop
updates it as rounds advance and tools run, so every log record emitted while
serving a chat request carries the request id, the current round and the
number of tool calls made so far.
"""

from __future__ import annotations

import secrets
import time

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

_request_context: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)

REQUEST_ID_PREFIX = "req_"
REQUEST_ID_HEADER = "X-Request-ID"


@dataclass
class RequestContext:
    """What the logger needs to know about the request being served."""

    request_id: str
    path: str = ""
    method: str = ""
    client_ip: str | None = None
    round: int = 0
    tool_calls: int = 0
    start_time: float = field(default_factory=time.monotonic)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.start_time) * 1000

    def to_log_context(self) -> dict[str, Any]:
        """Fields merged into every log record; loop fields only once a loop has started."""
        ctx: dict[str, Any] = {
            "request_id": self.request_id,
            "path": self.path,
            "method": self.method,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }
        if self.client_ip:
            ctx["client_ip"] = self.client_ip
        if self.round:
            ctx["round"] = self.round
            ctx["tool_calls"] = self.tool_calls
        ctx.update(self.extra)
        return ctx


def generate_request_id(prefix: str = REQUEST_ID_PREFIX) -> str:
    """Generate a request id such as ``req_a1b2c3d4e5f6a7b8``."""
    return f"{prefix}{secrets.token_hex(8)}"


def get_request_context() -> RequestContext | None:
    """Current request context, or None outside a request."""
    return _request_context.get()


def get_request_id() -> str | None:
    ctx = get_request_context()
    return ctx.request_id if ctx else None


@contextmanager
def request_scope(context: RequestContext) -> Iterator[RequestContext]:
    """Bind ``context`` for the duration of the block, restoring the previous one after."""
    token = _request_context.set(context)
    try:
        yield context
    finally:
        _request_context.reset(token)


def update_request_context(**kwargs: Any) -> None:
    """Set known fields (``round``) or stash anything else under ``extra``."""
    ctx = get_request_context()
    if ctx is None:
        return
    for key, value in kwargs.items():
        if key in ("round", "tool_calls"):
            setattr(ctx, key, value)
        else:
            ctx.extra[key] = value


def count_tool_call() -> None:
    """Record one executed tool call against the current request."""
    ctx = get_request_context()
    if ctx is not None:
        ctx.tool_calls += 1


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # First hop is the original client
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a RequestContext per request and echo its id in the response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        context = RequestContext(
            request_id=request.headers.get(REQUEST_ID_HEADER) or generate_request_id(),
            path=request.url.path,
            method=request.method,
            client_ip=_client_ip(request),
        )
        with request_scope(context):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = context.request_id
        return response


__all__ = [
    "REQUEST_ID_HEADER",
    "REQUEST_ID_PREFIX",
    "RequestContext",
    "RequestContextMiddleware",
    "count_tool_call",
    "generate_request_id",
    "get_request_context",
    "get_request_id",
    "request_scope",
    "update_request_context",
]
