"""
HTTP and OpenAI client construction for the model provider.
"""

from __future__ import annotations

from typing import Any

import httpx

from openai import AsyncOpenAI

from toolstream.core.constants import Settings

# A streamed completion can go quiet while the model reasons or a tool round
# is assembled, so only the read timeout is long.
DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_READ_TIMEOUT = 600.0
DEFAULT_WRITE_TIMEOUT = 30.0
DEFAULT_POOL_TIMEOUT = 30.0


def create_http_client(read_timeout: float | None = None) -> httpx.AsyncClient:
    """httpx client for streaming completions; ``read_timeout`` defaults to 600s."""
    timeout = httpx.Timeout(
        connect=DEFAULT_CONNECT_TIMEOUT,
        read=DEFAULT_READ_TIMEOUT if read_timeout is None else read_timeout,
        write=DEFAULT_WRITE_TIMEOUT,
        pool=DEFAULT_POOL_TIMEOUT,
    )
    return httpx.AsyncClient(timeout=timeout)


def create_openai_client(
    api_key: str | None,
    base_url: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncOpenAI:
    """AsyncOpenAI client; ``base_url`` targets an OpenAI-compatible endpoint."""
    kwargs: dict[str, Any] = {"api_key": api_key, "http_client": http_client}
    if base_url:
        kwargs["base_url"] = base_url
    return AsyncOpenAI(**kwargs)


def create_provider_clients(settings: Settings) -> tuple[AsyncOpenAI, httpx.AsyncClient]:
    """Build the OpenAI client and the httpx client it owns from settings.

    The caller closes the returned httpx client on shutdown.
    """
    http_client = create_http_client(read_timeout=settings.http_read_timeout)
    client = create_openai_client(settings.openai_api_key, base_url=settings.openai_base_url, http_client=http_client)
    return client, http_client
