from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Header
from fastapi.responses import StreamingResponse

from toolstream.api.dependencies import AppSettings, Provider, Registry
from toolstream.core.agentic_loop import AgenticLoop
from toolstream.core.stream_protocol import get_encoder
from toolstream.models.chat_models import ChatRequest
from toolstream.utils.logger import logger

router = APIRouter()


@router.post("/chat")
async def chat(
    body: ChatRequest,
    registry: Registry,
    provider: Provider,
    settings: AppSettings,
    accept: Annotated[str | None, Header()] = None,
) -> StreamingResponse:
    """Stream one agentic-loop reply.

    Plain text with inline event envelopes by default; NDJSON frames when the
    client sends ``Accept: application/x-ndjson``.
    """
    loop = AgenticLoop(registry, provider, max_rounds=settings.max_tool_rounds)
    encoder = get_encoder(accept)
    logger.info(
        f"Chat request: {len(body.message)} chars, {len(body.history)} history turns, "
        f"tools {'on' if body.tools_enabled else 'off'}"
    )
    return StreamingResponse(
        encoder.encode_stream(loop.run(body)),
        media_type=encoder.media_type,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
