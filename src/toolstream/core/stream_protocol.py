"""
Stream protocol: plain text and structured events on one ordered channel.

Two encodings are provided:

Delimited text (default, for text-only transports)
    Text fragments are written verbatim. Events are written as
    ``EVENT_OPEN + <json payload> + EVENT_CLOSE``. Inside text, the escape
    character and the delimiter lead character are each prefixed with
    ``EVENT_ESCAPE``, so an unescaped ``EVENT_OPEN[0]`` always starts an event.

Framed NDJSON (for clients that accept ``application/x-ndjson``)
    One JSON object per line: ``{"type": "text", "content": ...}`` for text,
    the event payload otherwise.

Both decoders accept chunks of arbitrary size and produce the same final text
and event sequence however the input was split.
"""

from __future__ import annotations

import codecs
import json
import re

from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from pydantic import ValidationError

from toolstream.core.constants import (
    EVENT_CLOSE,
    EVENT_ESCAPE,
    EVENT_OPEN,
    FRAME_TEXT,
    MEDIA_TYPE_DELIMITED,
    MEDIA_TYPE_FRAMED,
)
from toolstream.models.event_models import (
    CallResultEvent,
    CallStartEvent,
    FunctionCallRecord,
    StreamEvent,
    StreamItem,
    stream_event_adapter,
)
from toolstream.utils.logger import logger

_DELIMITER_LEAD = EVENT_OPEN[0]

# Characters that need escaping inside text, and that the decoder must inspect
_SPECIAL_CHARS = re.compile(f"[{re.escape(EVENT_ESCAPE)}{re.escape(_DELIMITER_LEAD)}]")
_ESCAPED = re.compile(f"{re.escape(EVENT_ESCAPE)}(.?)", re.DOTALL)


def escape_text(text: str) -> str:
    """Escape delimiter-like characters so text can never open an event."""
    return _SPECIAL_CHARS.sub(lambda m: EVENT_ESCAPE + m.group(0), text)


def _event_payload(event: StreamEvent) -> str:
    return event.model_dump_json()


# ============================================================================
# Encoders
# ============================================================================


class StreamEncoder:
    """Delimited text encoder."""

    media_type = MEDIA_TYPE_DELIMITED

    def encode_text(self, text: str) -> str:
        return escape_text(text)

    def encode_event(self, event: StreamEvent) -> str:
        return f"{EVENT_OPEN}{_event_payload(event)}{EVENT_CLOSE}"

    def encode(self, item: StreamItem) -> str:
        if isinstance(item, str):
            return self.encode_text(item)
        return self.encode_event(item)

    async def encode_stream(self, items: AsyncIterable[StreamItem]) -> AsyncIterator[str]:
        """Encode loop output in emission order, skipping empty text."""
        async for item in items:
            encoded = self.encode(item)
            if encoded:
                yield encoded


class FramedStreamEncoder(StreamEncoder):
    """Newline-delimited JSON encoder; each item is one frame."""

    media_type = MEDIA_TYPE_FRAMED

    def encode_text(self, text: str) -> str:
        if not text:
            return ""
        return json.dumps({"type": FRAME_TEXT, "content": text}, ensure_ascii=False) + "\n"

    def encode_event(self, event: StreamEvent) -> str:
        return _event_payload(event) + "\n"


def get_encoder(accept: str | None) -> StreamEncoder:
    """Pick the framed encoder when the client accepts NDJSON."""
    if accept and MEDIA_TYPE_FRAMED in accept:
        return FramedStreamEncoder()
    return StreamEncoder()


# ============================================================================
# Decoders
# ============================================================================


class _BaseDecoder:
    """Shared state: UTF-8 handling, decoded text/events and the call record table."""

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""
        self._text_parts: list[str] = []
        self._events: list[StreamEvent] = []
        self._records: list[FunctionCallRecord] = []

    @property
    def text(self) -> str:
        """All plain text decoded so far."""
        return "".join(self._text_parts)

    @property
    def events(self) -> list[StreamEvent]:
        return list(self._events)

    @property
    def function_calls(self) -> list[FunctionCallRecord]:
        return list(self._records)

    def feed(self, chunk: str | bytes) -> list[StreamItem]:
        """Consume one chunk and return the newly decoded items in order."""
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self._buffer += chunk
        return self._drain(final=False)

    def close(self) -> list[StreamItem]:
        """Flush the remaining buffer at end of stream."""
        self._buffer += self._utf8.decode(b"", final=True)
        return self._drain(final=True)

    def _drain(self, final: bool) -> list[StreamItem]:
        raise NotImplementedError

    def _emit_text(self, out: list[StreamItem], text: str) -> None:
        if text:
            self._text_parts.append(text)
            out.append(text)

    def _emit_payload(self, out: list[StreamItem], payload: str | dict[str, Any]) -> None:
        try:
            if isinstance(payload, str):
                event = stream_event_adapter.validate_json(payload)
            else:
                event = stream_event_adapter.validate_python(payload)
        except ValidationError as e:
            logger.warning(f"Skipping malformed stream event: {e.errors()[0]['msg']}")
            return
        self._events.append(event)
        self._apply(event)
        out.append(event)

    def _apply(self, event: StreamEvent) -> None:
        if isinstance(event, CallStartEvent):
            self._records.append(FunctionCallRecord(call_id=event.call_id, name=event.name, arguments=event.args))
        elif isinstance(event, CallResultEvent):
            record = self._find_pending(event)
            if record is None:
                logger.warning(f"call_result for '{event.name}' has no pending call_start")
                return
            record.settle_from(event)

    def _find_pending(self, event: CallResultEvent) -> FunctionCallRecord | None:
        pending = [r for r in self._records if not r.is_settled]
        if event.call_id is not None:
            for record in pending:
                if record.call_id == event.call_id:
                    return record
        for record in pending:
            if record.name == event.name:
                return record
        return None


class StreamDecoder(_BaseDecoder):
    """Incremental decoder for the delimited text protocol."""

    def _drain(self, final: bool) -> list[StreamItem]:
        out: list[StreamItem] = []
        buf = self._buffer
        size = len(buf)
        text: list[str] = []
        pos = 0

        while pos < size:
            match = _SPECIAL_CHARS.search(buf, pos)
            if match is None:
                text.append(buf[pos:])
                pos = size
                break

            idx = match.start()
            text.append(buf[pos:idx])

            if buf[idx] == EVENT_ESCAPE:
                if idx + 1 >= size:
                    # Dangling escape: the escaped character is in the next chunk
                    pos = idx
                    break
                text.append(buf[idx + 1])
                pos = idx + 2
                continue

            head = buf[idx : idx + len(EVENT_OPEN)]
            if head != EVENT_OPEN:
                if len(head) < len(EVENT_OPEN) and EVENT_OPEN.startswith(head):
                    # Partial open delimiter at the tail
                    pos = idx
                    break
                text.append(buf[idx])
                pos = idx + 1
                continue

            end = buf.find(EVENT_CLOSE, idx + len(EVENT_OPEN))
            if end == -1:
                # Envelope not complete yet
                pos = idx
                break

            self._emit_text(out, "".join(text))
            text = []
            self._emit_payload(out, buf[idx + len(EVENT_OPEN) : end])
            pos = end + len(EVENT_CLOSE)

        rest = buf[pos:]
        if final and rest:
            # Unterminated envelope or dangling escape at end of stream
            text.append(_ESCAPED.sub(lambda m: m.group(1), rest))
            rest = ""
        self._emit_text(out, "".join(text))
        self._buffer = rest
        return out


class FramedStreamDecoder(_BaseDecoder):
    """Incremental decoder for the NDJSON framed protocol."""

    def _drain(self, final: bool) -> list[StreamItem]:
        out: list[StreamItem] = []
        *lines, rest = self._buffer.split("\n")
        if final:
            lines.append(rest)
            rest = ""
        self._buffer = rest

        for line in lines:
            if not line.strip():
                continue
            try:
                frame = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping malformed NDJSON frame")
                continue
            if isinstance(frame, dict) and frame.get("type") == FRAME_TEXT:
                self._emit_text(out, str(frame.get("content", "")))
            elif isinstance(frame, dict):
                self._emit_payload(out, frame)
            else:
                logger.warning("Skipping non-object NDJSON frame")
        return out
