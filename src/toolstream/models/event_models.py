"""
Stream event models for toolstream.

Events are multiplexed with plain text on one ordered channel. Text fragments
travel as plain ``str`` items; everything structured is a StreamEvent.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from toolstream.core.constants import EVENT_CALL_RESULT, EVENT_CALL_START, EVENT_TRUNCATED

CallStatus = Literal["pending", "success", "error"]


class CallStartEvent(BaseModel):
    """Emitted for every requested call before execution begins."""

    type: Literal["call_start"] = EVENT_CALL_START
    call_id: str | None = None
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class CallResultEvent(BaseModel):
    """Emitted as soon as a call settles; exactly one of result/error is meaningful."""

    type: Literal["call_result"] = EVENT_CALL_RESULT
    call_id: str | None = None
    name: str
    result: Any = None
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


class TruncatedEvent(BaseModel):
    """Emitted when the loop stops because it reached the round bound."""

    type: Literal["truncated"] = EVENT_TRUNCATED
    reason: Literal["max_rounds"] = "max_rounds"
    rounds: int


StreamEvent = Annotated[CallStartEvent | CallResultEvent | TruncatedEvent, Field(discriminator="type")]

#: Validates a decoded payload dict into the matching event model.
stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)

#: One item of loop output: a text fragment or a structured event.
StreamItem = str | CallStartEvent | CallResultEvent | TruncatedEvent


class FunctionCallRecord(BaseModel):
    """Lifecycle of one requested function call.

    Created pending; settles to success or error exactly once.
    """

    call_id: str | None = None
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    status: CallStatus = "pending"
    result: Any = None
    error: str | None = None

    @property
    def is_settled(self) -> bool:
        return self.status != "pending"

    def resolve(self, result: Any) -> None:
        """Settle successfully."""
        self._ensure_pending()
        self.status = "success"
        self.result = result

    def fail(self, message: str) -> None:
        """Settle with an error message."""
        self._ensure_pending()
        self.status = "error"
        self.error = message

    def settle_from(self, event: CallResultEvent) -> None:
        if event.is_error:
            self.fail(event.error or "")
        else:
            self.resolve(event.result)

    def to_result_entry(self) -> dict[str, Any]:
        """Entry fed back to the model in the next round."""
        response = {"error": self.error} if self.status == "error" else self.result
        return {"name": self.name, "response": response}

    def _ensure_pending(self) -> None:
        if self.is_settled:
            raise ValueError(f"Function call '{self.name}' already settled as {self.status}")
