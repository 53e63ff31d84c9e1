"""
Chat request and model-provider exchange models.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class HistoryTurn(BaseModel):
    """One prior turn of the conversation.

    ``model`` is accepted as an alias of ``assistant`` for clients that use
    Gemini-style role names.
    """

    role: Literal["user", "assistant"]
    content: str

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v: Any) -> Any:
        if isinstance(v, str) and v.lower() == "model":
            return "assistant"
        return v


class ChatRequest(BaseModel):
    """Inbound chat request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = Field(min_length=1)
    history: list[HistoryTurn] = Field(default_factory=list)
    tools_enabled: bool = True


class ToolDeclaration(BaseModel):
    """Tool schema declared to the model provider under its qualified name."""

    qualified_name: str
    description: str | None = None
    input_schema: dict[str, Any] = Field(default_factory=dict)


class FunctionCallRequest(BaseModel):
    """A function invocation requested by the model."""

    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ModelFragment(BaseModel):
    """One streamed piece of model output."""

    text: str = ""
    function_calls: list[FunctionCallRequest] = Field(default_factory=list)
