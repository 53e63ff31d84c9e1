"""
Model provider: streams one model response as ModelFragments.

The agentic loop only depends on the ModelProvider protocol; the OpenAI
implementation uses chat completions with function tools.
"""

from __future__ import annotations

import json

from collections.abc import AsyncIterator
from typing import Any, Protocol

from openai import APIError, AsyncOpenAI

from toolstream.core.constants import DEFAULT_MAX_OUTPUT_TOKENS, DEFAULT_MODEL, DEFAULT_TEMPERATURE
from toolstream.core.exceptions import StreamError
from toolstream.models.chat_models import FunctionCallRequest, HistoryTurn, ModelFragment, ToolDeclaration
from toolstream.utils.logger import logger


class ModelProvider(Protocol):
    """Streams the model's reply to ``prompt`` given the prior turns and tools."""

    def stream(
        self,
        prompt: str,
        history: list[HistoryTurn],
        tools: list[ToolDeclaration],
    ) -> AsyncIterator[ModelFragment]: ...


def _tool_param(tool: ToolDeclaration) -> dict[str, Any]:
    parameters = tool.input_schema or {"type": "object", "properties": {}}
    function: dict[str, Any] = {"name": tool.qualified_name, "parameters": parameters}
    if tool.description:
        function["description"] = tool.description
    return {"type": "function", "function": function}


def _parse_arguments(name: str, raw: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Model sent invalid JSON arguments for {name}; using empty arguments")
        return {}
    if not isinstance(parsed, dict):
        logger.warning(f"Model sent non-object arguments for {name}; using empty arguments")
        return {}
    return parsed


class OpenAIModelProvider:
    """ModelProvider backed by ``AsyncOpenAI.chat.completions`` streaming."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        system_prompt: str | None = None,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.system_prompt = system_prompt

    def _build_messages(self, prompt: str, history: list[HistoryTurn]) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.extend({"role": turn.role, "content": turn.content} for turn in history)
        messages.append({"role": "user", "content": prompt})
        return messages

    async def stream(
        self,
        prompt: str,
        history: list[HistoryTurn],
        tools: list[ToolDeclaration],
    ) -> AsyncIterator[ModelFragment]:
        """Yield text fragments as they arrive, then one fragment carrying the calls.

        Raises:
            StreamError: The provider request or stream failed.
        """
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": self._build_messages(prompt, history),
            "temperature": self.temperature,
            "max_tokens": self.max_output_tokens,
            "stream": True,
        }
        if tools:
            kwargs["tools"] = [_tool_param(t) for t in tools]

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except APIError as e:
            raise StreamError(f"Model request failed: {e}", cause=e) from e

        # Tool-call deltas arrive in pieces keyed by index
        pending_calls: dict[int, dict[str, str]] = {}
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield ModelFragment(text=delta.content)
                for tc in delta.tool_calls or []:
                    slot = pending_calls.setdefault(tc.index, {"name": "", "arguments": ""})
                    if tc.function is not None:
                        if tc.function.name:
                            slot["name"] += tc.function.name
                        if tc.function.arguments:
                            slot["arguments"] += tc.function.arguments
        except APIError as e:
            raise StreamError(f"Model stream failed: {e}", cause=e) from e
        finally:
            await response.close()

        if pending_calls:
            calls = [
                FunctionCallRequest(name=slot["name"], arguments=_parse_arguments(slot["name"], slot["arguments"]))
                for _, slot in sorted(pending_calls.items())
            ]
            yield ModelFragment(function_calls=calls)
