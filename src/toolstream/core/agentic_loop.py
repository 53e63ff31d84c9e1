"""
Agentic loop controller.

Drives one chat request through bounded generate/execute rounds:
stream the model reply, run every requested tool call concurrently, feed the
results back as the next round's input, and stop when the model requests no
calls or the round bound is reached. Output is one ordered stream of text
fragments and events.
"""

from __future__ import annotations

import asyncio
import json
import secrets
import time

from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from toolstream.api.middleware.request_context import count_tool_call, update_request_context
from toolstream.core.constants import DEFAULT_MAX_TOOL_ROUNDS, STREAM_ERROR_NOTICE
from toolstream.core.exceptions import AppException, StreamError
from toolstream.core.tool_names import qualify_tool_name, split_qualified_name
from toolstream.integrations.mcp_registry import ConnectionRegistry
from toolstream.integrations.model_provider import ModelProvider
from toolstream.models.chat_models import ChatRequest, FunctionCallRequest, HistoryTurn, ToolDeclaration
from toolstream.models.event_models import (
    CallResultEvent,
    CallStartEvent,
    FunctionCallRecord,
    StreamItem,
    TruncatedEvent,
)
from toolstream.utils.logger import logger

# Tool tasks outlive a cancelled request; hold references until they settle
_background_tasks: set[asyncio.Task[Any]] = set()


def _new_call_id() -> str:
    return f"call_{secrets.token_hex(6)}"


@dataclass
class LoopState:
    """Per-request loop state."""

    accumulated_text: str = ""
    records: list[FunctionCallRecord] = field(default_factory=list)
    round: int = 0
    truncated: bool = False
    failed: bool = False
    total_calls: int = 0


class AgenticLoop:
    """Runs one chat request against a model provider and the connection registry.

    Example:
        loop = AgenticLoop(registry, provider, max_rounds=10)
        async for item in loop.run(request):
            ...
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        provider: ModelProvider,
        max_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
    ):
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.registry = registry
        self.provider = provider
        self.max_rounds = max_rounds
        self.state = LoopState()

    async def declared_tools(self) -> list[ToolDeclaration]:
        """Qualified declarations for every tool on every live connection."""
        return [
            ToolDeclaration(
                qualified_name=qualify_tool_name(d.server_id, d.name),
                description=d.description,
                input_schema=d.input_schema,
            )
            for d in await self.registry.get_all_tools()
        ]

    async def run(self, request: ChatRequest) -> AsyncIterator[StreamItem]:
        """Yield text fragments and events for one request.

        Never raises for tool failures, stream failures or truncation; those
        are reported in-band.
        """
        self.state = LoopState()
        state = self.state
        tools = await self.declared_tools() if request.tools_enabled else []
        history: list[HistoryTurn] = list(request.history)
        current_input = request.message

        try:
            for round_number in range(1, self.max_rounds + 1):
                state.round = round_number
                state.records = []
                update_request_context(round=round_number)

                round_text: list[str] = []
                calls: list[FunctionCallRequest] = []
                error: StreamError | None = None

                stream = self.provider.stream(current_input, history, tools)
                try:
                    async for fragment in stream:
                        if fragment.text:
                            round_text.append(fragment.text)
                            state.accumulated_text += fragment.text
                            yield fragment.text
                        calls.extend(fragment.function_calls)
                except StreamError as e:
                    error = e
                except Exception as e:
                    error = StreamError(str(e) or type(e).__name__, cause=e)
                finally:
                    aclose = getattr(stream, "aclose", None)
                    if aclose is not None:
                        await aclose()

                if error is not None:
                    state.failed = True
                    logger.error(f"Model stream failed in round {round_number}: {error.message}")
                    notice = STREAM_ERROR_NOTICE.format(error=error.message)
                    state.accumulated_text += notice
                    yield notice
                    return

                history.append(HistoryTurn(role="user", content=current_input))
                history.append(HistoryTurn(role="assistant", content="".join(round_text)))

                if not calls:
                    return
                if not request.tools_enabled:
                    logger.warning(f"Ignoring {len(calls)} function call(s) requested with tools disabled")
                    return

                async with aclosing(self._execute_round(calls)) as events:
                    async for event in events:
                        yield event

                if round_number == self.max_rounds:
                    state.truncated = True
                    logger.warning(f"Agentic loop reached max rounds ({self.max_rounds})")
                    yield TruncatedEvent(rounds=self.max_rounds)
                    return

                current_input = json.dumps([r.to_result_entry() for r in state.records], default=str)
        finally:
            logger.log_loop_summary(
                rounds=state.round,
                calls=state.total_calls,
                chars=len(state.accumulated_text),
                truncated=state.truncated,
                failed=state.failed,
            )

    async def _execute_round(self, calls: list[FunctionCallRequest]) -> AsyncIterator[StreamItem]:
        records = [FunctionCallRecord(call_id=_new_call_id(), name=c.name, arguments=c.arguments) for c in calls]
        self.state.records = records
        self.state.total_calls += len(records)

        for record in records:
            yield CallStartEvent(call_id=record.call_id, name=record.name, args=record.arguments)

        tasks: dict[asyncio.Task[None], FunctionCallRecord] = {}
        for record in records:
            task = asyncio.create_task(self._execute_call(record))
            _background_tasks.add(task)
            task.add_done_callback(_background_tasks.discard)
            tasks[task] = record

        pending = set(tasks)
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for record in (r for r in records if any(tasks[t] is r for t in done)):
                yield CallResultEvent(
                    call_id=record.call_id,
                    name=record.name,
                    result=record.result,
                    error=record.error,
                )

    async def _execute_call(self, record: FunctionCallRecord) -> None:
        """Run one call and settle its record; failures settle as errors."""
        count_tool_call()
        start = time.monotonic()
        try:
            server_id, tool_name = split_qualified_name(record.name)
            result = await self.registry.call_tool(server_id, tool_name, record.arguments)
        except AppException as e:
            record.fail(e.message)
        except Exception as e:
            record.fail(str(e) or type(e).__name__)
        else:
            record.resolve(result)

        logger.log_function_call(
            record.name,
            record.arguments,
            result=record.result,
            error=record.error,
            duration_ms=(time.monotonic() - start) * 1000,
        )
