"""Tests for the streaming chat endpoint."""

from __future__ import annotations

import json

from fastapi.testclient import TestClient

from conftest import ScriptedProvider, calls, text
from toolstream.api.main import create_app
from toolstream.core.constants import MEDIA_TYPE_FRAMED, Settings
from toolstream.core.stream_protocol import FramedStreamDecoder, StreamDecoder
from toolstream.integrations.mcp_registry import ConnectionRegistry
from toolstream.models.event_models import CallResultEvent, CallStartEvent, TruncatedEvent


def connect_search_server(client: TestClient) -> None:
    response = client.post(
        "/api/mcp/connect",
        json={"serverConfig": {"id": "s1", "name": "Search", "transportType": "stdio", "command": "search"}},
    )
    assert response.status_code == 200


class TestChatStream:
    """Tests for POST /api/chat."""

    def test_plain_reply_without_tools(self, app_client: TestClient, scripted_provider: ScriptedProvider) -> None:
        scripted_provider.rounds = [[text("Hello"), text(", world")]]

        response = app_client.post("/api/chat", json={"message": "hi"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "Hello, world"

    def test_tool_round_trip(self, app_client: TestClient, scripted_provider: ScriptedProvider) -> None:
        """Test text, call events and follow-up text arrive in order on one stream."""
        connect_search_server(app_client)

        response = app_client.post("/api/chat", json={"message": "find cats", "history": []})

        decoder = StreamDecoder()
        items = decoder.feed(response.content) + decoder.close()

        assert decoder.text == "Looking Found cats."
        kinds = [type(item) for item in items]
        assert kinds == [str, CallStartEvent, CallResultEvent, str]
        start = items[1]
        assert isinstance(start, CallStartEvent)
        assert start.name == "s1__search"
        assert start.args == {"q": "cats"}
        record = decoder.function_calls[0]
        assert record.status == "success"
        assert record.result == [{"type": "text", "text": "results for cats"}]

        # Second round got the tool results as its input
        second_prompt = scripted_provider.requests[1][0]
        assert json.loads(second_prompt) == [
            {"name": "s1__search", "response": [{"type": "text", "text": "results for cats"}]}
        ]

    def test_declares_connected_tools(self, app_client: TestClient, scripted_provider: ScriptedProvider) -> None:
        connect_search_server(app_client)
        scripted_provider.rounds = [[text("ok")]]

        app_client.post("/api/chat", json={"message": "hi"})

        declared = {tool.qualified_name for tool in scripted_provider.requests[0][2]}
        assert declared == {"s1__search", "s1__echo"}

    def test_tools_disabled_declares_nothing(
        self, app_client: TestClient, scripted_provider: ScriptedProvider
    ) -> None:
        connect_search_server(app_client)
        scripted_provider.rounds = [[text("ok")]]

        app_client.post("/api/chat", json={"message": "hi", "toolsEnabled": False})

        assert scripted_provider.requests[0][2] == []

    def test_unknown_server_becomes_error_result(
        self, app_client: TestClient, scripted_provider: ScriptedProvider
    ) -> None:
        scripted_provider.rounds = [[calls(("ghost__search", {}))], [text("sorry")]]

        response = app_client.post("/api/chat", json={"message": "hi"})

        decoder = StreamDecoder()
        decoder.feed(response.content)
        decoder.close()
        assert response.status_code == 200
        assert decoder.function_calls[0].status == "error"
        assert decoder.text == "sorry"

    def test_round_bound_truncates(self, app_client: TestClient, scripted_provider: ScriptedProvider) -> None:
        connect_search_server(app_client)
        scripted_provider.rounds = [[calls(("s1__echo", {"n": 1}))]]

        response = app_client.post("/api/chat", json={"message": "loop forever"})

        decoder = StreamDecoder()
        decoder.feed(response.content)
        decoder.close()
        truncated = [e for e in decoder.events if isinstance(e, TruncatedEvent)]
        assert len(truncated) == 1
        assert truncated[0].rounds == 3
        assert len(scripted_provider.requests) == 3

    def test_ndjson_framing(self, app_client: TestClient) -> None:
        connect_search_server(app_client)

        response = app_client.post("/api/chat", json={"message": "find cats"}, headers={"Accept": MEDIA_TYPE_FRAMED})

        assert response.headers["content-type"].startswith(MEDIA_TYPE_FRAMED)
        lines = [json.loads(line) for line in response.text.splitlines()]
        assert [line["type"] for line in lines] == ["text", "call_start", "call_result", "text"]

        decoder = FramedStreamDecoder()
        decoder.feed(response.content)
        decoder.close()
        assert decoder.text == "Looking Found cats."

    def test_empty_message_rejected(self, app_client: TestClient) -> None:
        response = app_client.post("/api/chat", json={"message": ""})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VAL_2001"

    def test_unconfigured_provider(self, test_settings: Settings, registry: ConnectionRegistry) -> None:
        app = create_app(settings=test_settings, registry=registry)

        with TestClient(app) as client:
            response = client.post("/api/chat", json={"message": "hi"})

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INT_9002"
