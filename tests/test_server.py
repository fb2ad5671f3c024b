"""
Tests for the FastMCP server: tool functions, registration and an
in-process round trip through the MCP protocol.
"""

import asyncio
import json
from datetime import date
from unittest.mock import MagicMock

import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError

from anki_leech_mcp import server
from anki_leech_mcp.config import Settings
from anki_leech_mcp.connector import AnkiConnector
from anki_leech_mcp.dispatcher import ToolDispatcher
from anki_leech_mcp.hydrator import BatchHydrator
from anki_leech_mcp.transport import AnkiConnectTransport, MockAnkiTransport


@pytest.fixture
def mock_server(sleep_recorder):
    """Install a dispatcher backed by the mock transport."""
    transport = MockAnkiTransport()
    connector = AnkiConnector(transport)
    server.reset_dispatcher(
        ToolDispatcher(
            connector,
            hydrator=BatchHydrator(connector, sleep=sleep_recorder),
            today=lambda: date(2024, 1, 31),
        )
    )
    yield transport
    server.reset_dispatcher()


def call_tool(name, arguments):
    async def _call():
        async with Client(server.mcp) as client:
            result = await client.call_tool(name, arguments)
            return json.loads(result.content[0].text)

    return asyncio.run(_call())


def call_tool_raw(name, arguments):
    async def _call():
        async with Client(server.mcp) as client:
            return await client.call_tool(name, arguments, raise_on_error=False)

    return asyncio.run(_call())


def list_tools():
    async def _list():
        async with Client(server.mcp) as client:
            return await client.list_tools()

    return asyncio.run(_list())


class TestToolFunctions:
    def test_get_leech_cards_ids_only(self, mock_server):
        result = server.get_leech_cards(detailed=False)

        assert result["success"] is True
        assert result["data"]["count"] == 3
        assert result["data"]["totalLeechCards"] == 3
        assert result["data"]["cardIds"] == [1234567890, 1234567891, 1234567892]

    def test_get_leech_cards_detailed(self, mock_server):
        result = server.get_leech_cards()

        assert len(result["data"]["cards"]) == 3
        assert all(card["statistics"]["ease"] == 2.5 for card in result["data"]["cards"])

    def test_tag_reviewed_cards(self, mock_server):
        result = server.tag_reviewed_cards([1, 2], custom_tag_prefix="X")

        assert result["success"] is True
        assert result["data"]["tag_added"] == "X_20240131"

    def test_tag_reviewed_cards_empty(self, mock_server):
        with pytest.raises(ToolError) as exc_info:
            server.tag_reviewed_cards([])

        envelope = json.loads(str(exc_info.value))
        assert envelope["success"] is False
        assert envelope["data"]["errorKind"] == "ValidationError"
        assert mock_server.calls == []


class TestDispatcherWiring:
    def test_build_dispatcher_mock_mode(self):
        dispatcher = server.build_dispatcher(Settings(mock_mode=True, tag_prefix="rev"))

        assert isinstance(dispatcher.connector.transport, MockAnkiTransport)
        assert dispatcher.default_tag_prefix == "rev"

    def test_build_dispatcher_network_mode(self):
        dispatcher = server.build_dispatcher(Settings(anki_connect_url="http://anki:8765"))

        assert isinstance(dispatcher.connector.transport, AnkiConnectTransport)
        assert dispatcher.connector.transport.url == "http://anki:8765"

    def test_get_dispatcher_reads_environment(self, monkeypatch):
        monkeypatch.setenv("ANKI_MOCK_MODE", "true")
        server.reset_dispatcher()
        try:
            dispatcher = server.get_dispatcher()
            assert isinstance(dispatcher.connector.transport, MockAnkiTransport)
            assert server.get_dispatcher() is dispatcher
        finally:
            server.reset_dispatcher()


class TestMCPProtocol:
    def test_lists_exactly_two_tools(self, mock_server):
        tools = {tool.name: tool for tool in list_tools()}

        assert set(tools) == {"get_leech_cards", "tag_reviewed_cards"}
        assert set(tools["tag_reviewed_cards"].inputSchema["properties"]) == {"card_ids", "custom_tag_prefix"}
        assert set(tools["get_leech_cards"].inputSchema["properties"]) == {"detailed", "count"}

    def test_call_get_leech_cards(self, mock_server):
        payload = call_tool("get_leech_cards", {"detailed": False})

        assert payload["success"] is True
        assert payload["data"]["cardIds"] == [1234567890, 1234567891, 1234567892]

    def test_call_tag_reviewed_cards(self, mock_server):
        payload = call_tool("tag_reviewed_cards", {"card_ids": [1], "custom_tag_prefix": "X"})

        assert payload["data"]["tag_added"] == "X_20240131"

    def test_call_with_empty_card_ids_is_error_envelope(self, mock_server):
        result = call_tool_raw("tag_reviewed_cards", {"card_ids": []})
        payload = json.loads(result.content[0].text)

        assert result.is_error is True
        assert payload["success"] is False
        assert "No card IDs provided" in payload["error"]

    @pytest.mark.parametrize("arguments", [{}, {"card_ids": "1,2"}, {"card_ids": [1, "2"]}])
    def test_malformed_card_ids_reach_validation(self, mock_server, arguments):
        result = call_tool_raw("tag_reviewed_cards", arguments)
        payload = json.loads(result.content[0].text)

        assert result.is_error is True
        assert payload["success"] is False
        assert payload["data"]["errorKind"] == "ValidationError"
        assert mock_server.calls == []

    def test_unavailable_anki_is_error_envelope(self):
        transport = MagicMock()
        transport.is_available.return_value = False
        server.reset_dispatcher(ToolDispatcher(AnkiConnector(transport)))
        try:
            result = call_tool_raw("get_leech_cards", {})
        finally:
            server.reset_dispatcher()
        payload = json.loads(result.content[0].text)

        assert result.is_error is True
        assert payload["success"] is False
        assert payload["data"]["errorKind"] == "ConnectionRefused"
        transport.call.assert_not_called()
