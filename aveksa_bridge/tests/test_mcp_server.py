"""Tests for the MCP tool handlers with a stubbed adapter."""

import json
from unittest.mock import AsyncMock

import pytest

from aveksa_bridge import mcp_server
from aveksa_bridge.core.adapter import BridgeRequest, Count, Record
from aveksa_bridge.core.errors import StructureError


def _payload(content):
    return json.loads(content[0].text)


@pytest.fixture
def adapter(monkeypatch):
    stub = AsyncMock()
    monkeypatch.setitem(mcp_server._adapters, "prod", stub)
    return stub


class TestTools:
    @pytest.mark.asyncio
    async def test_tool_names(self):
        names = [t.name for t in await mcp_server.list_tools()]
        assert {"aveksa_count", "aveksa_retrieve", "aveksa_search"} <= set(names)

    @pytest.mark.asyncio
    async def test_count(self, adapter):
        adapter.count = AsyncMock(return_value=Count(3))

        payload = _payload(await mcp_server.call_tool(
            "aveksa_count", {"connection": "prod", "structure": "User"}
        ))

        assert payload["success"] is True
        assert payload["data"] == {"count": 3}
        adapter.count.assert_awaited_once_with(BridgeRequest(structure="User"))

    @pytest.mark.asyncio
    async def test_retrieve_passes_fields(self, adapter):
        adapter.retrieve = AsyncMock(return_value=Record({"id": "42"}))

        payload = _payload(await mcp_server.call_tool("aveksa_retrieve", {
            "connection": "prod",
            "structure": "User",
            "query": 'id=<%= parameter["Id"] %>',
            "parameters": {"Id": "42"},
            "fields": ["id"],
        }))

        assert payload["data"] == {"record": {"id": "42"}}
        request = adapter.retrieve.call_args.args[0]
        assert request.fields == ["id"]
        assert request.parameters == {"Id": "42"}

    @pytest.mark.asyncio
    async def test_bridge_error_reported(self, adapter):
        adapter.search = AsyncMock(side_effect=StructureError("Invalid Structure: 'Usr'"))

        payload = _payload(await mcp_server.call_tool(
            "aveksa_search", {"connection": "prod", "structure": "Usr"}
        ))

        assert payload["success"] is False
        assert payload["message"].startswith("StructureError")

    @pytest.mark.asyncio
    async def test_generate_config(self):
        payload = _payload(await mcp_server.call_tool("aveksa_generate_config", {}))
        assert "connections:" in payload["data"]
