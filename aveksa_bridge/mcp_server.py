"""
MCP (Model Context Protocol) server for Aveksa Bridge.

Exposes the adapter's count / retrieve / search operations as tools, one
adapter per configured connection profile.

Launch:
    python -m aveksa_bridge.mcp_server          # stdio transport
    python -m aveksa_bridge.mcp_server --sse     # SSE transport (HTTP)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from aveksa_bridge.adapters import ADAPTER_REGISTRY
from aveksa_bridge.core.adapter import BaseAdapter, BridgeRequest, CommandResult
from aveksa_bridge.core.config import Config
from aveksa_bridge.core.errors import BridgeError

logger = logging.getLogger("aveksa_bridge.mcp")

# ── Global state ─────────────────────────────────────────────────────────

_config: Config | None = None
_adapters: dict[str, BaseAdapter] = {}


def _result_to_content(result: CommandResult) -> list[TextContent]:
    """Convert a CommandResult into MCP TextContent."""
    payload = result.to_dict()
    return [TextContent(type="text", text=json.dumps(payload, indent=2, default=str))]


def _get_adapter(connection: str) -> BaseAdapter:
    """Lazily instantiate and cache an adapter for *connection*."""
    if connection in _adapters:
        return _adapters[connection]

    if _config is None:
        raise RuntimeError("Configuration not loaded. Call aveksa_configure first.")

    profile = _config.get_profile(connection)
    adapter_cls = ADAPTER_REGISTRY.get(profile.system)
    if adapter_cls is None:
        raise ValueError(f"Unknown system type: {profile.system!r}")

    adapter = adapter_cls.from_profile(profile)
    _adapters[connection] = adapter
    return adapter


_READ_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "connection": {"type": "string", "description": "Connection profile name."},
        "structure": {
            "type": "string",
            "description": "Aveksa structure (e.g. 'User', 'Role'); maps to find<Structure>.",
        },
        "query": {
            "type": "string",
            "description": (
                "Query template of key=value pairs joined by '&'. Values may "
                "reference parameters as <%= parameter[\"Name\"] %>. Use '*' "
                "for no filter."
            ),
            "default": "*",
        },
        "parameters": {
            "type": "object",
            "description": "Values for the parameters referenced in the query.",
        },
        "fields": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Fields to return, in order (empty = all).",
        },
    },
    "required": ["connection", "structure"],
}


# ── MCP Server definition ───────────────────────────────────────────────

app = Server("aveksa-bridge")


# ---------- Tool definitions ----------


@app.list_tools()
async def list_tools() -> list[Tool]:
    return [
        # -- connection management ----------------------------------------
        Tool(
            name="aveksa_configure",
            description=(
                "Load Aveksa Bridge configuration and list available "
                "connection profiles. Call this first before any other "
                "aveksa tool. Pass config_path to use a non-default "
                "config file, or omit it to use the default location."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "config_path": {
                        "type": "string",
                        "description": "Path to config YAML/JSON file (optional).",
                    },
                },
            },
        ),
        Tool(
            name="aveksa_list_connections",
            description="List all configured Aveksa connection profiles.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="aveksa_health_check",
            description="Log in to the Aveksa server of a connection to verify credentials.",
            inputSchema={
                "type": "object",
                "properties": {
                    "connection": {
                        "type": "string",
                        "description": "Connection profile name.",
                    },
                },
                "required": ["connection"],
            },
        ),
        # -- reads --------------------------------------------------------
        Tool(
            name="aveksa_count",
            description="Count the records of a structure matching a query.",
            inputSchema=_READ_SCHEMA,
        ),
        Tool(
            name="aveksa_retrieve",
            description=(
                "Retrieve the single record of a structure matching a query. "
                "Fails if more than one record matches."
            ),
            inputSchema=_READ_SCHEMA,
        ),
        Tool(
            name="aveksa_search",
            description="Return all records of a structure matching a query (no pagination).",
            inputSchema=_READ_SCHEMA,
        ),
        # -- utility ------------------------------------------------------
        Tool(
            name="aveksa_generate_config",
            description="Generate a template configuration file for Aveksa Bridge.",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


# ---------- Tool handlers ----------


@app.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    global _config

    try:
        # -- configuration ------------------------------------------------
        if name == "aveksa_configure":
            _config = Config.load(arguments.get("config_path"))
            _adapters.clear()
            profiles = _config.list_profiles()
            return _result_to_content(CommandResult(
                success=True,
                data={"profiles": profiles},
                message=f"Loaded {len(profiles)} connection profile(s).",
            ))

        if name == "aveksa_generate_config":
            template = Config.generate_template()
            return _result_to_content(CommandResult(
                success=True, data=template, message="Configuration template"
            ))

        if name == "aveksa_list_connections":
            if _config is None:
                _config = Config.load()
            return _result_to_content(CommandResult.ok(_config.list_profiles()))

        # -- everything else requires a connection ------------------------
        adapter = _get_adapter(arguments.get("connection", ""))

        if name == "aveksa_health_check":
            return _result_to_content(await adapter.health_check())

        request = BridgeRequest.from_dict(arguments)
        if name == "aveksa_count":
            count = await adapter.count(request)
            return _result_to_content(CommandResult.ok(count.to_dict()))

        if name == "aveksa_retrieve":
            record = await adapter.retrieve(request)
            return _result_to_content(CommandResult.ok(record.to_dict()))

        if name == "aveksa_search":
            records = await adapter.search(request)
            return _result_to_content(CommandResult.ok(records.to_dict()))

        return _result_to_content(
            CommandResult(success=False, message=f"Unknown tool: {name}")
        )

    except BridgeError as exc:
        logger.warning("Tool %s failed: %s", name, exc)
        return _result_to_content(
            CommandResult(success=False, message=f"{type(exc).__name__}: {exc}")
        )
    except Exception as exc:
        logger.exception("Tool %s failed", name)
        return _result_to_content(
            CommandResult(success=False, message=f"Error: {exc}")
        )


# ── Entry point ──────────────────────────────────────────────────────────


async def run_stdio() -> None:
    """Run the MCP server over stdio."""
    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


def main() -> None:
    parser = argparse.ArgumentParser(description="Aveksa Bridge MCP Server")
    parser.add_argument(
        "--config", type=str, default=None, help="Path to config file"
    )
    parser.add_argument(
        "--sse", action="store_true", help="Run in SSE mode instead of stdio"
    )
    parser.add_argument("--port", type=int, default=8080, help="SSE port")
    args = parser.parse_args()

    if args.config:
        global _config
        _config = Config.load(args.config)

    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    if args.sse:
        from mcp.server.sse import SseServerTransport
        from starlette.applications import Starlette
        from starlette.routing import Mount, Route

        sse = SseServerTransport("/messages/")

        async def handle_sse(request):
            async with sse.connect_sse(
                request.scope, request.receive, request._send
            ) as streams:
                await app.run(
                    streams[0], streams[1], app.create_initialization_options()
                )

        starlette_app = Starlette(
            routes=[
                Route("/sse", endpoint=handle_sse),
                Mount("/messages/", app=sse.handle_post_message),
            ]
        )

        import uvicorn

        uvicorn.run(starlette_app, host="0.0.0.0", port=args.port)
    else:
        asyncio.run(run_stdio())


if __name__ == "__main__":
    main()
