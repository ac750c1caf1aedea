"""
CLI for Aveksa Bridge.

Provides commands for:
  - Generating configuration templates
  - Testing logins against configured servers
  - Running count / retrieve / search from the command line
  - Running the MCP server
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from aveksa_bridge.core.adapter import BaseAdapter, BridgeRequest
from aveksa_bridge.core.config import DEFAULT_CONFIG_FILE, Config
from aveksa_bridge.core.errors import BridgeError


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _parse_parameters(pairs: list[str] | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep:
            raise SystemExit(f"Invalid parameter {pair!r}; expected NAME=VALUE")
        params[name] = value
    return params


def _build_adapter(args: argparse.Namespace) -> BaseAdapter:
    from aveksa_bridge.adapters import ADAPTER_REGISTRY

    config = Config.load(args.config)
    profile = config.get_profile(args.connection)
    adapter_cls = ADAPTER_REGISTRY[profile.system]
    return adapter_cls.from_profile(profile)


def _build_request(args: argparse.Namespace) -> BridgeRequest:
    return BridgeRequest(
        structure=args.structure,
        query=args.query,
        parameters=_parse_parameters(args.param),
        fields=args.fields.split(",") if args.fields else None,
    )


async def _cmd_init(args: argparse.Namespace) -> None:
    """Generate a template config file."""
    from pathlib import Path

    template = Config.generate_template()
    dest = Path(args.output).expanduser()
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(template)
    print(f"Configuration template written to {dest}")
    print("Edit the file with your connection details, then run:")
    print(f"  aveksa-bridge test --config {dest}")


async def _cmd_test(args: argparse.Namespace) -> None:
    """Log in against every configured connection."""
    from aveksa_bridge.adapters import ADAPTER_REGISTRY

    config = Config.load(args.config)
    profiles = config.list_profiles()

    if not profiles:
        print("No connection profiles found in config.")
        sys.exit(1)

    print(f"Testing {len(profiles)} connection(s)...\n")

    for p in profiles:
        profile = config.get_profile(p["name"])
        adapter_cls = ADAPTER_REGISTRY.get(profile.system)
        if adapter_cls is None:
            print(f"  [{p['name']}] SKIP - unknown system: {profile.system}")
            continue

        try:
            adapter = adapter_cls.from_profile(profile)
        except BridgeError as exc:
            print(f"  [{p['name']}] ({profile.system}) CONFIG ERROR - {exc}")
            continue
        try:
            result = await adapter.health_check()
            status = "OK" if result.success else f"FAIL - {result.message}"
            print(f"  [{p['name']}] ({profile.system}) {status}")
        finally:
            await adapter.disconnect()


async def _cmd_count(args: argparse.Namespace) -> None:
    adapter = _build_adapter(args)
    try:
        _print_json((await adapter.count(_build_request(args))).to_dict())
    finally:
        await adapter.disconnect()


async def _cmd_retrieve(args: argparse.Namespace) -> None:
    adapter = _build_adapter(args)
    try:
        _print_json((await adapter.retrieve(_build_request(args))).to_dict())
    finally:
        await adapter.disconnect()


async def _cmd_search(args: argparse.Namespace) -> None:
    adapter = _build_adapter(args)
    try:
        _print_json((await adapter.search(_build_request(args))).to_dict())
    finally:
        await adapter.disconnect()


def _cmd_serve(args: argparse.Namespace) -> None:
    """Start the MCP server."""
    from aveksa_bridge.mcp_server import main as mcp_main
    # Delegate to the MCP server's own argument handling
    sys.argv = ["aveksa-bridge-mcp"]
    if args.config:
        sys.argv += ["--config", args.config]
    if args.sse:
        sys.argv += ["--sse"]
    if args.port:
        sys.argv += ["--port", str(args.port)]
    mcp_main()


def _add_read_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", type=str, default=None)
    p.add_argument("-c", "--connection", required=True)
    p.add_argument("-s", "--structure", required=True, help="Aveksa structure, e.g. User")
    p.add_argument("-q", "--query", default="*", help="Query template ('*' for no filter)")
    p.add_argument(
        "-p", "--param", action="append", metavar="NAME=VALUE",
        help="Query parameter value (repeatable)",
    )
    p.add_argument("--fields", type=str, default=None, help="Comma-separated field list")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="aveksa-bridge",
        description="Aveksa Bridge - query an Aveksa server as a uniform record source",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # -- init --
    p_init = sub.add_parser("init", help="Generate a configuration template")
    p_init.add_argument(
        "-o", "--output",
        default=str(DEFAULT_CONFIG_FILE),
        help="Output path for the config file",
    )

    # -- test --
    p_test = sub.add_parser("test", help="Log in against all configured connections")
    p_test.add_argument("--config", type=str, default=None)

    # -- reads --
    _add_read_arguments(sub.add_parser("count", help="Count matching records"))
    _add_read_arguments(sub.add_parser("retrieve", help="Retrieve a single record"))
    _add_read_arguments(sub.add_parser("search", help="Search for records"))

    # -- serve --
    p_serve = sub.add_parser("serve", help="Start the MCP server")
    p_serve.add_argument("--config", type=str, default=None)
    p_serve.add_argument("--sse", action="store_true")
    p_serve.add_argument("--port", type=int, default=8080)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING, stream=sys.stderr
    )

    dispatch = {
        "init": _cmd_init,
        "test": _cmd_test,
        "count": _cmd_count,
        "retrieve": _cmd_retrieve,
        "search": _cmd_search,
    }

    if args.command == "serve":
        _cmd_serve(args)
        return

    try:
        asyncio.run(dispatch[args.command](args))
    except (BridgeError, KeyError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
