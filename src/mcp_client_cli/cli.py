"""Command-line entry point.

Connects to an MCP server, lists its tools and optionally calls one.

Configuration comes from a YAML file (--config) or from the environment:

    MCP_SERVER_URL       SSE endpoint of a running server, e.g. http://localhost:3000/sse
    MCP_SERVER_COMMAND   command that launches a stdio server, e.g. "node dist/index.js"
    EP_BASE_URL          forwarded to every tool call as the baseUrl argument
    EP_ACCESS_TOKEN      forwarded to every tool call as the accessToken argument

Example:

    MCP_SERVER_COMMAND="node ../server/dist/index.js" \\
        mcp-client-cli --call listFiles --arg limit=5
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import shlex
import sys
from pathlib import Path
from typing import Any, TextIO

from mcp_client_cli import __version__
from mcp_client_cli.audit import AuditLogger
from mcp_client_cli.config import ClientConfig, ConfigLoadError, config_from_env, load_config
from mcp_client_cli.errors import ClientError, ToolError
from mcp_client_cli.protocol.lifecycle import ClientInfo
from mcp_client_cli.protocol.tools import ContentItem, TextContent, UriContent
from mcp_client_cli.session import ClientSession
from mcp_client_cli.transport import create_transport

LOG_FORMAT = "[MCP] %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="mcp-client-cli",
        description="MCP client: list and call tools on an MCP server",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        help="Path to client config YAML file (default: read the environment)",
    )
    server = parser.add_mutually_exclusive_group()
    server.add_argument("--url", help="SSE endpoint of the server (overrides config)")
    server.add_argument("--command", help="Command launching a stdio server (overrides config)")
    parser.add_argument("--call", metavar="TOOL", help="Name of a tool to call after listing")
    parser.add_argument(
        "--arg",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Tool argument; VALUE is parsed as JSON when possible (repeatable)",
    )
    parser.add_argument("--arguments", metavar="JSON", help="Tool arguments as a JSON object")
    parser.add_argument("--timeout", type=float, help="Seconds to wait for the tool call")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"mcp-client-cli {__version__}",
    )
    return parser


def parse_tool_arguments(pairs: list[str], raw_json: str | None = None) -> dict[str, Any]:
    """Combine --arguments and --arg values into one mapping.

    Args:
        pairs: KEY=VALUE strings; values that parse as JSON are decoded.
        raw_json: Optional JSON object string, applied first.

    Returns:
        Tool arguments.

    Raises:
        ValueError: If the JSON is not an object or a pair has no '='.
    """
    arguments: dict[str, Any] = {}
    if raw_json:
        try:
            parsed = json.loads(raw_json)
        except json.JSONDecodeError as e:
            raise ValueError(f"--arguments is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise ValueError("--arguments must be a JSON object")
        arguments.update(parsed)

    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Tool argument must be KEY=VALUE: {pair!r}")
        try:
            arguments[key] = json.loads(value)
        except json.JSONDecodeError:
            arguments[key] = value
    return arguments


def format_content_item(index: int, item: ContentItem) -> str:
    """Render one content item for the console."""
    if isinstance(item, TextContent):
        return f"Content Item {index} (Type: text):\n{item.text}"
    if isinstance(item, UriContent):
        return f"Content Item {index} (Type: uri):\nURI: {item.uri} (MIME Type: {item.mime_type or 'unknown'})"
    return f"Content Item {index} (Type: {item.type}):\n{json.dumps(item.to_dict(), indent=2)}"


def format_tool_error(tool_name: str, error: ToolError) -> str:
    """Render a JSON-RPC tool error for the console."""
    lines = [
        f"Error calling '{tool_name}' tool:",
        f"  Code: {error.code}",
        f"  Message: {error.message}",
    ]
    if error.data is not None:
        lines.append(f"  Data: {json.dumps(error.data)}")
    return "\n".join(lines)


def configure_logging(level: str) -> None:
    """Send diagnostics to stderr, leaving stdout for results."""
    logging.basicConfig(stream=sys.stderr, level=level, format=LOG_FORMAT, force=True)


async def run(
    config: ClientConfig,
    tool_name: str | None = None,
    tool_arguments: dict[str, Any] | None = None,
    out: TextIO | None = None,
    err: TextIO | None = None,
) -> int:
    """Connect, list tools and optionally call one.

    Args:
        config: Validated configuration.
        tool_name: Tool to call, or None to only list tools.
        tool_arguments: Arguments layered over config.tool_arguments.
        out: Stream for results (defaults to sys.stdout).
        err: Stream for errors (defaults to sys.stderr).

    Returns:
        Exit code (0 for success, 1 for any failure).
    """
    out = out or sys.stdout
    err = err or sys.stderr

    audit = AuditLogger(Path(config.audit_log_file)) if config.audit_log_file else None
    session = ClientSession(
        create_transport(config),
        client_info=ClientInfo(name=config.client_name, version=config.client_version),
        protocol_version=config.protocol_version,
        audit_logger=audit,
    )

    try:
        print("Connecting to server...", file=out)
        await asyncio.wait_for(session.connect(), config.connect_timeout)
        print("Successfully connected and initialized!", file=out)

        tools = await session.list_tools()
        if tools:
            print("Connected to server with tools:", ", ".join(t.name for t in tools), file=out)
        else:
            print("No tools reported by the server.", file=out)

        if tool_name is None:
            return 0

        arguments = {**config.tool_arguments, **(tool_arguments or {})}
        print(f"\n--- Calling '{tool_name}' tool ---", file=out)
        try:
            result = await asyncio.wait_for(
                session.call_tool(tool_name, arguments), config.call_timeout
            )
        except ToolError as e:
            print(format_tool_error(tool_name, e), file=err)
            return 1

        print(f"\n'{tool_name}' Tool Result:", file=out)
        for index, item in enumerate(result, start=1):
            print(format_content_item(index, item), file=out)
        if result.is_error:
            print(f"Tool '{tool_name}' reported an error", file=err)
            return 1
        return 0

    except asyncio.TimeoutError:
        print("Error: timed out waiting for the server", file=err)
        return 1
    except (ClientError, ValueError) as e:
        print(f"Error: {e}", file=err)
        return 1
    finally:
        print("\nDisconnecting from server...", file=out)
        await session.close()
        print("Disconnected.", file=out)
        if audit:
            audit.close()


def main(argv: list[str] | None = None) -> int:
    """Run the client.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config) if args.config else config_from_env()
        if args.url:
            config.server_url, config.server_command, config.server_args = args.url, "", []
        elif args.command:
            command, *command_args = shlex.split(args.command)
            config.server_url, config.server_command, config.server_args = "", command, command_args
        if args.timeout is not None:
            config.call_timeout = args.timeout
        config.validate()
        tool_arguments = parse_tool_arguments(args.arg, args.arguments)
    except (ConfigLoadError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    configure_logging("DEBUG" if args.verbose else config.log_level)

    try:
        return asyncio.run(run(config, args.call, tool_arguments))
    except KeyboardInterrupt:
        print("Interrupted, shutting down", file=sys.stderr)
        return 130  # Standard exit code for SIGINT
    except Exception as e:
        print(f"Unhandled error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
