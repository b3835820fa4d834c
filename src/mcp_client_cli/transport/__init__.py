"""Transport bindings for MCP communication."""

from __future__ import annotations

from typing import TYPE_CHECKING

from mcp_client_cli.transport.base import Transport
from mcp_client_cli.transport.sse import SseDecoder, SseEvent, SseTransport
from mcp_client_cli.transport.stdio import LineBuffer, StdioTransport

if TYPE_CHECKING:
    from mcp_client_cli.config import ClientConfig


def create_transport(config: ClientConfig) -> Transport:
    """Build the transport a configuration asks for.

    Args:
        config: Validated client configuration.

    Returns:
        An SSE transport when a server URL is configured, otherwise a
        stdio transport launching the configured command.
    """
    if config.server_url:
        return SseTransport(
            config.server_url,
            headers=config.server_headers,
            timeout=config.connect_timeout,
        )
    return StdioTransport(
        config.server_command,
        args=config.server_args,
        env=config.server_env,
    )


__all__ = [
    "LineBuffer",
    "SseDecoder",
    "SseEvent",
    "SseTransport",
    "StdioTransport",
    "Transport",
    "create_transport",
]
