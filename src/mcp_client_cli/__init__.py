"""MCP client: sessions, transports and tool invocation for MCP servers."""

__version__ = "1.0.0"

from mcp_client_cli.errors import (  # noqa: E402
    ClientError,
    ConnectFailed,
    JsonRpcError,
    MalformedFrameError,
    PeerClosed,
    ProtocolError,
    SessionClosed,
    SpawnFailed,
    ToolError,
    TransportError,
    WriteFailed,
)
from mcp_client_cli.protocol.lifecycle import ClientInfo, InitializeResult, SessionState  # noqa: E402
from mcp_client_cli.protocol.tools import (  # noqa: E402
    ContentItem,
    OpaqueContent,
    TextContent,
    ToolCallResult,
    ToolDescriptor,
    UriContent,
)
from mcp_client_cli.session import ClientSession  # noqa: E402
from mcp_client_cli.transport import SseTransport, StdioTransport, Transport  # noqa: E402

__all__ = [
    "ClientError",
    "ClientInfo",
    "ClientSession",
    "ConnectFailed",
    "ContentItem",
    "InitializeResult",
    "JsonRpcError",
    "MalformedFrameError",
    "OpaqueContent",
    "PeerClosed",
    "ProtocolError",
    "SessionClosed",
    "SessionState",
    "SpawnFailed",
    "SseTransport",
    "StdioTransport",
    "TextContent",
    "ToolCallResult",
    "ToolDescriptor",
    "ToolError",
    "Transport",
    "TransportError",
    "UriContent",
    "WriteFailed",
    "__version__",
]
