"""MCP protocol layer: JSON-RPC framing, correlation, lifecycle and tools."""

from mcp_client_cli.protocol.correlator import PendingCall, RequestCorrelator
from mcp_client_cli.protocol.jsonrpc import (
    ErrorObject,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    decode_frame,
    encode_frame,
    format_error,
    format_notification,
    format_response,
)
from mcp_client_cli.protocol.lifecycle import (
    MCP_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    ClientInfo,
    InitializeResult,
    SessionState,
)
from mcp_client_cli.protocol.tools import (
    OpaqueContent,
    TextContent,
    ToolCallResult,
    ToolDescriptor,
    ToolsListResult,
    UriContent,
    decode_content,
    decode_content_item,
    decode_result,
)

__all__ = [
    "ClientInfo",
    "ErrorObject",
    "InitializeResult",
    "JsonRpcNotification",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "MCP_PROTOCOL_VERSION",
    "OpaqueContent",
    "PendingCall",
    "RequestCorrelator",
    "SUPPORTED_PROTOCOL_VERSIONS",
    "SessionState",
    "TextContent",
    "ToolCallResult",
    "ToolDescriptor",
    "ToolsListResult",
    "UriContent",
    "decode_content",
    "decode_content_item",
    "decode_frame",
    "decode_result",
    "encode_frame",
    "format_error",
    "format_notification",
    "format_response",
]
