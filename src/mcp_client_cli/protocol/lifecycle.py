"""MCP lifecycle definitions.

Connection states, the initialize handshake payloads and the result the
server returns from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mcp_client_cli.errors import ProtocolError

# Supported MCP protocol versions (newest first)
SUPPORTED_PROTOCOL_VERSIONS = ["2025-06-18", "2025-03-26", "2024-11-05"]
# Default version to request
MCP_PROTOCOL_VERSION = "2025-06-18"

INITIALIZE = "initialize"
INITIALIZED = "notifications/initialized"
CANCELLED = "notifications/cancelled"
PING = "ping"
TOOLS_LIST = "tools/list"
TOOLS_CALL = "tools/call"


class SessionState(Enum):
    """Client session lifecycle states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    CLOSED = "closed"


@dataclass
class ClientInfo:
    """Identity the client announces during the handshake."""

    name: str = "mcp-client-cli"
    version: str = "1.0.0"
    capabilities: dict[str, Any] = field(default_factory=dict)

    def initialize_params(self, protocol_version: str) -> dict[str, Any]:
        """Build the initialize request parameters.

        Args:
            protocol_version: Protocol version to request.

        Returns:
            Parameters for the initialize request.
        """
        return {
            "protocolVersion": protocol_version,
            "capabilities": self.capabilities,
            "clientInfo": {"name": self.name, "version": self.version},
        }


@dataclass
class InitializeResult:
    """Capabilities negotiated with the server."""

    protocol_version: str
    capabilities: dict[str, Any] = field(default_factory=dict)
    server_info: dict[str, Any] = field(default_factory=dict)
    instructions: str | None = None

    @property
    def supports_tools(self) -> bool:
        """Check whether the server advertised the tools capability."""
        return "tools" in self.capabilities

    @classmethod
    def from_dict(cls, result: Any) -> InitializeResult:
        """Parse an initialize response result.

        Args:
            result: The ``result`` member of the initialize response.

        Returns:
            InitializeResult instance.

        Raises:
            ProtocolError: If the result is malformed or the negotiated
                version is not supported.
        """
        if not isinstance(result, dict):
            raise ProtocolError("Initialize result must be an object")

        version = result.get("protocolVersion")
        if not isinstance(version, str):
            raise ProtocolError("Initialize result is missing protocolVersion")
        if version not in SUPPORTED_PROTOCOL_VERSIONS:
            raise ProtocolError(f"Unsupported protocol version from server: {version}")

        capabilities = result.get("capabilities") or {}
        server_info = result.get("serverInfo") or {}
        if not isinstance(capabilities, dict) or not isinstance(server_info, dict):
            raise ProtocolError("Initialize result has malformed capabilities or serverInfo")

        instructions = result.get("instructions")
        return cls(
            protocol_version=version,
            capabilities=capabilities,
            server_info=server_info,
            instructions=instructions if isinstance(instructions, str) else None,
        )
