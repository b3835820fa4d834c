"""Error taxonomy for the MCP client.

Session-wide failures (transport, protocol) are terminal for the session.
Request-scoped failures (JSON-RPC error responses, a single bad frame)
leave other in-flight calls untouched.
"""

from __future__ import annotations

from typing import Any


class ClientError(Exception):
    """Base class for all client errors."""

    pass


class ProtocolError(ClientError):
    """Raised when protocol constraints are violated."""

    pass


class MalformedFrameError(ProtocolError):
    """Raised when an inbound frame cannot be decoded."""

    def __init__(self, message: str, code: int = -32600) -> None:
        """Initialize the error.

        Args:
            message: Human-readable description of the defect.
            code: JSON-RPC error code describing the defect.
        """
        super().__init__(message)
        self.code = code


class TransportError(ClientError):
    """Base class for transport failures."""

    pass


class SpawnFailed(TransportError):
    """Raised when the server subprocess cannot be started."""

    pass


class ConnectFailed(TransportError):
    """Raised when the event stream cannot be established."""

    pass


class PeerClosed(TransportError):
    """Raised when the server goes away before the transport was closed."""

    pass


class WriteFailed(TransportError):
    """Raised when an outbound frame cannot be delivered."""

    pass


class SessionClosed(ClientError):
    """Raised for operations on a closed or not-yet-ready session."""

    pass


class JsonRpcError(ClientError):
    """JSON-RPC error response with code and message."""

    def __init__(self, code: int, message: str, data: Any | None = None) -> None:
        """Initialize the error.

        Args:
            code: JSON-RPC error code.
            message: Human-readable error message.
            data: Optional additional error data.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ToolError(JsonRpcError):
    """Raised when the server answers a tool call with an error response."""

    pass
