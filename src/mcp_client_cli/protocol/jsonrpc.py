"""JSON-RPC 2.0 frame encoding and decoding.

Implements the JSON-RPC 2.0 message shapes used by the MCP protocol. All
functions here are pure: they never touch a transport.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from mcp_client_cli.errors import JsonRpcError, MalformedFrameError

JSONRPC_VERSION = "2.0"

# Standard JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Maximum inbound frame size (16 MB)
MAX_FRAME_SIZE = 16_777_216


@dataclass
class ErrorObject:
    """The ``error`` member of a JSON-RPC response."""

    code: int
    message: str
    data: Any | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to wire format.

        Returns:
            Dictionary with code, message and optional data.
        """
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error

    def to_exception(self) -> JsonRpcError:
        """Build the matching exception."""
        return JsonRpcError(self.code, self.message, self.data)


@dataclass
class JsonRpcRequest:
    """Represents a JSON-RPC request (has id)."""

    id: int | str
    method: str
    params: dict[str, Any] | list[Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to wire format."""
        frame: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id, "method": self.method}
        if self.params is not None:
            frame["params"] = self.params
        return frame


@dataclass
class JsonRpcNotification:
    """Represents a JSON-RPC notification (no id)."""

    method: str
    params: dict[str, Any] | list[Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to wire format."""
        frame: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": self.method}
        if self.params is not None:
            frame["params"] = self.params
        return frame


@dataclass
class JsonRpcResponse:
    """Represents a JSON-RPC response.

    Exactly one of ``result`` and ``error`` is meaningful: ``error`` is set
    for failures, otherwise ``result`` holds the payload (which may itself
    be ``None``).
    """

    id: int | str | None
    result: Any | None = None
    error: ErrorObject | None = None

    @property
    def is_error(self) -> bool:
        """Check whether this is an error response."""
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to wire format."""
        frame: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            frame["error"] = self.error.to_dict()
        else:
            frame["result"] = self.result
        return frame


Frame = JsonRpcRequest | JsonRpcNotification | JsonRpcResponse


def encode_frame(frame: Frame) -> bytes:
    """Encode a frame as a single compact JSON document.

    The output never contains a raw newline, so it can be written as one
    line of a newline-delimited stream.

    Args:
        frame: Request, notification or response to encode.

    Returns:
        UTF-8 encoded JSON.
    """
    return json.dumps(frame.to_dict(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _is_valid_id(value: Any) -> bool:
    # bool is a subclass of int but never a valid id
    return isinstance(value, int | str) and not isinstance(value, bool)


def _parse_error_object(raw: Any) -> ErrorObject:
    if not isinstance(raw, dict):
        raise MalformedFrameError("Invalid Response: error must be an object")
    code = raw.get("code")
    message = raw.get("message")
    if not isinstance(code, int) or isinstance(code, bool):
        raise MalformedFrameError("Invalid Response: error code must be an integer")
    if not isinstance(message, str):
        raise MalformedFrameError("Invalid Response: error message must be a string")
    return ErrorObject(code=code, message=message, data=raw.get("data"))


def decode_frame(raw: bytes | str) -> Frame:
    """Decode a single JSON-RPC frame.

    Args:
        raw: One JSON document, as bytes or text.

    Returns:
        Parsed request, notification or response.

    Raises:
        MalformedFrameError: If the frame is not valid JSON-RPC 2.0.
    """
    # Check frame size before parsing to bound memory use
    if len(raw) > MAX_FRAME_SIZE:
        raise MalformedFrameError(
            f"Frame too large: {len(raw)} bytes exceeds {MAX_FRAME_SIZE} limit", PARSE_ERROR
        )

    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedFrameError(f"Parse error: {e}", PARSE_ERROR) from e

    if not isinstance(data, dict):
        raise MalformedFrameError("Invalid frame: message must be an object")

    if data.get("jsonrpc") != JSONRPC_VERSION:
        raise MalformedFrameError("Invalid frame: jsonrpc must be '2.0'")

    if "method" in data:
        method = data["method"]
        if not isinstance(method, str):
            raise MalformedFrameError("Invalid Request: method must be a string")

        params = data.get("params")
        if params is not None and not isinstance(params, dict | list):
            raise MalformedFrameError("Invalid Request: params must be an object or array")

        if "result" in data or "error" in data:
            raise MalformedFrameError("Invalid Request: request carries result or error")

        if "id" not in data:
            return JsonRpcNotification(method=method, params=params)

        msg_id = data["id"]
        if not _is_valid_id(msg_id):
            raise MalformedFrameError("Invalid Request: id must be integer or string")
        return JsonRpcRequest(id=msg_id, method=method, params=params)

    # No method: must be a response
    if "id" not in data:
        raise MalformedFrameError("Invalid Response: missing id")

    has_result = "result" in data
    has_error = "error" in data
    if has_result == has_error:
        raise MalformedFrameError("Invalid Response: exactly one of result or error must be set")

    msg_id = data["id"]
    if has_error:
        # A null id is only legal on errors the peer could not attribute
        if msg_id is not None and not _is_valid_id(msg_id):
            raise MalformedFrameError("Invalid Response: id must be integer or string")
        return JsonRpcResponse(id=msg_id, error=_parse_error_object(data["error"]))

    if not _is_valid_id(msg_id):
        raise MalformedFrameError("Invalid Response: id must be integer or string")
    return JsonRpcResponse(id=msg_id, result=data["result"])


def format_response(msg_id: int | str, result: Any) -> bytes:
    """Format a successful JSON-RPC response.

    Args:
        msg_id: Request ID to echo back.
        result: Result payload.

    Returns:
        Encoded frame.
    """
    return encode_frame(JsonRpcResponse(id=msg_id, result=result))


def format_error(
    msg_id: int | str | None,
    code: int,
    message: str,
    data: Any | None = None,
) -> bytes:
    """Format a JSON-RPC error response.

    Args:
        msg_id: Request ID (or None when it could not be determined).
        code: Error code.
        message: Error message.
        data: Optional error data.

    Returns:
        Encoded frame.
    """
    return encode_frame(JsonRpcResponse(id=msg_id, error=ErrorObject(code, message, data)))


def format_notification(method: str, params: dict[str, Any] | None = None) -> bytes:
    """Format a JSON-RPC notification.

    Args:
        method: Notification method name.
        params: Optional parameters.

    Returns:
        Encoded frame.
    """
    return encode_frame(JsonRpcNotification(method=method, params=params))
