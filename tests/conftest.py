"""Pytest configuration and shared fakes for client tests."""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest

from mcp_client_cli.errors import PeerClosed, WriteFailed
from mcp_client_cli.transport.base import Transport

FIXTURES = Path(__file__).parent / "fixtures"

_EOF = object()

TOOLS = [
    {
        "name": "listFiles",
        "description": "List files in the catalog",
        "inputSchema": {
            "type": "object",
            "properties": {"limit": {"type": "integer"}},
        },
    },
    {
        "name": "getFile",
        "description": "Fetch one file by id",
        "inputSchema": {
            "type": "object",
            "properties": {"fileId": {"type": "string"}},
            "required": ["fileId"],
        },
    },
]


def fake_server(message: dict[str, Any]) -> list[dict[str, Any]]:
    """Answer client frames the way a small MCP server would."""
    if "id" not in message or "method" not in message:
        return []  # notifications and replies to server requests

    method = message["method"]
    params = message.get("params") or {}
    msg_id = message["id"]

    if method == "initialize":
        result = {
            "protocolVersion": params["protocolVersion"],
            "capabilities": {"tools": {"listChanged": True}},
            "serverInfo": {"name": "fake-server", "version": "0.1.0"},
        }
    elif method == "tools/list":
        result = {"tools": TOOLS}
    elif method == "ping":
        result = {}
    elif method == "tools/call" and params["name"] == "listFiles":
        limit = params["arguments"].get("limit", 10)
        result = {"content": [{"type": "text", "text": f"{limit} files"}]}
    elif method == "tools/call" and params["name"] == "getFile":
        file_id = params["arguments"]["fileId"]
        result = {
            "content": [
                {"type": "uri", "uri": f"https://files.example.com/{file_id}", "mimeType": "image/png"}
            ]
        }
    else:
        return [
            {
                "jsonrpc": "2.0",
                "id": msg_id,
                "error": {"code": -32601, "message": "Method not found"},
            }
        ]

    return [{"jsonrpc": "2.0", "id": msg_id, "result": result}]


class ScriptedTransport(Transport):
    """In-memory transport whose peer is a Python callable.

    Every frame the client sends is decoded, recorded in ``sent`` and passed
    to ``handler``; the frames the handler returns are delivered back to
    the client. Tests can also inject frames with push() and simulate the
    server going away with disconnect().
    """

    def __init__(
        self,
        handler: Callable[[dict[str, Any]], list[dict[str, Any]] | None] | None = fake_server,
    ) -> None:
        self.handler = handler
        self.sent: list[dict[str, Any]] = []
        self.open_error: Exception | None = None
        self.opened = False
        self.close_calls = 0
        self._inbox: asyncio.Queue[Any] | None = None
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def sent_methods(self) -> list[str]:
        return [m.get("method", "<response>") for m in self.sent]

    async def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self._inbox = asyncio.Queue()
        self.opened = True

    async def send(self, frame: bytes) -> None:
        if self._closed or self._inbox is None:
            raise WriteFailed("Transport is not open")
        message = json.loads(frame)
        self.sent.append(message)
        if self.handler is not None:
            for reply in self.handler(message) or []:
                self.push(reply)

    def push(self, message: dict[str, Any] | bytes) -> None:
        assert self._inbox is not None
        raw = message if isinstance(message, bytes) else json.dumps(message).encode()
        self._inbox.put_nowait(raw)

    def disconnect(self) -> None:
        assert self._inbox is not None
        self._inbox.put_nowait(_EOF)

    async def receive(self) -> AsyncIterator[bytes]:
        assert self._inbox is not None
        while True:
            item = await self._inbox.get()
            if item is _EOF:
                if self._closed:
                    return
                raise PeerClosed("Server went away")
            yield item

    async def close(self) -> None:
        self.close_calls += 1
        if self._closed:
            return
        self._closed = True
        if self._inbox is not None:
            self._inbox.put_nowait(_EOF)


async def wait_for_sent(transport: ScriptedTransport, count: int, method: str | None = None) -> None:
    """Yield to the event loop until ``count`` matching frames were sent."""
    for _ in range(1000):
        frames = [m for m in transport.sent if method is None or m.get("method") == method]
        if len(frames) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"Expected {count} frames for {method!r}, saw {transport.sent_methods}")


@pytest.fixture
def transport() -> ScriptedTransport:
    """A scripted transport backed by the fake server."""
    return ScriptedTransport()


@pytest.fixture
def stdio_server_command() -> list[str]:
    """Command line launching the stdio test server."""
    return [sys.executable, str(FIXTURES / "stdio_server.py")]
