"""Tests for the STDIO transport, including a real subprocess server."""

import asyncio
import sys

import pytest

from mcp_client_cli.errors import PeerClosed, SessionClosed, SpawnFailed, ToolError, TransportError, WriteFailed
from mcp_client_cli.protocol.lifecycle import SessionState
from mcp_client_cli.protocol.tools import TextContent, UriContent
from mcp_client_cli.session import ClientSession
from mcp_client_cli.transport.stdio import LineBuffer, StdioTransport


class TestLineBuffer:
    """Tests for newline framing."""

    def test_splits_complete_lines(self):
        """Should return every complete line."""
        buffer = LineBuffer()
        assert buffer.feed(b'{"a":1}\n{"b":2}\n') == [b'{"a":1}', b'{"b":2}']
        assert buffer.pending == 0

    def test_holds_partial_line(self):
        """Should keep a partial line until its newline arrives."""
        buffer = LineBuffer()
        assert buffer.feed(b'{"jsonrpc":') == []
        assert buffer.pending > 0
        assert buffer.feed(b'"2.0"}\n{"nex') == [b'{"jsonrpc":"2.0"}']
        assert buffer.flush() == b'{"nex'

    def test_skips_empty_lines_and_strips_whitespace(self):
        """Should skip blank lines and strip surrounding whitespace."""
        buffer = LineBuffer()
        assert buffer.feed(b"\n\n  {}  \r\n\n") == [b"{}"]

    def test_flush_empty_buffer(self):
        """Should return None when nothing is buffered."""
        buffer = LineBuffer()
        buffer.feed(b"{}\n")
        assert buffer.flush() is None


class TestStdioTransport:
    """Tests for the transport against real processes."""

    def test_spawn_failure(self):
        """Should raise SpawnFailed for a missing executable."""
        transport = StdioTransport("/nonexistent/mcp-server-binary")
        with pytest.raises(SpawnFailed):
            asyncio.run(transport.open())

    def test_close_before_open_is_safe(self):
        """Should allow close() before open(), repeatedly."""
        transport = StdioTransport(sys.executable)

        async def scenario():
            await transport.close()
            await transport.close()

        asyncio.run(scenario())
        assert transport.is_closed

    def test_send_before_open_fails(self):
        """Should refuse to send before the process exists."""
        transport = StdioTransport(sys.executable)
        with pytest.raises(WriteFailed):
            asyncio.run(transport.send(b"{}"))

    def test_round_trip_through_echo_process(self):
        """Should write newline-terminated frames and read them back."""
        transport = StdioTransport(sys.executable, ["-c", "import sys; sys.stdout.write(sys.stdin.read())"])

        async def scenario():
            await transport.open()
            await transport.send(b'{"n":1}')
            await transport.send(b'{"n":2}')
            process = transport._process
            process.stdin.close()
            received = []
            with pytest.raises(PeerClosed):
                async for frame in transport.receive():
                    received.append(frame)
            await transport.close()
            return received

        assert asyncio.run(scenario()) == [b'{"n":1}', b'{"n":2}']

    def test_unterminated_last_line_is_delivered(self):
        """Should deliver a final line without newline at end of stream."""
        transport = StdioTransport(sys.executable, ["-c", "import sys; sys.stdout.write('{\"tail\":1}')"])

        async def scenario():
            await transport.open()
            received = []
            with pytest.raises(PeerClosed):
                async for frame in transport.receive():
                    received.append(frame)
            await transport.close()
            return received

        assert asyncio.run(scenario()) == [b'{"tail":1}']

    def test_receive_only_once(self):
        """Should refuse a second receive iterator."""
        transport = StdioTransport(
            sys.executable, ["-c", "import time; time.sleep(5)"], terminate_timeout=0.2
        )

        async def scenario():
            await transport.open()
            try:
                first = transport.receive()
                reader = asyncio.create_task(first.__anext__())
                await asyncio.sleep(0.01)
                with pytest.raises(TransportError):
                    await transport.receive().__anext__()
                reader.cancel()
                await asyncio.gather(reader, return_exceptions=True)
            finally:
                await transport.close()

        asyncio.run(scenario())

    def test_close_terminates_stubborn_child(self):
        """Should terminate a child that ignores stdin closing."""
        transport = StdioTransport(
            sys.executable, ["-c", "import time; time.sleep(60)"], terminate_timeout=0.2
        )

        async def scenario():
            await transport.open()
            await transport.close()
            return transport.returncode

        assert asyncio.run(scenario()) is not None

    def test_passes_environment(self):
        """Should layer extra variables over the current environment."""
        transport = StdioTransport(
            sys.executable,
            ["-c", "import os, sys; sys.stdout.write(os.environ['MCP_TEST_VALUE'] + '\\n')"],
            env={"MCP_TEST_VALUE": "from-env"},
        )

        async def scenario():
            await transport.open()
            frames = []
            with pytest.raises(PeerClosed):
                async for frame in transport.receive():
                    frames.append(frame)
            await transport.close()
            return frames

        assert asyncio.run(scenario()) == [b"from-env"]


class TestStdioSession:
    """End-to-end tests against the stdio test server."""

    def test_full_session(self, stdio_server_command):
        """Should handshake, list tools and call them over real pipes."""
        command, *args = stdio_server_command

        async def scenario():
            async with ClientSession(StdioTransport(command, args)) as session:
                tools = await session.list_tools()
                listed = await session.call_tool("listFiles", {"limit": 5})
                fetched = await session.call_tool("getFile", {"fileId": "abc"})
                return session.server, tools, listed, fetched

        server, tools, listed, fetched = asyncio.run(scenario())
        assert server.server_info["name"] == "stdio-test-server"
        assert [t.name for t in tools] == ["listFiles", "getFile", "noisy", "crash", "slow"]
        assert list(listed) == [TextContent(text="5 files")]
        assert list(fetched) == [UriContent(uri="file:///abc")]

    def test_tool_error_keeps_session_usable(self, stdio_server_command):
        """Should surface the server's error and keep the session READY."""
        command, *args = stdio_server_command

        async def scenario():
            async with ClientSession(StdioTransport(command, args)) as session:
                with pytest.raises(ToolError) as exc_info:
                    await session.call_tool("nope")
                still = await session.call_tool("listFiles", {"limit": 1})
                return exc_info.value, session.state, still

        error, state, still = asyncio.run(scenario())
        assert error.code == -32601
        assert state == SessionState.READY
        assert still.text == "1 files"

    def test_garbage_line_is_skipped(self, stdio_server_command):
        """Should drop a non-JSON line and still get the answer after it."""
        command, *args = stdio_server_command

        async def scenario():
            async with ClientSession(StdioTransport(command, args)) as session:
                return await session.call_tool("noisy")

        assert asyncio.run(scenario()).text == "still here"

    def test_concurrent_calls_over_pipes(self, stdio_server_command):
        """Should match concurrent calls over one pipe pair."""
        command, *args = stdio_server_command

        async def scenario():
            async with ClientSession(StdioTransport(command, args)) as session:
                return await asyncio.gather(
                    *(session.call_tool("listFiles", {"limit": n}) for n in range(10))
                )

        results = asyncio.run(scenario())
        assert [r.text for r in results] == [f"{n} files" for n in range(10)]

    def test_child_exit_fails_pending_call(self, stdio_server_command):
        """Should fail the pending call with PeerClosed when the child dies."""
        command, *args = stdio_server_command

        async def scenario():
            session = ClientSession(StdioTransport(command, args))
            await session.connect()
            with pytest.raises(PeerClosed):
                await session.call_tool("crash")
            state = session.state
            with pytest.raises(SessionClosed):
                await session.call_tool("listFiles")
            return state

        assert asyncio.run(scenario()) == SessionState.CLOSED

    def test_close_waits_for_hung_child_to_be_killed(self):
        """Should only return from close() once a hung child is gone."""
        script = "\n".join(
            [
                "import json, os, signal, sys, time",
                "signal.signal(signal.SIGTERM, signal.SIG_IGN)",
                "msg = json.loads(sys.stdin.readline())",
                "reply = {'jsonrpc': '2.0', 'id': msg['id'], 'result': {",
                "    'protocolVersion': msg['params']['protocolVersion'],",
                "    'capabilities': {}, 'serverInfo': {'name': 'hung'}}}",
                "sys.stdout.write(json.dumps(reply) + '\\n')",
                "sys.stdout.flush()",
                "sys.stdin.readline()",
                "os.close(1)",
                "time.sleep(30)",
            ]
        )
        transport = StdioTransport(sys.executable, ["-c", script], terminate_timeout=0.2)

        async def scenario():
            session = ClientSession(transport)
            await session.connect()
            for _ in range(500):
                if session.state == SessionState.CLOSED:
                    break
                await asyncio.sleep(0.01)
            await session.close()
            return session.close_reason, transport.returncode

        reason, returncode = asyncio.run(scenario())
        assert isinstance(reason, PeerClosed)
        assert returncode is not None

    def test_close_with_call_in_flight(self, stdio_server_command):
        """Should fail an in-flight call with SessionClosed and stop the child."""
        command, *args = stdio_server_command
        transport = StdioTransport(command, args, terminate_timeout=0.5)

        async def scenario():
            session = ClientSession(transport)
            await session.connect()
            call = asyncio.create_task(session.call_tool("slow", {"delay": 5}))
            await asyncio.sleep(0.1)
            await session.close()
            with pytest.raises(SessionClosed):
                await call

        asyncio.run(scenario())
        assert transport.is_closed
        assert transport.returncode is not None
