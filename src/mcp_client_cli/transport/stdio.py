"""STDIO transport: talks to a server launched as a child process.

Frames are newline-delimited JSON written to the child's stdin and read
from its stdout. The child's stderr is inherited so its diagnostics reach
the console without corrupting the protocol stream.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections.abc import AsyncIterator, Mapping, Sequence

from mcp_client_cli.errors import PeerClosed, SpawnFailed, TransportError, WriteFailed
from mcp_client_cli.transport.base import Transport

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 65_536


class LineBuffer:
    """Splits a byte stream into lines.

    A partial line at the end of the buffer is held until more data
    arrives or the stream ends.
    """

    def __init__(self) -> None:
        """Initialize an empty buffer."""
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet returned as a line."""
        return len(self._buffer)

    def feed(self, data: bytes) -> list[bytes]:
        """Add data and return every complete line.

        Lines are stripped of surrounding whitespace; empty lines are
        skipped.

        Args:
            data: Bytes read from the stream.

        Returns:
            Complete lines, in stream order.
        """
        self._buffer.extend(data)
        lines = []
        while True:
            index = self._buffer.find(b"\n")
            if index < 0:
                break
            line = bytes(self._buffer[:index]).strip()
            del self._buffer[: index + 1]
            if line:  # Skip empty lines
                lines.append(line)
        return lines

    def flush(self) -> bytes | None:
        """Return the unterminated tail at end of stream, if any."""
        tail = bytes(self._buffer).strip()
        self._buffer.clear()
        return tail or None


class StdioTransport(Transport):
    """Transport over the standard streams of a spawned server process."""

    def __init__(
        self,
        command: str,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        terminate_timeout: float = 2.0,
    ) -> None:
        """Initialize the transport.

        Args:
            command: Executable to launch.
            args: Arguments passed to the executable.
            env: Extra environment variables layered over the current
                environment.
            cwd: Working directory for the child process.
            terminate_timeout: Seconds to wait at each shutdown step before
                escalating (close stdin, then terminate, then kill).
        """
        self._command = command
        self._args = list(args)
        self._env = dict(env) if env else None
        self._cwd = cwd
        self._terminate_timeout = terminate_timeout
        self._process: asyncio.subprocess.Process | None = None
        self._receiving = False
        self._closed = False

    @property
    def is_closed(self) -> bool:
        """Check whether close() has been called."""
        return self._closed

    @property
    def pid(self) -> int | None:
        """Process id of the server, once spawned."""
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        """Exit status of the server, once it has exited."""
        return self._process.returncode if self._process else None

    async def open(self) -> None:
        """Spawn the server process.

        Raises:
            SpawnFailed: If the process cannot be started.
            TransportError: If the transport was already opened or closed.
        """
        if self._closed:
            raise TransportError("Transport is closed")
        if self._process is not None:
            raise TransportError("Transport is already open")

        env = {**os.environ, **self._env} if self._env else None
        try:
            self._process = await asyncio.create_subprocess_exec(
                self._command,
                *self._args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=None,
                env=env,
                cwd=self._cwd,
            )
        except OSError as e:
            raise SpawnFailed(f"Failed to start server {self._command!r}: {e}") from e

        logger.debug("Started server %r (pid %d)", self._command, self._process.pid)

    async def send(self, frame: bytes) -> None:
        """Write one frame to the server's stdin.

        Args:
            frame: Encoded JSON frame (no trailing newline).

        Raises:
            WriteFailed: If the transport is not open or the pipe is broken.
        """
        process = self._process
        if self._closed or process is None or process.stdin is None:
            raise WriteFailed("Transport is not open")
        if process.stdin.is_closing():
            raise WriteFailed("Server stdin is closed")

        try:
            process.stdin.write(frame + b"\n")
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise WriteFailed(f"Failed to write to server: {e}") from e

    async def receive(self) -> AsyncIterator[bytes]:
        """Yield frames read from the server's stdout.

        Raises:
            PeerClosed: If the server exits before close() is called.
            TransportError: If the transport is not open or already being
                read.
        """
        process = self._process
        if process is None or process.stdout is None:
            raise TransportError("Transport is not open")
        if self._receiving:
            raise TransportError("receive() may only be iterated once")
        self._receiving = True

        buffer = LineBuffer()
        while True:
            try:
                chunk = await process.stdout.read(READ_CHUNK_SIZE)
            except (BrokenPipeError, ConnectionResetError) as e:
                if self._closed:
                    return
                raise PeerClosed(f"Lost connection to server: {e}") from e

            if not chunk:  # EOF
                break
            for line in buffer.feed(chunk):
                yield line

        tail = buffer.flush()
        if tail:
            yield tail

        if not self._closed:
            raise PeerClosed(f"Server process exited unexpectedly (code {process.returncode})")

    async def close(self) -> None:
        """Shut the server down and release its streams.

        Closes stdin first so a well-behaved server can exit on its own,
        then escalates to terminate and finally kill.
        """
        if self._closed:
            return
        self._closed = True

        process = self._process
        if process is None:
            return

        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
            with contextlib.suppress(BrokenPipeError, ConnectionResetError):
                await process.stdin.wait_closed()

        if process.returncode is None:
            try:
                await asyncio.wait_for(process.wait(), self._terminate_timeout)
            except asyncio.TimeoutError:
                logger.debug("Server did not exit after stdin closed, terminating")
                with contextlib.suppress(ProcessLookupError):
                    process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), self._terminate_timeout)
                except asyncio.TimeoutError:
                    logger.warning("Server did not terminate, killing pid %d", process.pid)
                    with contextlib.suppress(ProcessLookupError):
                        process.kill()
                    await process.wait()

        logger.debug("Server process exited with code %s", process.returncode)
