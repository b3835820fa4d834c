"""SSE transport: talks to a server over HTTP.

The server pushes frames to the client on a long-lived Server-Sent Events
stream. Its first event, ``endpoint``, names the URL (carrying the
server-side session id) that the client POSTs its own frames to.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx

from mcp_client_cli.errors import ConnectFailed, PeerClosed, TransportError, WriteFailed
from mcp_client_cli.transport.base import Transport

logger = logging.getLogger(__name__)


@dataclass
class SseEvent:
    """A dispatched Server-Sent Event."""

    event: str
    data: str
    id: str | None = None


class SseDecoder:
    """Incremental, line-oriented Server-Sent Events parser."""

    def __init__(self) -> None:
        """Initialize the decoder."""
        self._event: str | None = None
        self._data: list[str] = []
        self._last_id: str | None = None

    @property
    def last_event_id(self) -> str | None:
        """Id of the most recent event that carried one."""
        return self._last_id

    def feed_line(self, line: str) -> SseEvent | None:
        """Process one line of the stream.

        Args:
            line: A line without its terminator.

        Returns:
            The completed event when the line is the blank separator,
            otherwise None.
        """
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()

        if line.startswith(":"):  # Comment / heartbeat
            return None

        name, _, value = line.partition(":")
        # Per the SSE format, strip a single leading space from the value
        if value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            self._last_id = value
        return None

    def _dispatch(self) -> SseEvent | None:
        event_type, data = self._event, self._data
        self._event, self._data = None, []
        if not data:
            return None
        return SseEvent(event=event_type or "message", data="\n".join(data), id=self._last_id)


class SseTransport(Transport):
    """Transport over an SSE stream plus HTTP POST."""

    def __init__(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            url: URL of the event stream (e.g. ``http://localhost:3000/sse``).
            headers: Extra headers sent with every request.
            timeout: Connect/write timeout in seconds. Reads on the event
                stream never time out.
            client: HTTP client to use. When omitted the transport creates
                one and closes it on close().
        """
        self._url = url
        self._headers = dict(headers or {})
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._response: httpx.Response | None = None
        self._events: AsyncIterator[SseEvent] | None = None
        self._backlog: deque[bytes] = deque()
        self._endpoint: str | None = None
        self._receiving = False
        self._closed = False

    @property
    def is_closed(self) -> bool:
        """Check whether close() has been called."""
        return self._closed

    @property
    def endpoint(self) -> str | None:
        """URL frames are POSTed to, once announced by the server."""
        return self._endpoint

    async def open(self) -> None:
        """Connect to the event stream and wait for the message endpoint.

        Raises:
            ConnectFailed: If the stream cannot be established or ends
                before the endpoint is announced.
            TransportError: If the transport was already opened or closed.
        """
        if self._closed:
            raise TransportError("Transport is closed")
        if self._response is not None:
            raise TransportError("Transport is already open")

        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, read=None),
                headers=self._headers,
            )

        try:
            request = self._client.build_request(
                "GET",
                self._url,
                headers={"Accept": "text/event-stream", "Cache-Control": "no-cache", **self._headers},
            )
            self._response = await self._client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise ConnectFailed(f"Timed out connecting to {self._url}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ConnectFailed(f"Failed to connect to {self._url}: {e}") from e

        if self._response.is_error:
            raise ConnectFailed(f"Failed to connect to {self._url}: HTTP {self._response.status_code}")

        self._events = self._iter_events(self._response)
        try:
            async for event in self._events:
                if event.event == "endpoint":
                    self._endpoint = urljoin(self._url, event.data.strip())
                    break
                if event.event == "message":
                    self._backlog.append(event.data.encode("utf-8"))
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise ConnectFailed(f"Event stream failed during setup: {e}") from e

        if self._endpoint is None:
            raise ConnectFailed("Event stream ended before the server announced its endpoint")

        logger.debug("SSE stream open, posting messages to %s", self._endpoint)

    async def _iter_events(self, response: httpx.Response) -> AsyncIterator[SseEvent]:
        decoder = SseDecoder()
        async for line in response.aiter_lines():
            event = decoder.feed_line(line)
            if event is not None:
                yield event

    async def send(self, frame: bytes) -> None:
        """POST one frame to the message endpoint.

        Args:
            frame: Encoded JSON frame.

        Raises:
            WriteFailed: If the transport is not open, the request fails or
                the server rejects it.
        """
        if self._closed or self._client is None or self._endpoint is None:
            raise WriteFailed("Transport is not open")

        try:
            response = await self._client.post(
                self._endpoint,
                content=frame,
                headers={"Content-Type": "application/json", **self._headers},
            )
        except httpx.HTTPError as e:
            raise WriteFailed(f"Failed to post message: {e}") from e

        if response.is_error:
            raise WriteFailed(f"Server rejected message: HTTP {response.status_code}")

    async def receive(self) -> AsyncIterator[bytes]:
        """Yield frames carried by ``message`` events.

        Raises:
            PeerClosed: If the stream ends before close() is called.
            TransportError: If the transport is not open or already being
                read.
        """
        if self._events is None:
            raise TransportError("Transport is not open")
        if self._receiving:
            raise TransportError("receive() may only be iterated once")
        self._receiving = True

        while self._backlog:
            yield self._backlog.popleft()

        try:
            async for event in self._events:
                if event.event == "message":
                    yield event.data.encode("utf-8")
                elif event.event == "endpoint":
                    self._endpoint = urljoin(self._url, event.data.strip())
                else:
                    logger.debug("Ignoring SSE event %r", event.event)
        except (httpx.HTTPError, httpx.StreamError) as e:
            if self._closed:
                return
            raise PeerClosed(f"Event stream failed: {e}") from e

        if not self._closed:
            raise PeerClosed("Event stream ended unexpectedly")

    async def close(self) -> None:
        """Close the event stream and, if owned, the HTTP client.

        Raises:
            TransportError: If the stream fails while being closed. The
                client is released regardless.
        """
        if self._closed:
            return
        self._closed = True

        try:
            if self._response is not None:
                await self._response.aclose()
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to close event stream: {e}") from e
        finally:
            if self._owns_client and self._client is not None:
                await self._client.aclose()
