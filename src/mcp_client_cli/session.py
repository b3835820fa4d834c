"""MCP client session.

Owns one transport and one request correlator, drives the initialize
handshake and exposes tool discovery and invocation. A background receive
loop routes every inbound frame: responses to the correlator, notifications
to registered handlers, and server-initiated requests to a minimal
responder.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from mcp_client_cli.audit import AuditLogger
from mcp_client_cli.errors import (
    ClientError,
    JsonRpcError,
    MalformedFrameError,
    PeerClosed,
    ProtocolError,
    SessionClosed,
    ToolError,
    TransportError,
)
from mcp_client_cli.protocol.correlator import RequestCorrelator
from mcp_client_cli.protocol.jsonrpc import (
    METHOD_NOT_FOUND,
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
    CANCELLED,
    INITIALIZE,
    INITIALIZED,
    MCP_PROTOCOL_VERSION,
    PING,
    TOOLS_CALL,
    TOOLS_LIST,
    ClientInfo,
    InitializeResult,
    SessionState,
)
from mcp_client_cli.protocol.tools import ToolCallResult, ToolDescriptor, ToolsListResult, decode_result
from mcp_client_cli.transport.base import Transport

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[dict[str, Any]], Awaitable[None] | None]


class ClientSession:
    """A single connection to an MCP server.

    Lifecycle: DISCONNECTED -> CONNECTING -> READY -> CLOSED. CLOSED is
    terminal; a new session (and transport) is needed to reconnect.

    Any number of list_tools/call_tool calls may be in flight at once.
    Responses are matched to callers by request id, in whatever order the
    server sends them. No per-call timeout is applied here; wrap calls in
    asyncio.wait_for to bound them.
    """

    def __init__(
        self,
        transport: Transport,
        client_info: ClientInfo | None = None,
        protocol_version: str = MCP_PROTOCOL_VERSION,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            transport: Unopened transport; the session takes ownership.
            client_info: Identity announced during the handshake.
            protocol_version: Protocol version to request.
            audit_logger: Optional audit trail for tool calls.
        """
        self._transport = transport
        self._correlator = RequestCorrelator()
        self._client_info = client_info or ClientInfo()
        self._protocol_version = protocol_version
        self._audit = audit_logger
        self._state = SessionState.DISCONNECTED
        self._server: InitializeResult | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._notification_handlers: dict[str, NotificationHandler] = {}
        self._close_reason: BaseException | None = None
        self._shutdown_done = asyncio.Event()

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def is_ready(self) -> bool:
        """Check if the session accepts tool operations."""
        return self._state == SessionState.READY

    @property
    def server(self) -> InitializeResult | None:
        """Capabilities negotiated during the handshake."""
        return self._server

    @property
    def close_reason(self) -> BaseException | None:
        """Error that ended the session, once closed."""
        return self._close_reason

    @property
    def pending_requests(self) -> int:
        """Number of requests awaiting a response."""
        return self._correlator.pending_count

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        """Register a handler for a server notification.

        Handlers receive the notification params. Coroutine handlers run as
        background tasks so they never stall the receive loop.

        Args:
            method: Notification method, e.g. ``notifications/tools/list_changed``.
            handler: Callable invoked with the params mapping.
        """
        self._notification_handlers[method] = handler

    async def __aenter__(self) -> ClientSession:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def connect(self) -> InitializeResult:
        """Open the transport and perform the initialize handshake.

        Returns:
            The server's negotiated capabilities.

        Raises:
            SessionClosed: If the session is already closed.
            ProtocolError: If the session was already connected, or the
                server's handshake answer is unusable.
            TransportError: If the transport fails during the handshake.
            JsonRpcError: If the server rejects the initialize request.
        """
        if self._state == SessionState.CLOSED:
            raise SessionClosed("Session is closed")
        if self._state != SessionState.DISCONNECTED:
            raise ProtocolError("Session is already connected")

        self._state = SessionState.CONNECTING
        try:
            await self._transport.open()
            self._receive_task = asyncio.create_task(self._receive_loop(), name="mcp-receive-loop")

            result = await self._request(
                INITIALIZE,
                self._client_info.initialize_params(self._protocol_version),
                handshake=True,
            )
            self._server = InitializeResult.from_dict(result)
            await self._send(format_notification(INITIALIZED))
        except ClientError as e:
            await self._shutdown(e)
            raise
        except BaseException:
            await self._shutdown(SessionClosed("Handshake aborted"))
            raise

        if self._state != SessionState.CONNECTING:
            # The transport went away while the handshake was finishing
            raise self._close_reason or SessionClosed("Session is closed")

        self._state = SessionState.READY
        server_name = self._server.server_info.get("name", "unknown")
        logger.info(
            "Connected to %s (protocol %s)", server_name, self._server.protocol_version
        )
        if self._audit:
            self._audit.log_session_event(
                "connected",
                {"server": self._server.server_info, "protocol_version": self._server.protocol_version},
            )
        return self._server

    async def list_tools(self) -> list[ToolDescriptor]:
        """Fetch the server's tools, following pagination.

        Nothing is cached: every call asks the server again.

        Returns:
            Tool descriptors in the order the server returned them.

        Raises:
            SessionClosed: If the session is not ready.
            ProtocolError: If the server's answer is malformed.
        """
        self._require_ready()

        tools: list[ToolDescriptor] = []
        seen_cursors: set[str] = set()
        cursor: str | None = None
        while True:
            params = {"cursor": cursor} if cursor else None
            page = ToolsListResult.from_dict(await self._request(TOOLS_LIST, params))
            tools.extend(page.tools)

            if page.next_cursor is None:
                return tools
            if page.next_cursor in seen_cursors:
                raise ProtocolError(f"Server repeated pagination cursor {page.next_cursor!r}")
            seen_cursors.add(page.next_cursor)
            cursor = page.next_cursor

    async def call_tool(
        self,
        name: str,
        arguments: Mapping[str, Any] | None = None,
    ) -> ToolCallResult:
        """Invoke a tool.

        Args:
            name: Tool name as advertised by the server.
            arguments: JSON-serializable arguments, passed through untouched.

        Returns:
            Decoded result; iterating it yields the content items in the
            order received.

        Raises:
            SessionClosed: If the session is not ready.
            ValueError: If the name is empty.
            ToolError: If the server answers with a JSON-RPC error.
            TransportError: If the transport fails before the answer arrives.
        """
        self._require_ready()
        if not isinstance(name, str) or not name:
            raise ValueError("Tool name must be a non-empty string")

        arguments = dict(arguments or {})
        audit_id = uuid.uuid4().hex
        started = time.monotonic()
        if self._audit:
            self._audit.log_request(audit_id, name, arguments)

        status = "error"
        try:
            result = decode_result(
                await self._request(TOOLS_CALL, {"name": name, "arguments": arguments})
            )
            status = "tool_error" if result.is_error else "success"
            return result
        except JsonRpcError as e:
            raise ToolError(e.code, e.message, e.data) from e
        finally:
            if self._audit:
                self._audit.log_response(audit_id, status, (time.monotonic() - started) * 1000)

    async def ping(self) -> None:
        """Check that the server is responsive.

        Raises:
            SessionClosed: If the session is not ready.
        """
        self._require_ready()
        await self._request(PING)

    async def close(self) -> None:
        """Close the session.

        Interrupts the receive loop, closes the transport and fails every
        outstanding request with SessionClosed. Idempotent.
        """
        await self._shutdown(SessionClosed("Session closed"))

    def _require_ready(self) -> None:
        if self._state == SessionState.CLOSED:
            raise SessionClosed("Session is closed")
        if self._state != SessionState.READY:
            raise SessionClosed("Session is not ready")

    async def _request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        handshake: bool = False,
    ) -> Any:
        """Send a request and wait for its response.

        Returns:
            The response result.

        Raises:
            JsonRpcError: If the server answers with an error.
        """
        allowed = SessionState.CONNECTING if handshake else SessionState.READY
        if self._state != allowed:
            self._require_ready()

        request, future = self._correlator.issue(method, params)
        sent = False
        try:
            await self._send(encode_frame(request), request_id=request.id)
            sent = True
            response = await future
        except asyncio.CancelledError:
            # Only a request that was written gets a cancellation notice
            if self._correlator.discard(request.id) is not None and sent:
                self._spawn(self._send_cancelled(request.id))
            raise

        if response.error is not None:
            raise response.error.to_exception()
        return response.result

    async def _send(self, frame: bytes, request_id: int | str | None = None) -> None:
        try:
            await self._transport.send(frame)
        except TransportError as e:
            if request_id is not None:
                self._correlator.discard(request_id)
            await self._shutdown(e)
            raise

    async def _send_cancelled(self, request_id: int | str) -> None:
        if self._state != SessionState.READY:
            return
        frame = format_notification(
            CANCELLED, {"requestId": request_id, "reason": "Request cancelled by client"}
        )
        try:
            await self._transport.send(frame)
        except TransportError as e:
            logger.debug("Could not send cancellation for request %s: %s", request_id, e)

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _receive_loop(self) -> None:
        error: BaseException
        try:
            async for raw in self._transport.receive():
                await self._dispatch(raw)
            error = PeerClosed("Transport closed")
        except TransportError as e:
            error = e
        except Exception as e:
            logger.exception("Receive loop failed")
            error = TransportError(f"Receive loop failed: {e}")

        if self._state != SessionState.CLOSED:
            logger.warning("Connection lost: %s", error)
        await self._shutdown(error)

    async def _dispatch(self, raw: bytes) -> None:
        try:
            frame = decode_frame(raw)
        except MalformedFrameError as e:
            logger.warning("Dropping malformed frame: %s", e)
            return

        if isinstance(frame, JsonRpcResponse):
            self._correlator.resolve(frame)
        elif isinstance(frame, JsonRpcNotification):
            self._handle_notification(frame)
        else:
            await self._handle_server_request(frame)

    def _handle_notification(self, notification: JsonRpcNotification) -> None:
        handler = self._notification_handlers.get(notification.method)
        if handler is None:
            logger.debug("Ignoring notification %s", notification.method)
            return

        params = notification.params if isinstance(notification.params, dict) else {}
        try:
            outcome = handler(params)
        except Exception:
            logger.exception("Notification handler for %s failed", notification.method)
            return
        if inspect.isawaitable(outcome):
            self._spawn(self._await_handler(notification.method, outcome))

    async def _await_handler(self, method: str, outcome: Awaitable[None]) -> None:
        try:
            await outcome
        except Exception:
            logger.exception("Notification handler for %s failed", method)

    async def _handle_server_request(self, request: JsonRpcRequest) -> None:
        if request.method == PING:
            reply = format_response(request.id, {})
        else:
            logger.debug("Rejecting server request %s", request.method)
            reply = format_error(request.id, METHOD_NOT_FOUND, f"Method not found: {request.method}")

        try:
            await self._transport.send(reply)
        except TransportError as e:
            logger.warning("Could not answer server request %s: %s", request.method, e)

    async def _shutdown(self, reason: BaseException) -> None:
        """Close the session once; later callers wait until teardown is done."""
        if self._state == SessionState.CLOSED:
            await self._shutdown_done.wait()
            return
        self._state = SessionState.CLOSED
        self._close_reason = reason

        try:
            failed = self._correlator.fail_all(reason)

            task = self._receive_task
            if task is not None and task is not asyncio.current_task() and not task.done():
                task.cancel()
                await asyncio.wait([task])

            try:
                await self._transport.close()
            except (TransportError, OSError) as e:
                logger.warning("Error while closing transport: %s", e)

            logger.info("Session closed: %s", reason)
            if self._audit:
                self._audit.log_session_event(
                    "closed", {"reason": str(reason), "pending_failed": failed}
                )
        finally:
            self._shutdown_done.set()
