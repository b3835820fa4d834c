"""Request correlation.

Assigns request ids and matches inbound responses to the callers waiting
on them.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from mcp_client_cli.protocol.jsonrpc import JsonRpcRequest, JsonRpcResponse

logger = logging.getLogger(__name__)


@dataclass
class PendingCall:
    """A request that has been issued and not yet answered."""

    id: int
    method: str
    future: asyncio.Future[JsonRpcResponse]
    issued_at: float = field(default_factory=time.monotonic)


class RequestCorrelator:
    """Tracks outstanding requests by id.

    Ids come from a counter that starts at 1 and never repeats for the
    lifetime of the correlator. All access to the pending map goes through
    a single lock.
    """

    def __init__(self) -> None:
        """Initialize the correlator."""
        self._ids = itertools.count(1)
        self._pending: dict[int | str, PendingCall] = {}
        self._lock = threading.Lock()
        self._failure: BaseException | None = None

    @property
    def pending_count(self) -> int:
        """Number of calls still awaiting a response."""
        with self._lock:
            return len(self._pending)

    def pending_ids(self) -> list[int | str]:
        """Get the ids of outstanding calls, oldest first."""
        with self._lock:
            return list(self._pending)

    def issue(
        self,
        method: str,
        params: dict[str, Any] | None = None,
    ) -> tuple[JsonRpcRequest, asyncio.Future[JsonRpcResponse]]:
        """Allocate an id and register a pending call.

        Must be called from inside a running event loop.

        Args:
            method: Request method name.
            params: Optional request parameters.

        Returns:
            The request frame to send and the future its response resolves.

        Raises:
            BaseException: The error passed to fail_all, once it has run.
        """
        future: asyncio.Future[JsonRpcResponse] = asyncio.get_running_loop().create_future()
        with self._lock:
            if self._failure is not None:
                raise self._failure
            request_id = next(self._ids)
            self._pending[request_id] = PendingCall(id=request_id, method=method, future=future)
        return JsonRpcRequest(id=request_id, method=method, params=params), future

    def resolve(self, response: JsonRpcResponse) -> bool:
        """Resolve the pending call matching a response.

        Args:
            response: Inbound response frame.

        Returns:
            True if a pending call was resolved, False for unknown ids.
        """
        with self._lock:
            call = self._pending.pop(response.id, None) if response.id is not None else None

        if call is None:
            logger.warning("Received response for unknown request id %r", response.id)
            return False

        if not call.future.done():
            call.future.set_result(response)
        return True

    def discard(self, request_id: int | str) -> PendingCall | None:
        """Forget a pending call without resolving it.

        Used when the caller stops waiting, or the request never left.

        Args:
            request_id: Id of the call to drop.

        Returns:
            The dropped call, or None if it was not pending.
        """
        with self._lock:
            return self._pending.pop(request_id, None)

    def fail_all(self, error: BaseException) -> int:
        """Fail every pending call with the same error.

        Only the first invocation has any effect. Afterwards issue() raises
        the same error.

        Args:
            error: Terminal error delivered to every waiting caller.

        Returns:
            Number of calls that were failed.
        """
        with self._lock:
            if self._failure is not None:
                return 0
            self._failure = error
            calls = list(self._pending.values())
            self._pending.clear()

        for call in calls:
            if not call.future.done():
                call.future.set_exception(error)
        return len(calls)
