"""Transport interface shared by the stdio and SSE bindings."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator


class Transport(ABC):
    """Duplex channel carrying encoded JSON-RPC frames.

    A transport is single-use: once closed it cannot be reopened, and
    receive() may only be iterated once.
    """

    @abstractmethod
    async def open(self) -> None:
        """Establish the channel.

        Raises:
            TransportError: If the channel cannot be established.
        """
        pass

    @abstractmethod
    async def send(self, frame: bytes) -> None:
        """Deliver one encoded frame to the peer.

        Args:
            frame: One JSON document, without framing.

        Raises:
            WriteFailed: If the frame cannot be delivered.
        """
        pass

    @abstractmethod
    def receive(self) -> AsyncIterator[bytes]:
        """Iterate inbound frames until the transport closes.

        Raises:
            PeerClosed: If the peer goes away before close() was called.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the channel.

        Idempotent, and safe to call before open().
        """
        pass

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """Check whether close() has been called."""
        pass
