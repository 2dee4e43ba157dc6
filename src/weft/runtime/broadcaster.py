"""Client broadcaster — pushes value and cell updates to connected front-ends.

Each connected client owns an asyncio queue.  Two kinds of messages go out:

1. ``ValueBroadcast`` — a holder's new value after an interaction, sent to
   every client except the one that caused it, before any re-execution.
2. ``CellNotification`` — a cell's status, output or error changed.

Thread-safe: the subscriber set is protected by a lock.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from weft._types import CellStatus
    from weft.runtime.executor import CellOutput


@dataclass(frozen=True, slots=True)
class ClientConnection:
    """A connected front-end client.

    Attributes:
        client_id: Unique identifier for this connection.
        queue: asyncio.Queue[Any] for pushing messages to the client's generator.

    """

    client_id: str
    queue: asyncio.Queue[Any] = field(default_factory=asyncio.Queue, compare=False, hash=False)


@dataclass(frozen=True, slots=True)
class ValueBroadcast:
    """A holder value pushed to clients."""

    object_id: str
    value: Any


@dataclass(frozen=True, slots=True)
class CellNotification:
    """A cell's visible state changed.

    Attributes:
        cell_id: The cell.
        status: New status.
        output: Last captured output (``None`` unless status is ``ok``).
        error_message: Error text for ``error`` and ``skipped`` cells.

    """

    cell_id: str
    status: CellStatus
    output: CellOutput | None = field(default=None, compare=False)
    error_message: str | None = None


class Broadcaster:
    """Manages client connections and fans out messages.

    Full client queues drop messages rather than block the runtime.

    """

    def __init__(self) -> None:
        self._subscribers: set[ClientConnection] = set()
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        """Number of connected clients."""
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, conn: ClientConnection) -> None:
        """Register a client."""
        with self._lock:
            self._subscribers.add(conn)

    def unsubscribe(self, conn: ClientConnection) -> None:
        """Remove a client."""
        with self._lock:
            self._subscribers.discard(conn)

    def get_subscribers(self) -> frozenset[ClientConnection]:
        """Snapshot of connected clients (no lock held on return)."""
        with self._lock:
            return frozenset(self._subscribers)

    def _fan_out(self, message: Any, exclude_client: str | None = None) -> int:
        count = 0
        for conn in self.get_subscribers():
            if exclude_client is not None and conn.client_id == exclude_client:
                continue
            try:
                conn.queue.put_nowait(message)
                count += 1
            except asyncio.QueueFull:
                pass  # Drop if client queue is full
        return count

    async def push_value(
        self,
        broadcast: ValueBroadcast,
        *,
        exclude_client: str | None = None,
    ) -> int:
        """Push a holder value to every client except ``exclude_client``.

        Returns:
            Number of clients notified.

        """
        return self._fan_out(broadcast, exclude_client)

    async def push_cell(self, notification: CellNotification) -> int:
        """Push a cell status change to every client.

        Returns:
            Number of clients notified.

        """
        return self._fan_out(notification)

    async def client_generator(self, conn: ClientConnection) -> AsyncIterator[Any]:
        """Async generator that yields messages from a connection's queue.

        Catches ``CancelledError`` (client disconnect / task cancellation)
        and ``GeneratorExit`` (generator cleanup) so a closing client ends
        the stream quietly.

        """
        try:
            while True:
                message = await conn.queue.get()
                yield message
        except (asyncio.CancelledError, GeneratorExit):
            return
