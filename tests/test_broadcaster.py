"""Tests for weft.runtime.broadcaster — client connection management."""

from __future__ import annotations

import asyncio

import pytest

from weft.runtime.broadcaster import (
    Broadcaster,
    CellNotification,
    ClientConnection,
    ValueBroadcast,
)


class TestClientConnection:
    """Verify ClientConnection dataclass."""

    def test_frozen(self) -> None:
        conn = ClientConnection("c1")
        with pytest.raises(AttributeError):
            conn.client_id = "other"  # type: ignore[misc]

    def test_has_queue(self) -> None:
        assert isinstance(ClientConnection("c1").queue, asyncio.Queue)

    def test_equality_by_id(self) -> None:
        """Queue is excluded from comparison (compare=False)."""
        assert ClientConnection("c1") == ClientConnection("c1")


class TestSubscriptions:
    def test_subscribe_and_get(self) -> None:
        b = Broadcaster()
        conn = ClientConnection("c1")
        b.subscribe(conn)
        assert conn in b.get_subscribers()
        assert b.subscriber_count == 1

    def test_unsubscribe(self) -> None:
        b = Broadcaster()
        conn = ClientConnection("c1")
        b.subscribe(conn)
        b.unsubscribe(conn)
        assert b.subscriber_count == 0

    def test_unsubscribe_unknown_is_noop(self) -> None:
        b = Broadcaster()
        b.unsubscribe(ClientConnection("ghost"))
        assert b.subscriber_count == 0


class TestPush:
    @pytest.mark.asyncio
    async def test_push_value_excludes_origin(self) -> None:
        b = Broadcaster()
        origin, other = ClientConnection("origin"), ClientConnection("other")
        b.subscribe(origin)
        b.subscribe(other)

        count = await b.push_value(ValueBroadcast("a-0", 7), exclude_client="origin")

        assert count == 1
        assert origin.queue.empty()
        assert other.queue.get_nowait() == ValueBroadcast("a-0", 7)

    @pytest.mark.asyncio
    async def test_push_value_to_everyone(self) -> None:
        b = Broadcaster()
        for i in range(3):
            b.subscribe(ClientConnection(f"c{i}"))
        assert await b.push_value(ValueBroadcast("a-0", 1)) == 3

    @pytest.mark.asyncio
    async def test_push_cell(self) -> None:
        b = Broadcaster()
        conn = ClientConnection("c1")
        b.subscribe(conn)
        note = CellNotification("a", "error", error_message="NameError: x")
        assert await b.push_cell(note) == 1
        assert conn.queue.get_nowait() == note

    @pytest.mark.asyncio
    async def test_full_queue_drops(self) -> None:
        b = Broadcaster()
        conn = ClientConnection("c1", asyncio.Queue(maxsize=1))
        b.subscribe(conn)
        assert await b.push_cell(CellNotification("a", "queued")) == 1
        assert await b.push_cell(CellNotification("a", "running")) == 0
        assert conn.queue.qsize() == 1

    @pytest.mark.asyncio
    async def test_no_subscribers(self) -> None:
        assert await Broadcaster().push_cell(CellNotification("a", "ok")) == 0


class TestClientGenerator:
    @pytest.mark.asyncio
    async def test_yields_queued_messages(self) -> None:
        b = Broadcaster()
        conn = ClientConnection("c1")
        b.subscribe(conn)
        await b.push_cell(CellNotification("a", "queued"))
        await b.push_cell(CellNotification("a", "ok"))

        received = []
        gen = b.client_generator(conn)
        async for message in gen:
            received.append(message.status)
            if len(received) == 2:
                break
        await gen.aclose()
        assert received == ["queued", "ok"]

    @pytest.mark.asyncio
    async def test_cancellation_ends_quietly(self) -> None:
        b = Broadcaster()
        conn = ClientConnection("c1")

        async def consume() -> list[object]:
            return [m async for m in b.client_generator(conn)]

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        task.cancel()
        assert await task == []
