"""RecordChannel — one-directional hand-off from a crawler to its consumer."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from pinboard_schema import Record

from .errors import ChannelClosedError

_CLOSED = object()


class RecordChannel:
    """Unbuffered channel of :class:`Record` objects.

    :meth:`send` returns only once the consumer has received the record,
    so at most one record is ever in flight.  :meth:`close` marks the end
    of the stream; consumers iterating with ``async for`` stop cleanly.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, record: Record) -> None:
        if self._closed:
            raise ChannelClosedError("send on closed channel")
        await self._queue.put(record)
        await self._queue.join()

    def close(self) -> None:
        """Signal end-of-stream.  Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def receive(self) -> Record:
        """Return the next record, or raise :class:`ChannelClosedError`
        once the channel is closed.
        """
        item = await self._queue.get()
        self._queue.task_done()
        if item is _CLOSED:
            # leave the marker for any later receive()
            self._queue.put_nowait(_CLOSED)
            raise ChannelClosedError("channel closed")
        assert isinstance(item, Record)
        return item

    async def __aiter__(self) -> AsyncIterator[Record]:
        while True:
            try:
                yield await self.receive()
            except ChannelClosedError:
                return
