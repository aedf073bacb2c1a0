"""
Producer/consumer channel for incremental text delivery.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)

_CLOSED = object()


class ChunkChannel:
    """
    Append-only stream of text chunks from the orchestrator to the host.

    The producer calls ``send`` and finally ``close``. The consumer iterates
    with ``async for`` and may call ``close`` early; chunks sent after that
    are dropped. Chunk boundaries carry no meaning (not words, not sentences).
    """

    def __init__(self):
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._closed = False
        self.sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, chunk: str) -> None:
        if self._closed or not chunk:
            return
        self.sent += 1
        await self._queue.put(chunk)

    def close(self) -> None:
        """Close the channel. Safe to call more than once, from either end."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def receive(self) -> Optional[str]:
        """Next chunk, or None once the channel is closed and drained."""
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            chunk = await self.receive()
            if chunk is None:
                return
            yield chunk
