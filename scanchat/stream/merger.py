"""Single-writer outbound stream shared by plugin runs and completion relays."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Protocol

from loguru import logger

from scanchat.stream.events import ContentDelta, End, Error, Heartbeat, StatusText, StreamEvent

_CLOSED = None


class StreamSink(Protocol):
    async def write(self, data: bytes) -> None: ...

    async def flush(self) -> None: ...

    async def close(self) -> None: ...


class ChannelSink:
    """Queue-backed sink consumed as an async iterator by a StreamingResponse."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()

    async def write(self, data: bytes) -> None:
        await self._queue.put(data)

    async def flush(self) -> None:
        # Let the response task pick up the chunk before the next write.
        await asyncio.sleep(0)

    async def close(self) -> None:
        await self._queue.put(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if chunk is _CLOSED:
                return
            yield chunk


def render(event: StreamEvent) -> str | None:
    """Text written for an event; None for End."""
    if isinstance(event, (Heartbeat, StatusText)):
        return f"{event.text}\n\n"
    if isinstance(event, ContentDelta):
        return event.text
    if isinstance(event, Error):
        return f"{event.message}\n\n"
    return None


class StreamMerger:
    """
    Owns the response stream for one request.

    Writes are serialized with a lock so a heartbeat never interleaves with a
    content write. The stream is closed exactly once: on End, on Error, when the
    producer raises, or when the pump is cancelled.
    """

    def __init__(self, sink: StreamSink, request_id: str = ""):
        self.sink = sink
        self.request_id = request_id
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event: StreamEvent) -> bool:
        """Write one event. Returns False once the stream is closed."""
        async with self._lock:
            if self._closed:
                return False
            text = render(event)
            if text:
                await self.sink.write(text.encode("utf-8"))
                await self.sink.flush()
            if isinstance(event, (End, Error)):
                await self._close_locked()
                return False
            return True

    async def close(self) -> None:
        async with self._lock:
            await self._close_locked()

    async def _close_locked(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.sink.close()

    async def write_text(self, text: str) -> bool:
        return await self.emit(ContentDelta(text))

    async def pump(self, producer: AsyncIterator[StreamEvent]) -> None:
        """Drive one producer to completion and always close the stream."""
        try:
            async for event in producer:
                if not await self.emit(event):
                    break
        except asyncio.CancelledError:
            logger.info(f"[{self.request_id}] stream cancelled")
            raise
        except Exception as e:
            logger.exception(f"[{self.request_id}] stream producer failed: {e}")
        finally:
            aclose = getattr(producer, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception as e:
                    logger.warning(f"[{self.request_id}] producer close failed: {e}")
            await self.close()
