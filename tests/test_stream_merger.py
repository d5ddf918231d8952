import asyncio

from scanchat.stream.events import ContentDelta, End, Error, ErrorKind, Heartbeat, StatusText
from scanchat.stream.merger import ChannelSink, StreamMerger, render


class ListSink:
    def __init__(self) -> None:
        self.chunks: list[bytes] = []
        self.closes = 0

    async def write(self, data: bytes) -> None:
        self.chunks.append(data)

    async def flush(self) -> None:
        pass

    async def close(self) -> None:
        self.closes += 1

    @property
    def text(self) -> str:
        return b"".join(self.chunks).decode("utf-8")


def test_render_separates_progress_lines() -> None:
    assert render(Heartbeat("tick")) == "tick\n\n"
    assert render(StatusText("done")) == "done\n\n"
    assert render(ContentDelta("raw")) == "raw"
    assert render(Error(ErrorKind.TIMEOUT, "late")) == "late\n\n"
    assert render(End()) is None


async def test_stream_closes_once_on_end() -> None:
    sink = ListSink()
    merger = StreamMerger(sink, request_id="r1")

    assert await merger.emit(StatusText("starting")) is True
    assert await merger.write_text("body") is True
    assert await merger.emit(End()) is False
    assert await merger.emit(ContentDelta("late")) is False
    await merger.close()

    assert sink.text == "starting\n\nbody"
    assert sink.closes == 1
    assert merger.closed is True


async def test_error_is_written_then_stream_closes() -> None:
    sink = ListSink()
    merger = StreamMerger(sink)

    async def producer():
        yield StatusText("starting")
        yield Error(ErrorKind.BACKEND_UNAVAILABLE, "failed")
        yield ContentDelta("never written")

    await merger.pump(producer())

    assert sink.text == "starting\n\nfailed\n\n"
    assert sink.closes == 1


async def test_producer_exception_closes_without_extra_text() -> None:
    sink = ListSink()
    merger = StreamMerger(sink)
    cleaned_up = []

    async def producer():
        try:
            yield ContentDelta("one ")
            yield ContentDelta("two")
            raise RuntimeError("boom")
        finally:
            cleaned_up.append(True)

    await merger.pump(producer())

    assert sink.chunks == [b"one ", b"two"]
    assert sink.closes == 1
    assert cleaned_up == [True]


async def test_concurrent_writers_do_not_interleave() -> None:
    sink = ListSink()
    merger = StreamMerger(sink)

    async def writer(label: str) -> None:
        for i in range(20):
            await merger.write_text(f"<{label}{i}>")

    await asyncio.gather(writer("a"), writer("b"))

    assert len(sink.chunks) == 40
    assert all(chunk.startswith(b"<") and chunk.endswith(b">") for chunk in sink.chunks)


async def test_channel_sink_feeds_async_iteration() -> None:
    sink = ChannelSink()
    merger = StreamMerger(sink)

    async def producer():
        yield Heartbeat("hold on")
        yield ContentDelta("result")
        yield End()

    pump = asyncio.create_task(merger.pump(producer()))
    received = [chunk async for chunk in sink]
    await pump

    assert b"".join(received) == b"hold on\n\nresult"


async def test_cancelled_pump_closes_producer() -> None:
    sink = ChannelSink()
    merger = StreamMerger(sink)
    closed = asyncio.Event()

    async def producer():
        try:
            yield StatusText("starting")
            await asyncio.sleep(10)
            yield ContentDelta("never")
        finally:
            closed.set()

    pump = asyncio.create_task(merger.pump(producer()))
    await asyncio.sleep(0.01)
    pump.cancel()
    try:
        await pump
    except asyncio.CancelledError:
        pass

    assert closed.is_set()
    assert merger.closed is True
