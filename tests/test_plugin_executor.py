import asyncio
import json
from datetime import datetime, timezone

import httpx

from scanchat.config.schema import Config
from scanchat.context import RequestContext
from scanchat.heartbeat.ticker import HeartbeatTicker
from scanchat.plugins import executor as executor_module
from scanchat.plugins.executor import (
    DONE_TEXT,
    GENERIC_ERROR_TEXT,
    STARTING_TEXT,
    TIMEOUT_TEXT,
    PluginExecutor,
    read_output,
)
from scanchat.plugins.tools import naabu, subfinder
from scanchat.providers.completion import CompletionRelay
from scanchat.session.messages import Message
from scanchat.stream.events import ContentDelta, End, Error, ErrorKind, Heartbeat, StatusText

FIXED_NOW = datetime(2024, 1, 15, 17, 30, 0, tzinfo=timezone.utc)


def _ctx(**plugins) -> RequestContext:
    config = Config()
    config.plugins.secret = "runner-secret"
    for key, value in plugins.items():
        setattr(config.plugins, key, value)
    return RequestContext.from_config(config, request_id="test")


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _collect(events) -> list:
    return [event async for event in events]


async def test_successful_scan_emits_status_report_and_end() -> None:
    seen: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"output": "80\n443\n"})

    async with _client(handler) as client:
        executor = PluginExecutor(_ctx(), client=client, clock=lambda: FIXED_NOW)
        command = naabu.SPEC.parse("/naabu -host example.com")
        events = await _collect(executor.execute(naabu.SPEC, command))

    assert events[0] == StatusText(STARTING_TEXT)
    assert events[1] == StatusText(DONE_TEXT)
    assert isinstance(events[2], ContentDelta)
    assert "### Identified Ports:\n```\n80\n443\n```" in events[2].text
    assert "01/15/2024, 12:30:00 PM (UTC-5)" in events[2].text
    assert events[-1] == End()
    assert seen[0].url.path == "/api/chat/plugins/naabu"
    assert seen[0].url.params.get_list("host") == ["example.com"]
    assert seen[0].headers["Authorization"] == "runner-secret"


async def test_empty_output_reports_nothing_found() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"output": ""})

    async with _client(handler) as client:
        executor = PluginExecutor(_ctx(), client=client)
        command = naabu.SPEC.parse("/naabu -host example.com")
        events = await _collect(executor.execute(naabu.SPEC, command))

    assert events == [
        StatusText(STARTING_TEXT),
        StatusText("🔍 Looks like there aren't any open ports to report for example.com."),
        End(),
    ]


async def test_failure_marker_and_http_error_become_generic_error() -> None:
    async def marker_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="Error executing Naabu command: Error reading output file")

    async def broken_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="internal error")

    command = naabu.SPEC.parse("/naabu -host example.com")
    for handler in (marker_handler, broken_handler):
        async with _client(handler) as client:
            executor = PluginExecutor(_ctx(), client=client)
            events = await _collect(executor.execute(naabu.SPEC, command))
        assert events == [
            StatusText(STARTING_TEXT),
            Error(ErrorKind.BACKEND_UNAVAILABLE, GENERIC_ERROR_TEXT),
            End(),
        ]


async def test_heartbeats_while_backend_is_slow() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.2)
        return httpx.Response(200, json={"output": "80"})

    async with _client(handler) as client:
        executor = PluginExecutor(_ctx(heartbeat_interval_s=0.02), client=client)
        command = naabu.SPEC.parse("/naabu -host example.com")
        events = await _collect(executor.execute(naabu.SPEC, command))

    heartbeats = [e for e in events if isinstance(e, Heartbeat)]
    assert heartbeats
    first_status = events.index(StatusText(DONE_TEXT))
    assert all(events.index(h) < first_status for h in heartbeats)
    assert events[-1] == End()


def _slow_handler(output: str, delay: float = 0.05):
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(delay)
        return httpx.Response(200, text=output)

    return handler


async def test_no_heartbeat_after_terminal_event(monkeypatch) -> None:
    tickers: list[HeartbeatTicker] = []

    class RecordingTicker(HeartbeatTicker):
        def __init__(self, *args, **kwargs) -> None:
            super().__init__(*args, **kwargs)
            tickers.append(self)

    monkeypatch.setattr(executor_module, "HeartbeatTicker", RecordingTicker)
    command = naabu.SPEC.parse("/naabu -host example.com")

    for output in ("80\n443", "", "Error executing Naabu command"):
        async with _client(_slow_handler(output)) as client:
            executor = PluginExecutor(_ctx(heartbeat_interval_s=0.01), client=client)
            events = await _collect(executor.execute(naabu.SPEC, command))

        ticker = tickers[-1]
        ticks = ticker.ticks
        await asyncio.sleep(0.08)

        assert ticker.running is False
        assert ticker.ticks == ticks
        assert not [t for t in asyncio.all_tasks() if t.get_name().endswith("-ticker") and not t.done()]
        terminal = next(i for i, e in enumerate(events) if i > 0 and not isinstance(e, Heartbeat))
        assert not any(isinstance(e, Heartbeat) for e in events[terminal:])
        assert events[-1] == End()
    assert len(tickers) == 3


async def test_backend_exceeding_max_wait_times_out() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={"output": "80"})

    async with _client(handler) as client:
        executor = PluginExecutor(_ctx(max_wait_s=0.05), client=client)
        command = naabu.SPEC.parse("/naabu -host example.com")
        events = await _collect(executor.execute(naabu.SPEC, command))

    assert events[-2:] == [Error(ErrorKind.TIMEOUT, TIMEOUT_TEXT), End()]


async def test_closing_the_stream_cancels_backend_call() -> None:
    cancelled = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return httpx.Response(200, json={"output": "80"})

    async with _client(handler) as client:
        executor = PluginExecutor(_ctx(heartbeat_interval_s=0.01), client=client)
        command = naabu.SPEC.parse("/naabu -host example.com")
        events = executor.execute(naabu.SPEC, command)
        assert await events.__anext__() == StatusText(STARTING_TEXT)
        assert isinstance(await events.__anext__(), Heartbeat)
        await events.aclose()

    assert cancelled.is_set()


async def test_analysis_streams_completion_after_report() -> None:
    completion_payloads: list[dict] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/chat/completions"):
            completion_payloads.append(json.loads(request.content))
            body = (
                'data: {"choices": [{"delta": {"content": "Two "}}]}\n\n'
                'data: {"choices": [{"delta": {"content": "subdomains."}}]}\n\n'
                "data: [DONE]\n\n"
            )
            return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})
        return httpx.Response(200, json={"output": "api.example.com\ndev.example.com"})

    ctx = _ctx()
    async with _client(handler) as client:
        relay = CompletionRelay(ctx, client=client)
        executor = PluginExecutor(ctx, relay, client=client)
        command = subfinder.SPEC.parse("/subfinder -d example.com")
        events = await _collect(
            executor.execute(subfinder.SPEC, command, model="gpt-4", window=[Message("user", "scan it")])
        )

    texts = [e.text for e in events if isinstance(e, ContentDelta)]
    assert "### Identified Subdomains:" in texts[0]
    assert "".join(texts[1:]) == "Two subdomains."
    assert events[-1] == End()
    sent = completion_payloads[0]["messages"]
    assert sent[0]["role"] == "system"
    assert sent[1] == {"role": "user", "content": "scan it"}
    assert 'Subfinder scan of "example.com"' in sent[-1]["content"]


def test_read_output_accepts_json_or_text() -> None:
    assert read_output(httpx.Response(200, json={"output": "a\nb"})) == "a\nb"
    assert read_output(httpx.Response(200, json={"output": None})) == ""
    assert read_output(httpx.Response(200, text="plain")) == "plain"
