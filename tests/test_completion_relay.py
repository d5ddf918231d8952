import json

import httpx
import pytest

from scanchat.config.schema import Config
from scanchat.context import RequestContext
from scanchat.errors import CompletionErrorKind, StreamProtocolError, UpstreamCompletionError
from scanchat.providers.completion import CompletionRelay, SSEChunk, parse_sse_line
from scanchat.session.messages import Message


def _sse(*parts: str, done: bool = True) -> str:
    lines = [f"data: {json.dumps({'choices': [{'delta': {'content': p}}]})}\n\n" for p in parts]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines)


def _relay(handler, config: Config | None = None) -> tuple[CompletionRelay, httpx.AsyncClient]:
    config = config or Config()
    config.backends["openai"].api_key = "sk-test"
    ctx = RequestContext.from_config(config, request_id="relay")
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CompletionRelay(ctx, client=client), client


def test_parse_sse_line_variants() -> None:
    assert parse_sse_line("") is None
    assert parse_sse_line(": keep-alive") is None
    assert parse_sse_line("event: message") is None
    assert parse_sse_line("data: [DONE]") == SSEChunk(done=True)
    assert parse_sse_line('data: {"choices": [{"delta": {"content": "hi"}}]}') == SSEChunk(text="hi")
    assert parse_sse_line('data: {"choices": [{"delta": {}, "finish_reason": "stop"}]}') == SSEChunk(done=True)
    assert parse_sse_line('data: {"choices": []}') == SSEChunk()


def test_parse_sse_line_errors() -> None:
    with pytest.raises(StreamProtocolError):
        parse_sse_line("data: {not json")

    with pytest.raises(UpstreamCompletionError) as exc_info:
        parse_sse_line('data: {"error": {"message": "slow down", "code": 429}}')
    assert exc_info.value.kind is CompletionErrorKind.RATE_LIMITED
    assert str(exc_info.value) == "slow down"


async def test_streams_deltas_and_stops_at_done_marker() -> None:
    sent: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        body = _sse("Hel", "lo") + 'data: {"choices": [{"delta": {"content": "ignored"}}]}\n\n'
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    relay, client = _relay(handler)
    async with client:
        chunks = [c async for c in relay.complete("gpt-4", [Message("user", "hi")], temperature=0.9)]

    assert chunks == ["Hel", "lo"]
    request = sent[0]
    assert str(request.url) == "https://api.openai.com/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    payload = json.loads(request.content)
    assert payload["model"] == "gpt-4-1106-preview"
    assert payload["stream"] is True
    assert payload["temperature"] == 0.9
    assert payload["max_tokens"] == 1000
    assert payload["messages"][0]["role"] == "system"
    assert payload["messages"][1:] == [{"role": "user", "content": "hi"}]


async def test_context_requests_use_context_backend_and_prompt() -> None:
    sent: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(200, text=_sse("ok"))

    config = Config()
    relay, client = _relay(handler, config)
    async with client:
        await relay.collect("gpt-3.5-turbo-instruct", [Message("user", "hi")])
        await relay.collect(
            "gpt-3.5-turbo-instruct", [Message("user", "hi")], extra_context=Message("user", "tool output")
        )

    plain, with_context = (json.loads(r.content) for r in sent)
    assert sent[0].url.host == "openrouter.ai"
    assert sent[0].headers["X-Title"] == "scanchat"
    assert plain["model"] == "mistralai/mixtral-8x7b-instruct"
    assert plain["messages"][0]["content"] == config.prompts.system
    assert sent[1].url.host == "api.openai.com"
    assert with_context["model"] == "gpt-4-1106-preview"
    assert with_context["messages"][0]["content"] == config.prompts.context
    assert with_context["messages"][-1] == {"role": "user", "content": "tool output"}


async def test_clean_history_backend_drops_warning_turns() -> None:
    sent: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(200, text=_sse("ok"))

    window = [
        Message("user", "first"),
        Message("assistant", "Hold On! You've Hit Your Usage Cap."),
        Message("user", "second"),
    ]
    relay, client = _relay(handler)
    async with client:
        await relay.collect("gpt-3.5-turbo-instruct", window)

    messages = json.loads(sent[0].content)["messages"]
    assert messages[1:] == [{"role": "user", "content": "second"}]


@pytest.mark.parametrize(
    ("status", "kind"),
    [
        (400, CompletionErrorKind.BAD_REQUEST),
        (402, CompletionErrorKind.QUOTA),
        (429, CompletionErrorKind.RATE_LIMITED),
        (503, CompletionErrorKind.UPSTREAM_UNAVAILABLE),
        (418, CompletionErrorKind.OTHER),
    ],
)
async def test_http_errors_are_classified(status: int, kind: CompletionErrorKind) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": {"message": "nope"}})

    relay, client = _relay(handler)
    async with client:
        with pytest.raises(UpstreamCompletionError) as exc_info:
            await relay.collect("gpt-4", [Message("user", "hi")])

    assert exc_info.value.kind is kind
    assert exc_info.value.status_code == status
    assert str(exc_info.value) == "nope"


async def test_transport_failures_are_classified() -> None:
    async def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    for handler, kind in ((refused, CompletionErrorKind.UPSTREAM_UNAVAILABLE), (slow, CompletionErrorKind.TIMEOUT)):
        relay, client = _relay(handler)
        async with client:
            with pytest.raises(UpstreamCompletionError) as exc_info:
                await relay.collect("gpt-4", [Message("user", "hi")])
        assert exc_info.value.kind is kind


async def test_malformed_stream_line_fails_the_relay() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=_sse("partial", done=False) + "data: {oops\n\n")

    relay, client = _relay(handler)
    async with client:
        with pytest.raises(StreamProtocolError):
            await relay.collect("gpt-4", [Message("user", "hi")])
