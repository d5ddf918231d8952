"""HTTP surface: streaming chat endpoint and public completions API."""

from __future__ import annotations

import asyncio
import json
import secrets
import time
import uuid
from typing import Any, AsyncIterator

import httpx
from fastapi import Body, Depends, FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from loguru import logger

from scanchat.auth.status import StatusChecker
from scanchat.config.schema import Config
from scanchat.context import RequestContext
from scanchat.errors import (
    AuthRejectedError,
    CompletionErrorKind,
    InvalidRequestError,
    MessageTooLongError,
    ModelNotFoundError,
    SearchUnavailableError,
    UpstreamCompletionError,
)
from scanchat.plugins.dispatcher import ContextCompletion, PluginDispatcher, StaticReply, ToolExecution
from scanchat.plugins.executor import PluginExecutor
from scanchat.plugins.registry import ToolRegistry, default_registry
from scanchat.providers.completion import CompletionRelay
from scanchat.providers.tokenizer import TokenizerFactory, tokenizer_scope
from scanchat.ratelimit.limiter import RateLimiter, caller_key
from scanchat.search.retrieval import VectorRetriever
from scanchat.search.web import WebSearch
from scanchat.session.messages import Message, normalize_messages
from scanchat.session.window import WindowBuilder, WindowResult
from scanchat.stream.events import ContentDelta, End, StreamEvent
from scanchat.stream.merger import ChannelSink, StreamMerger

PUBLIC_ALLOWED_KEYS = frozenset({"messages", "model", "max_tokens", "temperature", "stream"})

_ERROR_STATUS: dict[CompletionErrorKind, int] = {
    CompletionErrorKind.BAD_REQUEST: 400,
    CompletionErrorKind.QUOTA: 402,
    CompletionErrorKind.MODERATION: 403,
    CompletionErrorKind.TIMEOUT: 504,
    CompletionErrorKind.RATE_LIMITED: 429,
    CompletionErrorKind.UPSTREAM_UNAVAILABLE: 502,
    CompletionErrorKind.AUTH: 500,
    CompletionErrorKind.OTHER: 500,
}

_ERROR_TEXT: dict[CompletionErrorKind, str] = {
    CompletionErrorKind.BAD_REQUEST: "The model could not process this request.",
    CompletionErrorKind.QUOTA: "The model provider is out of credits. Please try again later.",
    CompletionErrorKind.MODERATION: "This request was flagged by the model provider's moderation.",
    CompletionErrorKind.TIMEOUT: "The model took too long to respond. Please try again.",
    CompletionErrorKind.RATE_LIMITED: "Too many requests to the model provider. Please wait and retry.",
    CompletionErrorKind.UPSTREAM_UNAVAILABLE: "The model provider is currently unavailable.",
    CompletionErrorKind.AUTH: "The model provider rejected the server credentials.",
    CompletionErrorKind.OTHER: "The model provider returned an error.",
}


def completion_error_status(kind: CompletionErrorKind) -> int:
    return _ERROR_STATUS.get(kind, 500)


def completion_error_text(error: UpstreamCompletionError, *, expose: bool = False) -> str:
    text = _ERROR_TEXT.get(error.kind, _ERROR_TEXT[CompletionErrorKind.OTHER])
    detail = str(error)
    if expose and detail and detail != error.kind.value:
        text = f"{text} ({detail})"
    return text


def stream_events(producer: AsyncIterator[StreamEvent], request_id: str) -> StreamingResponse:
    """Serve a StreamEvent producer through a StreamMerger as a chunked response."""
    sink = ChannelSink()
    merger = StreamMerger(sink, request_id=request_id)

    async def body() -> AsyncIterator[bytes]:
        pump = asyncio.create_task(merger.pump(producer), name=f"stream-{request_id}")
        try:
            async for chunk in sink:
                yield chunk
        finally:
            if not pump.done():
                pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass

    return StreamingResponse(
        body(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Request-Id": request_id},
    )


async def _with_preamble(preamble: str, events: AsyncIterator[StreamEvent]) -> AsyncIterator[StreamEvent]:
    try:
        if preamble:
            yield ContentDelta(f"{preamble}\n\n")
        async for event in events:
            yield event
    finally:
        await events.aclose()


async def _primed(first: str | None, deltas: AsyncIterator[str]) -> AsyncIterator[StreamEvent]:
    try:
        if first:
            yield ContentDelta(first)
        async for text in deltas:
            yield ContentDelta(text)
        yield End()
    finally:
        await deltas.aclose()


async def _prime(deltas: AsyncIterator[str]) -> str | None:
    """Pull the first delta so upstream failures surface before the response starts."""
    try:
        return await deltas.__anext__()
    except StopAsyncIteration:
        return None


def _optional_number(body: dict[str, Any], key: str, kind: type) -> Any:
    value = body.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRequestError(f"{key} must be a number")
    if kind is int and float(value) != int(value):
        raise InvalidRequestError(f"{key} must be an integer")
    return kind(value)


def create_chat_app(
    config: Config,
    *,
    registry: ToolRegistry | None = None,
    http_client: httpx.AsyncClient | None = None,
    tokenizer_factory: TokenizerFactory | None = None,
    status_checker: StatusChecker | None = None,
    rate_limiter: RateLimiter | None = None,
    web_search: WebSearch | None = None,
    retriever: VectorRetriever | None = None,
) -> FastAPI:
    """Create the chat pipeline app."""
    app = FastAPI(title="scanchat", docs_url=None, redoc_url=None)
    tools = registry or default_registry()
    checker = status_checker or StatusChecker(config.auth, client=http_client)
    searcher = web_search or WebSearch(config.search.web, client=http_client, tokenizer_factory=tokenizer_factory)
    vectors = retriever or VectorRetriever(config.search.retrieval, config.window, client=http_client)
    limiter = rate_limiter
    if limiter is None and config.rate_limit.enabled:
        limiter = RateLimiter(
            messages_per_minute=config.rate_limit.messages_per_minute,
            tool_calls_per_minute=config.rate_limit.tool_calls_per_minute,
        )
    public_cfg = config.api.public
    expose = config.api.expose_upstream_errors

    def build_window(ctx: RequestContext, messages: list[Message], model: str, models=None) -> WindowResult:
        with tokenizer_scope(tokenizer_factory) as tokenizer:
            builder = WindowBuilder(tokenizer, models or ctx.models, ctx.prompts.system, ctx.window)
            return builder.build(messages, model)

    def completion_error(error: UpstreamCompletionError, request_id: str) -> PlainTextResponse:
        logger.error(f"[{request_id}] completion failed: {error.kind.value}: {error}")
        return PlainTextResponse(
            completion_error_text(error, expose=expose),
            status_code=completion_error_status(error.kind),
        )

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "tools": len(tools)}

    @app.get("/api/tools")
    async def list_tools() -> dict[str, Any]:
        data = [
            {
                "id": spec.id,
                "title": spec.title,
                "command": spec.command,
                "homepage": spec.homepage,
                "summary": spec.summary,
                "modelAgnostic": spec.model_agnostic,
                "enabled": config.plugins.is_enabled(spec.id),
            }
            for spec in tools
        ]
        return {"object": "list", "data": data}

    @app.post("/api/chat")
    async def chat(body: dict[str, Any], authorization: str = Header(default="")) -> Any:
        ctx = RequestContext.from_config(config, auth_token=authorization)
        rid = ctx.request_id
        try:
            messages = normalize_messages(body.get("messages"))
            temperature = _optional_number(body, "temperature", float)
            max_tokens = _optional_number(body, "max_tokens", int)
        except InvalidRequestError as e:
            raise HTTPException(status_code=400, detail=str(e))
        model = str(body.get("model") or "")
        tool_id = body.get("toolId") or messages[-1].tool_id
        caller = caller_key(authorization)
        logger.info(f"[{rid}] chat turn model={model} messages={len(messages)} tool={tool_id or '-'}")

        if limiter is not None and not limiter.check_message(caller):
            return PlainTextResponse("Rate limit exceeded. Please wait a minute and try again.", status_code=429)

        try:
            await checker.check(authorization, model)
        except AuthRejectedError as e:
            return PlainTextResponse(e.body, status_code=e.status_code)

        try:
            window = build_window(ctx, messages, model)
        except ModelNotFoundError:
            return PlainTextResponse("Error: Model not found", status_code=400)
        except MessageTooLongError as e:
            return PlainTextResponse(str(e))

        relay = CompletionRelay(ctx, client=http_client)
        dispatcher = PluginDispatcher(ctx, tools, relay, rate_limiter=limiter, caller=caller, web_search=searcher)
        try:
            plan = await dispatcher.dispatch(
                messages[-1], model, tool_id, window.messages, context_tokens=window.budget.remaining
            )
        except UpstreamCompletionError as e:
            return completion_error(e, rid)
        except SearchUnavailableError as e:
            logger.error(f"[{rid}] web search failed: {e}")
            return PlainTextResponse("The web search service is currently unavailable.", status_code=502)

        if isinstance(plan, StaticReply):
            logger.info(f"[{rid}] static reply ({plan.reason.value})")
            return PlainTextResponse(plan.text)

        if isinstance(plan, ToolExecution):
            executor = PluginExecutor(ctx, relay, client=http_client)
            events = executor.execute(plan.spec, plan.command, model=model, window=window.messages)
            return stream_events(_with_preamble(plan.preamble, events), rid)

        if isinstance(plan, ContextCompletion):
            deltas = relay.complete(
                model, plan.history, plan.context, temperature=temperature, max_tokens=max_tokens
            )
        else:
            retrieved = None
            if body.get("enhancedSearch") is True and vectors.applies(messages[-1]):
                context = await vectors.retrieve(messages[-1].content)
                if context:
                    retrieved = vectors.system_context(context)
                    if temperature is None:
                        temperature = config.search.retrieval.temperature
            deltas = relay.complete(
                model, window.messages, temperature=temperature, max_tokens=max_tokens, retrieved=retrieved
            )
        try:
            first = await _prime(deltas)
        except UpstreamCompletionError as e:
            return completion_error(e, rid)
        return stream_events(_primed(first, deltas), rid)

    async def require_public_key(authorization: str = Header(default="")) -> str:
        keys = [k for k in public_cfg.api_keys if k]
        if not public_cfg.enabled or not keys:
            raise HTTPException(status_code=503, detail="Public API is not configured.")
        parts = authorization.strip().split(None, 1)
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise HTTPException(status_code=401, detail="Authorization header is required.")
        provided = parts[1].strip()
        if not any(secrets.compare_digest(provided, key) for key in keys):
            raise HTTPException(status_code=401, detail="Invalid API key.")
        return provided

    def public_error(message: str, status_code: int = 400, kind: str = "invalid_request_error") -> JSONResponse:
        return JSONResponse({"error": {"message": message, "type": kind}}, status_code=status_code)

    @app.post("/v1/chat/completions")
    async def public_completions(body: Any = Body(...), api_key: str = Depends(require_public_key)) -> Any:
        if not isinstance(body, dict):
            return public_error("Request body must be a JSON object.")
        unknown = sorted(set(body) - PUBLIC_ALLOWED_KEYS)
        if unknown:
            return public_error(f"Unsupported parameter(s): {', '.join(unknown)}.")

        model = str(body.get("model") or "")
        public_model = public_cfg.models.get(model)
        if public_model is None:
            return public_error(f"Model '{model}' is not available.", status_code=404)
        stream = body.get("stream", False)
        if not isinstance(stream, bool):
            return public_error("stream must be a boolean.")
        try:
            messages = normalize_messages(body.get("messages"))
            temperature = _optional_number(body, "temperature", float)
            max_tokens = _optional_number(body, "max_tokens", int)
        except InvalidRequestError as e:
            return public_error(str(e))
        if temperature is not None and not 0.0 <= temperature <= 2.0:
            return public_error("temperature must be between 0 and 2.")
        if max_tokens is not None and not 1 <= max_tokens <= public_cfg.max_tokens_limit:
            return public_error(f"max_tokens must be between 1 and {public_cfg.max_tokens_limit}.")

        ctx = RequestContext.from_config(config, auth_token=api_key)
        route = ctx.models.get(public_model.route)
        if route is None:
            return public_error(f"Model '{model}' is misconfigured.", status_code=500, kind="server_error")
        limited = {public_model.route: route.model_copy(update={"token_limit": public_model.token_limit})}
        try:
            window = build_window(ctx, messages, public_model.route, models=limited)
        except MessageTooLongError as e:
            return public_error(str(e))

        relay = CompletionRelay(ctx, client=http_client)
        deltas = relay.complete(public_model.route, window.messages, temperature=temperature, max_tokens=max_tokens)
        completion_id = f"chatcmpl-{uuid.uuid4().hex[:24]}"
        created = int(time.time())

        try:
            if not stream:
                text = "".join([chunk async for chunk in deltas])
                return {
                    "id": completion_id,
                    "object": "chat.completion",
                    "created": created,
                    "model": model,
                    "choices": [
                        {
                            "index": 0,
                            "message": {"role": "assistant", "content": text},
                            "finish_reason": "stop",
                        }
                    ],
                }
            first = await _prime(deltas)
        except UpstreamCompletionError as e:
            logger.error(f"[{ctx.request_id}] public completion failed: {e.kind.value}: {e}")
            return public_error(
                completion_error_text(e, expose=expose),
                status_code=completion_error_status(e.kind),
                kind=e.kind.value,
            )

        def frame(delta: dict[str, Any], finish_reason: str | None = None) -> str:
            chunk = {
                "id": completion_id,
                "object": "chat.completion.chunk",
                "created": created,
                "model": model,
                "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
            }
            return f"data: {json.dumps(chunk)}\n\n"

        async def sse_events() -> AsyncIterator[StreamEvent]:
            try:
                yield ContentDelta(frame({"role": "assistant", "content": first or ""}))
                async for text in deltas:
                    yield ContentDelta(frame({"content": text}))
                yield ContentDelta(frame({}, "stop"))
                yield ContentDelta("data: [DONE]\n\n")
                yield End()
            finally:
                await deltas.aclose()

        return stream_events(sse_events(), ctx.request_id)

    return app
