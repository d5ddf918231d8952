"""Completion relay: stream text deltas from an OpenAI-compatible backend."""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Sequence

import httpx
from loguru import logger

from scanchat.config.schema import BackendConfig
from scanchat.context import RequestContext
from scanchat.errors import (
    CompletionErrorKind,
    ModelNotFoundError,
    StreamProtocolError,
    UpstreamCompletionError,
)
from scanchat.session.messages import Message
from scanchat.session.window import sanitize_history

DONE_MARKER = "[DONE]"


@dataclass(frozen=True)
class CompletionRoute:
    backend_name: str
    backend: BackendConfig
    upstream_model: str
    system_prompt: str


@dataclass(frozen=True)
class SSEChunk:
    text: str = ""
    done: bool = False


def _obj_get(obj: Any, key: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(key, default)
    return default


def _extract_delta_text(delta: Any) -> str:
    content = _obj_get(delta, "content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part["text"] for part in content if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
    return ""


def parse_sse_line(line: str) -> SSEChunk | None:
    """
    Parse one event-stream line.

    Returns None for lines that carry no data (blank lines, comments, ``event:``
    or ``id:`` fields). Raises StreamProtocolError when a ``data:`` payload is
    not valid JSON.
    """
    line = line.strip()
    if not line or line.startswith(":") or not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if data == DONE_MARKER:
        return SSEChunk(done=True)
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise StreamProtocolError(data) from e

    error = _obj_get(payload, "error")
    if error:
        message = _obj_get(error, "message") or str(error)
        code = _obj_get(error, "code")
        if isinstance(code, int):
            raise UpstreamCompletionError.from_status(code, message)
        raise UpstreamCompletionError(CompletionErrorKind.OTHER, message)

    choices = _obj_get(payload, "choices", [])
    if not isinstance(choices, list) or not choices:
        return SSEChunk()
    choice = choices[0]
    text = _extract_delta_text(_obj_get(choice, "delta"))
    return SSEChunk(text=text, done=_obj_get(choice, "finish_reason") is not None)


async def iter_sse_text(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield text deltas until a terminal marker, without waiting for the connection to close."""
    async for line in lines:
        chunk = parse_sse_line(line)
        if chunk is None:
            continue
        if chunk.text:
            yield chunk.text
        if chunk.done:
            return


def _error_message(body: bytes) -> str:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return body.decode("utf-8", errors="replace")[:500]
    error = _obj_get(payload, "error")
    if isinstance(error, dict):
        return str(error.get("message") or "")
    if isinstance(error, str):
        return error
    return str(payload)[:500]


class CompletionRelay:
    """Select a backend for a chat model and relay its streamed completion."""

    def __init__(self, ctx: RequestContext, client: httpx.AsyncClient | None = None):
        self.ctx = ctx
        self._client = client

    def route(self, model: str, has_context: bool = False) -> CompletionRoute:
        entry = self.ctx.models.get(model)
        if entry is None:
            raise ModelNotFoundError(model)
        backend_name = entry.backend
        upstream = entry.upstream_model
        if has_context and entry.context_backend:
            backend_name = entry.context_backend
            upstream = entry.context_upstream_model or upstream
        backend = self.ctx.backends.get(backend_name)
        if backend is None:
            raise UpstreamCompletionError(
                CompletionErrorKind.UPSTREAM_UNAVAILABLE, f"Backend not configured: {backend_name}"
            )
        prompts = self.ctx.prompts
        return CompletionRoute(
            backend_name=backend_name,
            backend=backend,
            upstream_model=upstream or model,
            system_prompt=prompts.context if has_context else prompts.system,
        )

    def build_messages(
        self,
        route: CompletionRoute,
        window: Sequence[Message],
        extra_context: Message | None = None,
        retrieved: str | None = None,
    ) -> list[dict[str, str]]:
        history = [m for m in window if m.role != "system"]
        if route.backend.clean_history:
            history = sanitize_history(history, self.ctx.prompts.usage_warning_markers)
        system = f"{route.system_prompt}\n\n{retrieved}" if retrieved else route.system_prompt
        messages = [{"role": "system", "content": system}]
        messages.extend(m.to_payload() for m in history)
        if extra_context is not None:
            messages.append(extra_context.to_payload())
        return messages

    @asynccontextmanager
    async def _client_scope(self, timeout_s: float):
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=timeout_s) as client:
            yield client

    async def complete(
        self,
        model: str,
        window: Sequence[Message],
        extra_context: Message | None = None,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        retrieved: str | None = None,
    ) -> AsyncIterator[str]:
        """
        Stream text deltas. Raises UpstreamCompletionError on classified failures.

        ``extra_context`` is appended after the window; ``retrieved`` is appended
        to the system prompt. Either one routes the turn as context-backed.
        """
        route = self.route(model, has_context=extra_context is not None or bool(retrieved))
        settings = self.ctx.window
        payload = {
            "model": route.upstream_model,
            "messages": self.build_messages(route, window, extra_context, retrieved),
            "temperature": settings.temperature if temperature is None else temperature,
            "max_tokens": settings.max_tokens if max_tokens is None else max_tokens,
            "stream": True,
        }
        headers = {"Content-Type": "application/json", **route.backend.extra_headers}
        if route.backend.api_key:
            headers["Authorization"] = f"Bearer {route.backend.api_key}"
        url = f"{route.backend.api_base}/chat/completions"

        logger.info(
            f"[{self.ctx.request_id}] completion via {route.backend_name}/{route.upstream_model} "
            f"({len(payload['messages'])} messages)"
        )
        async with self._client_scope(route.backend.timeout_s) as client:
            try:
                async with client.stream("POST", url, json=payload, headers=headers) as response:
                    if response.status_code != 200:
                        body = await response.aread()
                        message = _error_message(body)
                        logger.warning(
                            f"[{self.ctx.request_id}] completion backend {route.backend_name} "
                            f"returned {response.status_code}: {message[:200]}"
                        )
                        raise UpstreamCompletionError.from_status(response.status_code, message)
                    async for text in iter_sse_text(response.aiter_lines()):
                        yield text
            except httpx.TimeoutException as e:
                raise UpstreamCompletionError(CompletionErrorKind.TIMEOUT, str(e) or "timeout") from e
            except httpx.TransportError as e:
                raise UpstreamCompletionError(
                    CompletionErrorKind.UPSTREAM_UNAVAILABLE, str(e) or "connection failed"
                ) from e

    async def collect(
        self,
        model: str,
        window: Sequence[Message],
        extra_context: Message | None = None,
        **kwargs: Any,
    ) -> str:
        parts: list[str] = []
        async for text in self.complete(model, window, extra_context, **kwargs):
            parts.append(text)
        return "".join(parts)
