"""Run a validated plugin command against the tool-runner backend."""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Sequence

import httpx
from loguru import logger

from scanchat.context import RequestContext
from scanchat.errors import BackendUnavailableError, UpstreamCompletionError
from scanchat.heartbeat.ticker import HEARTBEAT_TEXT, HeartbeatTicker
from scanchat.plugins.grammar import ValidCommand
from scanchat.plugins.spec import ToolSpec
from scanchat.providers.completion import CompletionRelay
from scanchat.session.messages import Message
from scanchat.stream.events import ContentDelta, End, Error, ErrorKind, Heartbeat, StatusText, StreamEvent

STARTING_TEXT = "🚀 Starting the scan. It might take a minute."
DONE_TEXT = "✅ Scan done! Now processing the results..."
GENERIC_ERROR_TEXT = "🚨 An error occurred while running your query. Please try again or check your input."
TIMEOUT_TEXT = "🚨 The scan took too long and was stopped. Try narrowing the target or flags."
ANALYSIS_ERROR_TEXT = "🚨 The results could not be analyzed right now."


@dataclass(frozen=True)
class PluginRequest:
    """Backend call for one command. The service credential is attached at send time."""

    tool: str
    url: str


def build_request(ctx: RequestContext, spec: ToolSpec, command: ValidCommand) -> PluginRequest:
    return PluginRequest(tool=spec.id, url=spec.build_url(ctx.plugin_base_url, command.params))


def read_output(response: httpx.Response) -> str:
    """Backend replies with JSON ``{"output": ...}`` or plain text."""
    text = response.text
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(payload, dict):
        output = payload.get("output")
        if output is None:
            return ""
        return output if isinstance(output, str) else json.dumps(output)
    return text


class PluginExecutor:
    """
    Stream the lifecycle of one plugin run as StreamEvents.

    The backend call runs as a task raced against a heartbeat ticker. Both are
    stopped before the generator finishes, including when the consumer closes
    it early or the surrounding task is cancelled.
    """

    def __init__(
        self,
        ctx: RequestContext,
        relay: CompletionRelay | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.ctx = ctx
        self.relay = relay
        self._client = client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @asynccontextmanager
    async def _client_scope(self):
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.ctx.max_plugin_wait_s) as client:
            yield client

    async def _call_backend(self, request: PluginRequest) -> str:
        headers = {"Authorization": self.ctx.plugin_secret} if self.ctx.plugin_secret else {}
        async with self._client_scope() as client:
            try:
                response = await client.get(request.url, headers=headers)
            except httpx.HTTPError as e:
                raise BackendUnavailableError(f"{request.tool} backend request failed: {e}") from e
        if response.status_code >= 400:
            raise BackendUnavailableError(f"{request.tool} backend returned HTTP {response.status_code}")
        return read_output(response)

    async def execute(
        self,
        spec: ToolSpec,
        command: ValidCommand,
        *,
        model: str | None = None,
        window: Sequence[Message] = (),
    ) -> AsyncIterator[StreamEvent]:
        rid = self.ctx.request_id
        request = build_request(self.ctx, spec, command)
        logger.info(f"[{rid}] plugin {spec.id} started")
        yield StatusText(STARTING_TEXT)

        events: asyncio.Queue[StreamEvent] = asyncio.Queue()
        ticker = HeartbeatTicker(
            lambda _n: events.put_nowait(Heartbeat(HEARTBEAT_TEXT)),
            interval_s=self.ctx.heartbeat_interval_s,
            name=f"{spec.id}-{rid}",
        )
        call = asyncio.create_task(self._call_backend(request), name=f"plugin-{spec.id}-{rid}")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.ctx.max_plugin_wait_s
        output: str | None = None
        failure: Error | None = None

        ticker.start()
        try:
            while not call.done():
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                getter = asyncio.ensure_future(events.get())
                try:
                    done, _ = await asyncio.wait(
                        {call, getter}, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                    )
                finally:
                    if not getter.done():
                        getter.cancel()
                if getter in done and not call.done():
                    yield getter.result()

            await ticker.stop()
            if not call.done():
                call.cancel()
                logger.warning(f"[{rid}] plugin {spec.id} exceeded {self.ctx.max_plugin_wait_s}s")
                failure = Error(ErrorKind.TIMEOUT, TIMEOUT_TEXT)
            else:
                try:
                    output = call.result()
                except BackendUnavailableError as e:
                    logger.error(f"[{rid}] {e}")
                    failure = Error(ErrorKind.BACKEND_UNAVAILABLE, GENERIC_ERROR_TEXT)
        finally:
            await ticker.stop()
            if not call.done():
                call.cancel()
                try:
                    await call
                except (asyncio.CancelledError, BackendUnavailableError):
                    pass

        if failure is not None:
            yield failure
            yield End()
            return

        if output is None or spec.is_failure(output):
            logger.error(f"[{rid}] plugin {spec.id} reported an execution failure")
            yield Error(ErrorKind.BACKEND_UNAVAILABLE, GENERIC_ERROR_TEXT)
            yield End()
            return

        results = spec.extract_results(output)
        if not results:
            logger.info(f"[{rid}] plugin {spec.id} finished with no results")
            yield StatusText(spec.empty_message.format(target=spec.target_label(command.params)))
            yield End()
            return

        logger.info(f"[{rid}] plugin {spec.id} finished with {len(results)} result line(s)")
        yield StatusText(DONE_TEXT)
        report = spec.format_report(command.params, results, self._clock())
        yield ContentDelta(report)

        if command.analyze and self.relay is not None and model:
            prompt = Message(role="user", content=spec.render_analysis_prompt(command.params, report))
            try:
                async for text in self.relay.complete(model, window, extra_context=prompt):
                    yield ContentDelta(text)
            except UpstreamCompletionError as e:
                logger.error(f"[{rid}] analysis for {spec.id} failed: {e.kind.value}: {e}")
                yield Error(ErrorKind.COMPLETION, ANALYSIS_ERROR_TEXT)
                yield End()
                return
        yield End()
