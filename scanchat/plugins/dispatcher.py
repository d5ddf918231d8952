"""Decide how a chat turn is served: plain completion, static reply or plugin run."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Sequence, Union

from loguru import logger

from scanchat.context import RequestContext
from scanchat.plugins.grammar import HelpRequest, InvalidCommand, ToolCommand, ValidCommand
from scanchat.plugins.registry import ToolRegistry, is_tools_command
from scanchat.plugins.spec import ToolSpec
from scanchat.providers.completion import CompletionRelay
from scanchat.ratelimit.limiter import RateLimiter
from scanchat.search.web import WEB_SEARCH_DISABLED_TEXT, WEB_SEARCH_TOOL_ID, WebSearch
from scanchat.session.messages import Message

NO_COMMAND_FOUND = "No JSON command found in the AI response."

_OBJECT_START_RE = re.compile(r"\{")


class ReplyReason(str, Enum):
    TOOLS_GUIDE = "tools_guide"
    HELP = "help"
    COMMAND_INVALID = "command_invalid"
    TOOL_DISABLED = "tool_disabled"
    TOOL_REQUIRES_MODEL = "tool_requires_model"
    RATE_LIMITED = "rate_limited"
    NO_COMMAND_FOUND = "no_command_found"


@dataclass(frozen=True)
class DirectCompletion:
    pass


@dataclass(frozen=True)
class StaticReply:
    text: str
    reason: ReplyReason


@dataclass(frozen=True)
class ToolExecution:
    spec: ToolSpec
    command: ValidCommand
    mode: Literal["slash", "tool_id"] = "slash"
    preamble: str = ""  # Model reply echoed before the scan output in tool-id mode


@dataclass(frozen=True)
class ContextCompletion:
    """Answer from a context message that replaces the user's last turn."""

    context: Message
    history: tuple[Message, ...] = ()


ExecutionPlan = Union[DirectCompletion, StaticReply, ToolExecution, ContextCompletion]


def extract_command(text: str) -> str | None:
    """Return the ``command`` of the first JSON object in ``text`` that has one."""
    decoder = json.JSONDecoder()
    for match in _OBJECT_START_RE.finditer(text):
        try:
            obj, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            command = obj.get("command")
            if isinstance(command, str) and command.strip():
                return command.strip()
    return None


class PluginDispatcher:
    """
    Map a chat turn to an ExecutionPlan.

    Slash-commands are matched against the registry in priority order. A tool
    selected by id has its natural-language request translated into a command
    line by the completion relay first. Permission and feature-flag checks run
    before anything is sent over the network. A slash message that names no
    tool is plain chat even when a tool is selected. The web search tool id
    turns the message into a search-backed context prompt.
    """

    def __init__(
        self,
        ctx: RequestContext,
        registry: ToolRegistry,
        relay: CompletionRelay | None = None,
        rate_limiter: RateLimiter | None = None,
        caller: str = "",
        web_search: WebSearch | None = None,
    ):
        self.ctx = ctx
        self.registry = registry
        self.relay = relay
        self.rate_limiter = rate_limiter
        self.caller = caller
        self.web_search = web_search

    async def dispatch(
        self,
        message: Message,
        model: str,
        selected_tool_id: str | None = None,
        history: Sequence[Message] = (),
        context_tokens: int = 0,
    ) -> ExecutionPlan:
        text = message.content.strip()

        if is_tools_command(text):
            return StaticReply(self.registry.tools_guide(), ReplyReason.TOOLS_GUIDE)

        spec = self.registry.recognize(text)
        if spec is not None:
            refusal = self._check_access(spec, model)
            if refusal is not None:
                return refusal
            logger.info(f"[{self.ctx.request_id}] slash command {spec.command}")
            return self._plan_for(spec, spec.parse(text), mode="slash")

        if text.startswith("/"):
            return DirectCompletion()

        if selected_tool_id == WEB_SEARCH_TOOL_ID:
            return await self._search(message, history, context_tokens)

        if selected_tool_id:
            spec = self.registry.get(selected_tool_id)
            if spec is not None:
                refusal = self._check_access(spec, model)
                if refusal is not None:
                    return refusal
                return await self._translate(spec, message, model, history)
            logger.debug(f"[{self.ctx.request_id}] unknown tool id {selected_tool_id!r}, using chat")

        return DirectCompletion()

    async def _search(self, message: Message, history: Sequence[Message], context_tokens: int) -> ExecutionPlan:
        if self.web_search is None or not self.web_search.enabled:
            return StaticReply(WEB_SEARCH_DISABLED_TEXT, ReplyReason.TOOL_DISABLED)
        prior = tuple(history[:-1]) if history and history[-1] == message else tuple(history)
        logger.info(f"[{self.ctx.request_id}] web search with {context_tokens} context token(s) available")
        context = await self.web_search.answer_context(message.content, context_tokens)
        return ContextCompletion(context=context, history=prior)

    def _check_access(self, spec: ToolSpec, model: str) -> StaticReply | None:
        if not spec.model_agnostic and not self.ctx.model_runs_plugins(model):
            required = " or ".join(name.upper() for name in self.ctx.plugin_model_names()) or "a plugin-enabled model"
            return StaticReply(
                f"You can access [{spec.title}]({spec.homepage}) only with {required}.",
                ReplyReason.TOOL_REQUIRES_MODEL,
            )
        if not self.ctx.tool_enabled(spec.id):
            return StaticReply(f"The {spec.title} feature is disabled.", ReplyReason.TOOL_DISABLED)
        return None

    async def _translate(
        self,
        spec: ToolSpec,
        message: Message,
        model: str,
        history: Sequence[Message],
    ) -> ExecutionPlan:
        if self.relay is None:
            raise RuntimeError("Tool-id dispatch requires a completion relay")
        prompt = Message(role="user", content=spec.translation_prompt(message.content))
        reply = await self.relay.collect(model, history, extra_context=prompt)
        command_line = extract_command(reply)
        if command_line is None:
            logger.info(f"[{self.ctx.request_id}] no command in {spec.id} translation reply")
            return StaticReply(f"{reply}\n\n{NO_COMMAND_FOUND}", ReplyReason.NO_COMMAND_FOUND)
        logger.info(f"[{self.ctx.request_id}] tool-id {spec.id} translated to {command_line!r}")
        return self._plan_for(spec, spec.parse(command_line), mode="tool_id", preamble=reply)

    def _plan_for(
        self,
        spec: ToolSpec,
        command: ToolCommand,
        *,
        mode: Literal["slash", "tool_id"],
        preamble: str = "",
    ) -> ExecutionPlan:
        if isinstance(command, HelpRequest):
            return StaticReply(command.text, ReplyReason.HELP)
        if isinstance(command, InvalidCommand):
            text = f"{preamble}\n\n{command.message}" if preamble else command.message
            return StaticReply(text, ReplyReason.COMMAND_INVALID)

        if self.rate_limiter is not None and not self.rate_limiter.check_tool_call(self.caller):
            wait = self.rate_limiter.tool_retry_after(self.caller)
            return StaticReply(
                f"⏰ You can use the tool again in {wait} seconds.",
                ReplyReason.RATE_LIMITED,
            )
        return ToolExecution(spec=spec, command=command, mode=mode, preamble=preamble)
