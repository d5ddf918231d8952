"""Token-budgeted conversation window."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from loguru import logger

from scanchat.config.schema import ModelConfig, WindowConfig
from scanchat.errors import InvalidRequestError, MessageTooLongError, ModelNotFoundError
from scanchat.providers.tokenizer import Tokenizer
from scanchat.session.messages import Message


@dataclass(frozen=True)
class TokenBudget:
    limit: int
    reserved: int
    used: int = 0

    @property
    def remaining(self) -> int:
        return self.limit - self.reserved - self.used

    def fits(self, tokens: int) -> bool:
        return self.used + tokens + self.reserved <= self.limit

    def add(self, tokens: int) -> "TokenBudget":
        return TokenBudget(limit=self.limit, reserved=self.reserved, used=self.used + tokens)


@dataclass(frozen=True)
class WindowResult:
    messages: list[Message]
    budget: TokenBudget

    @property
    def used_tokens(self) -> int:
        return self.budget.used


class WindowBuilder:
    """
    Select the most recent messages that fit a model's context limit.

    The reserve covers the system prompt plus a response margin. The margin is
    widened for models flagged ``widen_reserve`` when the final message is very
    short or very long. The final message is never truncated: if it alone does
    not fit, ``MessageTooLongError`` is raised.
    """

    def __init__(
        self,
        tokenizer: Tokenizer,
        models: Mapping[str, ModelConfig],
        system_prompt: str = "",
        settings: WindowConfig | None = None,
    ):
        self.tokenizer = tokenizer
        self.models = models
        self.system_prompt = system_prompt
        self.settings = settings or WindowConfig()

    def token_limit(self, model: str) -> int:
        entry = self.models.get(model)
        if entry is None:
            raise ModelNotFoundError(model)
        return entry.token_limit

    def response_margin(self, model: str, last: Message) -> int:
        s = self.settings
        entry = self.models.get(model)
        length = len(last.content)
        if entry is not None and entry.widen_reserve and (
            length < s.short_message_chars or length > s.long_message_chars
        ):
            return s.widened_margin
        return s.response_margin

    def count(self, message: Message) -> int:
        return len(self.tokenizer.encode(message.content))

    def build(self, history: Sequence[Message], model: str) -> WindowResult:
        if not history:
            raise InvalidRequestError("Conversation history is empty")

        limit = self.token_limit(model)
        last = history[-1]
        system_tokens = len(self.tokenizer.encode(self.system_prompt)) if self.system_prompt else 0
        budget = TokenBudget(limit=limit, reserved=system_tokens + self.response_margin(model, last))

        last_tokens = self.count(last)
        if not budget.fits(last_tokens):
            raise MessageTooLongError(limit, last_tokens)
        budget = budget.add(last_tokens)

        kept: list[Message] = []
        for message in reversed(history[:-1]):
            tokens = self.count(message)
            if not budget.fits(tokens):
                break
            budget = budget.add(tokens)
            kept.append(message)

        kept.reverse()
        kept.append(last)
        dropped = len(history) - len(kept)
        if dropped:
            logger.debug(f"Window for {model}: dropped {dropped} oldest message(s), {budget.used}/{limit} tokens")
        return WindowResult(messages=kept, budget=budget)


def sanitize_history(messages: Sequence[Message], warning_markers: Sequence[str]) -> list[Message]:
    """
    Clean a window before sending it to backends that require strict alternation.

    Drops user turns answered by a usage-cap or sign-in warning (and the warning),
    keeps only the latest of consecutive user turns and removes a leading
    assistant turn.
    """
    markers = [m for m in warning_markers if m]
    cleaned: list[Message] = []
    i = 0
    while i < len(messages):
        current = messages[i]
        following = messages[i + 1] if i + 1 < len(messages) else None
        if (
            current.role == "user"
            and following is not None
            and following.role == "assistant"
            and any(marker in following.content for marker in markers)
        ):
            i += 2
            continue
        if current.role == "user" and following is not None and following.role == "user":
            i += 1
            continue
        if current.role == "system":
            i += 1
            continue
        cleaned.append(current)
        i += 1

    if cleaned and cleaned[0].role == "assistant":
        cleaned = cleaned[1:]
    return cleaned
