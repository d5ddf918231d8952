"""Tokenizer adapter used to measure message cost in model tokens."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, Protocol

import litellm

DEFAULT_TOKENIZER_MODEL = "gpt-4"


class Tokenizer(Protocol):
    def encode(self, text: str) -> list[int]: ...

    def decode(self, tokens: list[int]) -> str: ...

    def free(self) -> None: ...


TokenizerFactory = Callable[[], Tokenizer]


class LiteLLMTokenizer:
    """
    BPE tokenizer backed by litellm's model-aware encode/decode.

    One instance serves one request; ``free`` drops it so later use fails loudly.
    """

    def __init__(self, model: str = DEFAULT_TOKENIZER_MODEL):
        self.model = model
        self._freed = False

    def _check(self) -> None:
        if self._freed:
            raise RuntimeError("Tokenizer used after free()")

    def encode(self, text: str) -> list[int]:
        self._check()
        encoded = litellm.encode(model=self.model, text=text)
        # HuggingFace tokenizers return an Encoding object; tiktoken returns a list.
        return list(getattr(encoded, "ids", encoded))

    def decode(self, tokens: list[int]) -> str:
        self._check()
        return litellm.decode(model=self.model, tokens=list(tokens))

    def free(self) -> None:
        self._freed = True


@contextmanager
def tokenizer_scope(factory: TokenizerFactory | None = None) -> Iterator[Tokenizer]:
    """Acquire a tokenizer for the duration of one request and always free it."""
    tokenizer = factory() if factory else LiteLLMTokenizer()
    try:
        yield tokenizer
    finally:
        tokenizer.free()
