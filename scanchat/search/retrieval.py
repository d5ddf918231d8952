"""Vector-store retrieval context for enhanced search turns."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Sequence

import httpx
from litellm import aembedding
from loguru import logger

from scanchat.config.schema import RetrievalConfig, WindowConfig
from scanchat.session.messages import Message

Embedder = Callable[[str], Awaitable[list[float]]]


def litellm_embedder(model: str, api_key: str = "") -> Embedder:
    """Embed one text through LiteLLM."""

    async def embed(text: str) -> list[float]:
        kwargs: dict[str, Any] = {"model": model, "input": [text]}
        if api_key:
            kwargs["api_key"] = api_key
        response = await aembedding(**kwargs)
        data = response.data if hasattr(response, "data") else response.get("data", [])
        item = data[0]
        return list(item["embedding"] if isinstance(item, dict) else item.embedding)

    return embed


def format_matches(
    matches: Sequence[Any],
    *,
    min_matches: int,
    min_score: float,
    max_chars: int,
) -> str | None:
    """
    Render high-scoring matches as numbered context blocks.

    Returns None when the store returned fewer than ``min_matches`` matches or
    none scored above ``min_score``. Trailing blocks are dropped until the text
    fits ``max_chars``.
    """
    if len(matches) < min_matches:
        return None
    kept = [m for m in matches if isinstance(m, dict) and (m.get("score") or 0) > min_score]
    if not kept:
        return None

    formatted = "".join(
        f"[CONTEXT {i}]:\n{(m.get('metadata') or {}).get('text', '')}\n[END CONTEXT {i}]\n\n"
        for i, m in enumerate(kept)
    )
    while len(formatted) > max_chars:
        cut = formatted.rfind("[CONTEXT ")
        if cut == -1:
            break
        formatted = formatted[:cut].strip()
    return formatted or None


class VectorRetriever:
    """
    Query a vector store for passages related to the user's question.

    Retrieval only applies to user turns of moderate length, bounded by the
    window's short and long message thresholds. Any failure degrades to "no
    context" so the turn is still answered.
    """

    def __init__(
        self,
        config: RetrievalConfig,
        window: WindowConfig,
        client: httpx.AsyncClient | None = None,
        embedder: Embedder | None = None,
    ):
        self.config = config
        self.window = window
        self._client = client
        self._embed = embedder or litellm_embedder(config.embedding_model, config.embedding_api_key)

    @property
    def enabled(self) -> bool:
        return self.config.enabled and bool(self.config.query_url)

    def applies(self, message: Message) -> bool:
        length = len(message.content)
        return (
            self.enabled
            and message.role == "user"
            and self.window.short_message_chars < length < self.window.long_message_chars
        )

    @asynccontextmanager
    async def _client_scope(self):
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.config.timeout_s) as client:
            yield client

    async def retrieve(self, question: str) -> str | None:
        try:
            vector = await self._embed(question)
        except Exception as e:
            logger.warning(f"Retrieval embedding failed: {e}")
            return None

        body = {
            "topK": self.config.top_k,
            "vector": vector,
            "includeMetadata": True,
            "namespace": self.config.namespace,
        }
        headers = {"Api-Key": self.config.api_key, "Content-Type": "application/json"}
        try:
            async with self._client_scope() as client:
                response = await client.post(self.config.query_url, json=body, headers=headers)
            if response.status_code != 200:
                logger.warning(f"Retrieval query returned HTTP {response.status_code}")
                return None
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Retrieval query failed: {e}")
            return None

        matches = (payload.get("matches") or []) if isinstance(payload, dict) else []
        context = format_matches(
            matches,
            min_matches=self.config.min_matches,
            min_score=self.config.min_score,
            max_chars=self.config.max_chars,
        )
        logger.debug(f"Retrieval: {len(matches)} match(es), context {'attached' if context else 'skipped'}")
        return context

    def system_context(self, context: str) -> str:
        return f"{self.config.prompt} Context:\n{context}"
