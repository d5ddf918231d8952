"""Web browsing plugin: fold search results into an answer prompt."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Sequence
from urllib.parse import unquote

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from scanchat.config.schema import WebSearchConfig
from scanchat.errors import SearchUnavailableError
from scanchat.providers.tokenizer import Tokenizer, TokenizerFactory, tokenizer_scope
from scanchat.session.messages import Message

WEB_SEARCH_TOOL_ID = "websearch"
WEB_SEARCH_DISABLED_TEXT = (
    "The Web Browsing Plugin is disabled. To enable it, please configure the necessary environment variables."
)

_SKIPPED_TAGS = ("script", "style", "noscript")


@dataclass(frozen=True)
class SearchSource:
    title: str
    link: str
    display_link: str = ""
    snippet: str = ""
    image: str | None = None
    text: str = ""


def parse_search_results(payload: Any) -> list[SearchSource]:
    """Read the ``items`` of a Programmable Search response."""
    if not isinstance(payload, dict):
        return []
    items = payload.get("items") or []
    sources = []
    for item in items:
        if not isinstance(item, dict) or not item.get("link"):
            continue
        images = (item.get("pagemap") or {}).get("cse_image") or [{}]
        sources.append(
            SearchSource(
                title=str(item.get("title") or ""),
                link=str(item["link"]),
                display_link=str(item.get("displayLink") or ""),
                snippet=str(item.get("snippet") or ""),
                image=images[0].get("src") if isinstance(images[0], dict) else None,
            )
        )
    return sources


def page_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_SKIPPED_TAGS):
        tag.decompose()
    root = soup.body or soup
    return root.get_text(separator=" ", strip=True)


def truncate_tokens(tokenizer: Tokenizer, text: str, max_tokens: int) -> str:
    tokens = tokenizer.encode(text)
    if len(tokens) <= max_tokens:
        return text
    return tokenizer.decode(tokens[:max_tokens])


def render_source(source: SearchSource) -> str:
    text = f"{source.title} ({unquote(source.link)}):\n{source.snippet}"
    if source.text:
        text = f"{text}\n{source.text}"
    return text


def select_sources(tokenizer: Tokenizer, sources: Sequence[SearchSource], available_tokens: int) -> list[str]:
    """Render sources in rank order until the next one would overflow the budget."""
    selected: list[str] = []
    used = 0
    for source in sources:
        text = render_source(source)
        size = len(tokenizer.encode(text))
        if used + size > available_tokens:
            break
        selected.append(text)
        used += size
    return selected


def build_answer_prompt(query: str, source_texts: Sequence[str], today: date) -> str:
    sources = "\n\n".join(source_texts)
    return (
        "Answer the following question as best you can using the provided \"sources\" "
        "fetched from the web. Respond in markdown format. Cite the sources you used as a "
        "markdown link at the end of each sentence by the number of the source "
        "(ex: [[1]](link.com)). Provide an accurate response and then stop. "
        f"Today's date is {today.month}/{today.day}/{today.year}.\n\n"
        "Example Input:\n"
        "What's the weather in San Francisco today?\n\n"
        "Example \"Sources\":\n"
        "[Weather in San Francisco](https://www.google.com/search?q=weather+san+francisco)\n\n"
        "Example Response:\n"
        "It's 70 degrees and sunny in San Francisco today. "
        "[[1]](https://www.google.com/search?q=weather+san+francisco)\n\n"
        "Input:\n"
        f"{query.strip()}\n\n"
        "\"Sources\":\n"
        f"{sources}\n\n"
        "Response:"
    )


class WebSearch:
    """
    Search the web for a question and turn the hits into answer context.

    Result pages are fetched concurrently; a page that fails or times out is
    dropped from the sources. The remaining sources are added in rank order
    while they fit the token budget left by the conversation window.
    """

    def __init__(
        self,
        config: WebSearchConfig,
        client: httpx.AsyncClient | None = None,
        tokenizer_factory: TokenizerFactory | None = None,
    ):
        self.config = config
        self._client = client
        self._tokenizer_factory = tokenizer_factory

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @asynccontextmanager
    async def _client_scope(self):
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(follow_redirects=True) as client:
            yield client

    async def search(self, client: httpx.AsyncClient, query: str) -> list[SearchSource]:
        params = {
            "key": self.config.api_key,
            "cx": self.config.engine_id,
            "q": query,
            "num": str(self.config.max_results),
        }
        try:
            response = await client.get(self.config.endpoint, params=params)
        except httpx.HTTPError as e:
            raise SearchUnavailableError(f"search request failed: {e}") from e
        if response.status_code != 200:
            raise SearchUnavailableError(f"search backend returned HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as e:
            raise SearchUnavailableError("search backend returned invalid JSON") from e
        return parse_search_results(payload)

    async def _fetch_page(
        self, client: httpx.AsyncClient, tokenizer: Tokenizer, source: SearchSource
    ) -> SearchSource | None:
        try:
            response = await client.get(source.link, timeout=self.config.page_timeout_s)
        except httpx.HTTPError as e:
            logger.warning(f"Skipping search result {source.link}: {e}")
            return None
        if response.status_code != 200:
            logger.warning(f"Skipping search result {source.link}: HTTP {response.status_code}")
            return None
        text = truncate_tokens(tokenizer, page_text(response.text), self.config.page_tokens)
        return replace(source, text=text)

    async def answer_context(self, query: str, available_tokens: int, today: date | None = None) -> Message:
        query = query.strip()
        async with self._client_scope() as client:
            sources = await self.search(client, query)
            with tokenizer_scope(self._tokenizer_factory) as tokenizer:
                fetched = await asyncio.gather(*(self._fetch_page(client, tokenizer, s) for s in sources))
                reachable = [s for s in fetched if s is not None]
                source_texts = select_sources(tokenizer, reachable, available_tokens)
        logger.info(
            f"Web search: {len(sources)} result(s), {len(reachable)} reachable, {len(source_texts)} in context"
        )
        return Message(role="user", content=build_answer_prompt(query, source_texts, today or date.today()))
