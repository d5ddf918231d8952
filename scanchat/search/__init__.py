"""Context sources for context-backed answers: web search and vector retrieval."""

from scanchat.search.retrieval import VectorRetriever
from scanchat.search.web import WEB_SEARCH_DISABLED_TEXT, WEB_SEARCH_TOOL_ID, WebSearch

__all__ = ["VectorRetriever", "WEB_SEARCH_DISABLED_TEXT", "WEB_SEARCH_TOOL_ID", "WebSearch"]
