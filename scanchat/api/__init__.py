"""HTTP API for the chat pipeline."""

from scanchat.api.chat import create_chat_app

__all__ = ["create_chat_app"]
