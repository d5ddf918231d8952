"""Conversation messages and context window budgeting."""

from scanchat.session.messages import Message, normalize_messages
from scanchat.session.window import TokenBudget, WindowBuilder, WindowResult

__all__ = ["Message", "normalize_messages", "TokenBudget", "WindowBuilder", "WindowResult"]
