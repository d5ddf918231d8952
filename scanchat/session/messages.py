"""Chat message type and inbound normalization."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from scanchat.errors import InvalidRequestError

ROLES = ("user", "assistant", "system")


@dataclass(frozen=True)
class Message:
    """A single chat turn. Never mutated once received."""
    role: str
    content: str
    tool_id: str | None = None

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


def normalize_messages(messages: Any) -> list[Message]:
    """Validate the inbound ``messages`` array and convert it to Message objects."""
    if not isinstance(messages, list) or not messages:
        raise InvalidRequestError("messages must be a non-empty array")

    out: list[Message] = []
    for index, item in enumerate(messages):
        if not isinstance(item, dict):
            raise InvalidRequestError(f"messages[{index}] must be an object")
        role = str(item.get("role") or "user")
        if role not in ROLES:
            raise InvalidRequestError(f"messages[{index}].role must be one of {', '.join(ROLES)}")
        tool_id = item.get("toolId", item.get("tool_id"))
        out.append(
            Message(
                role=role,
                content=_normalize_content(item.get("content")),
                tool_id=str(tool_id) if tool_id else None,
            )
        )
    return out


def _normalize_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if not isinstance(block, dict):
                parts.append(str(block))
                continue
            if block.get("type") == "text":
                parts.append(str(block.get("text") or ""))
        return "\n".join([p for p in parts if p])
    if content is None:
        return ""
    return str(content)
