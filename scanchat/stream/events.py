"""Events produced by plugin executions and completion relays."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class ErrorKind(str, Enum):
    BACKEND_UNAVAILABLE = "backend_unavailable"
    TIMEOUT = "timeout"
    COMPLETION = "completion"


@dataclass(frozen=True)
class Heartbeat:
    text: str


@dataclass(frozen=True)
class StatusText:
    text: str


@dataclass(frozen=True)
class ContentDelta:
    text: str


@dataclass(frozen=True)
class Error:
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class End:
    pass


StreamEvent = Union[Heartbeat, StatusText, ContentDelta, Error, End]
