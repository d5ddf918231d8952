"""Typed errors raised by the request pipeline."""

from __future__ import annotations

from enum import Enum


class PipelineError(Exception):
    """Base class for pipeline failures."""


class InvalidRequestError(PipelineError, ValueError):
    """Inbound request body is malformed."""


class ModelNotFoundError(PipelineError):
    def __init__(self, model: str):
        super().__init__(f"Model not found: {model}")
        self.model = model


class MessageTooLongError(PipelineError):
    """The latest message alone does not fit the model's token budget."""

    def __init__(self, limit: int, tokens: int):
        super().__init__(
            f"This message exceeds the model's maximum token limit of {limit}. "
            "Please shorten your message."
        )
        self.limit = limit
        self.tokens = tokens


class BackendUnavailableError(PipelineError):
    """Plugin backend call failed or returned an unusable payload."""


class SearchUnavailableError(PipelineError):
    """The web search backend failed or returned an unusable payload."""


class AuthRejectedError(PipelineError):
    """The entitlement status check refused the caller."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Status check rejected request ({status_code})")
        self.status_code = status_code
        self.body = body


class CompletionErrorKind(str, Enum):
    BAD_REQUEST = "bad_request"
    AUTH = "auth"
    QUOTA = "quota"
    MODERATION = "moderation"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    OTHER = "other"


_STATUS_KINDS: dict[int, CompletionErrorKind] = {
    400: CompletionErrorKind.BAD_REQUEST,
    401: CompletionErrorKind.AUTH,
    402: CompletionErrorKind.QUOTA,
    403: CompletionErrorKind.MODERATION,
    408: CompletionErrorKind.TIMEOUT,
    429: CompletionErrorKind.RATE_LIMITED,
    502: CompletionErrorKind.UPSTREAM_UNAVAILABLE,
    503: CompletionErrorKind.UPSTREAM_UNAVAILABLE,
    504: CompletionErrorKind.UPSTREAM_UNAVAILABLE,
}


def classify_status(status_code: int) -> CompletionErrorKind:
    """Map a completion backend HTTP status to an error kind."""
    return _STATUS_KINDS.get(status_code, CompletionErrorKind.OTHER)


class UpstreamCompletionError(PipelineError):
    """Classified failure of the LLM completion backend."""

    def __init__(self, kind: CompletionErrorKind, message: str = "", status_code: int | None = None):
        super().__init__(message or kind.value)
        self.kind = kind
        self.status_code = status_code

    @classmethod
    def from_status(cls, status_code: int, message: str = "") -> "UpstreamCompletionError":
        return cls(classify_status(status_code), message, status_code=status_code)


class StreamProtocolError(UpstreamCompletionError):
    """The completion event stream carried a line that is not valid JSON."""

    def __init__(self, line: str):
        super().__init__(CompletionErrorKind.OTHER, f"Malformed stream line: {line[:200]}")
        self.line = line
