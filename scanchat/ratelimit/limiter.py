"""Token bucket rate limiter for chat messages and plugin runs."""

from __future__ import annotations

import hashlib
import math
import time
from dataclasses import dataclass, field
from threading import RLock
from typing import Callable


@dataclass
class _Bucket:
    tokens: float
    last_refill: float
    capacity: float
    rate: float  # tokens per second

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_refill = now

    def consume(self, now: float) -> bool:
        """Try to consume one token. Returns True if allowed."""
        self.refill(now)
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False

    def seconds_until_token(self, now: float) -> float:
        self.refill(now)
        if self.tokens >= 1.0:
            return 0.0
        return (1.0 - self.tokens) / self.rate


@dataclass
class RateLimiter:
    """Per-caller message and plugin-run token buckets, kept in process memory."""

    messages_per_minute: int = 20
    tool_calls_per_minute: int = 6
    max_idle_seconds: float = 3600.0
    clock: Callable[[], float] = time.monotonic
    _user_buckets: dict[str, _Bucket] = field(default_factory=dict)
    _tool_buckets: dict[str, _Bucket] = field(default_factory=dict)
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.messages_per_minute = max(1, int(self.messages_per_minute))
        self.tool_calls_per_minute = max(1, int(self.tool_calls_per_minute))

    def _bucket(self, user_key: str, *, tool: bool) -> _Bucket:
        buckets = self._tool_buckets if tool else self._user_buckets
        if user_key not in buckets:
            cap = float(self.tool_calls_per_minute if tool else self.messages_per_minute)
            buckets[user_key] = _Bucket(tokens=cap, last_refill=self.clock(), capacity=cap, rate=cap / 60.0)
        return buckets[user_key]

    def _prune(self, now: float) -> None:
        for buckets in (self._user_buckets, self._tool_buckets):
            stale = [key for key, bucket in buckets.items() if now - bucket.last_refill > self.max_idle_seconds]
            for key in stale:
                buckets.pop(key, None)

    def check_message(self, user_key: str) -> bool:
        """Check if user can send a message. Returns True if allowed."""
        with self._lock:
            now = self.clock()
            self._prune(now)
            return self._bucket(str(user_key or ""), tool=False).consume(now)

    def check_tool_call(self, user_key: str) -> bool:
        """Check if user can run a plugin. Returns True if allowed."""
        with self._lock:
            now = self.clock()
            self._prune(now)
            return self._bucket(str(user_key or ""), tool=True).consume(now)

    def tool_retry_after(self, user_key: str) -> int:
        """Whole seconds until the next plugin run is allowed."""
        with self._lock:
            return math.ceil(self._bucket(str(user_key or ""), tool=True).seconds_until_token(self.clock()))


def caller_key(auth_token: str) -> str:
    """Stable, non-reversible bucket key for a bearer token."""
    if not auth_token:
        return "anonymous"
    return hashlib.sha256(auth_token.encode("utf-8")).hexdigest()[:24]
