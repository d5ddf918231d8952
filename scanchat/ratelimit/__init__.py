"""Rate limiting for chat turns and plugin runs."""

from scanchat.ratelimit.limiter import RateLimiter, caller_key

__all__ = ["RateLimiter", "caller_key"]
