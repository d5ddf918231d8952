import asyncio

from scanchat.heartbeat.ticker import HeartbeatTicker
from scanchat.ratelimit.limiter import RateLimiter, caller_key


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_message_bucket_refills_over_time() -> None:
    clock = FakeClock()
    limiter = RateLimiter(messages_per_minute=2, tool_calls_per_minute=1, clock=clock)

    assert limiter.check_message("user-1") is True
    assert limiter.check_message("user-1") is True
    assert limiter.check_message("user-1") is False
    assert limiter.check_message("user-2") is True

    clock.now += 30
    assert limiter.check_message("user-1") is True


def test_tool_bucket_reports_retry_after() -> None:
    clock = FakeClock()
    limiter = RateLimiter(tool_calls_per_minute=2, clock=clock)

    assert limiter.check_tool_call("user-1") is True
    assert limiter.check_tool_call("user-1") is True
    assert limiter.check_tool_call("user-1") is False
    assert 29 <= limiter.tool_retry_after("user-1") <= 31

    clock.now += 15
    assert 14 <= limiter.tool_retry_after("user-1") <= 16


def test_idle_buckets_are_pruned() -> None:
    clock = FakeClock()
    limiter = RateLimiter(messages_per_minute=1, max_idle_seconds=60, clock=clock)

    limiter.check_message("user-1")
    clock.now += 120
    limiter.check_message("user-2")

    assert "user-1" not in limiter._user_buckets


def test_caller_key_hides_token() -> None:
    assert caller_key("") == "anonymous"
    assert caller_key("Bearer abc") == caller_key("Bearer abc")
    assert "abc" not in caller_key("Bearer abc")


async def test_heartbeat_ticker_stops_cleanly() -> None:
    ticks: list[int] = []

    async with HeartbeatTicker(ticks.append, interval_s=0.01, name="test") as ticker:
        await asyncio.sleep(0.05)
        assert ticker.running is True

    count = len(ticks)
    await asyncio.sleep(0.03)

    assert count >= 1
    assert len(ticks) == count
    assert ticker.running is False
