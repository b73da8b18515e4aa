"""Tests for the sliding window rate limiter."""
from app.chat.rate_limiter import SlidingWindowRateLimiter


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_allows_up_to_limit_then_rejects():
    limiter = SlidingWindowRateLimiter(window_seconds=10, max_messages=5, clock=Clock())
    results = [limiter.allow("conn") for _ in range(6)]
    assert results == [True, True, True, True, True, False]


def test_rejected_attempts_do_not_extend_window():
    clock = Clock()
    limiter = SlidingWindowRateLimiter(window_seconds=10, max_messages=2, clock=clock)

    assert limiter.allow("conn")
    clock.now = 5
    assert limiter.allow("conn")
    clock.now = 9
    assert not limiter.allow("conn")

    # First accepted message (t=0) expires at t=10; the rejected one left no trace
    clock.now = 10
    assert limiter.allow("conn")
    assert not limiter.allow("conn")


def test_entries_just_inside_window_still_count():
    clock = Clock()
    limiter = SlidingWindowRateLimiter(window_seconds=10, max_messages=1, clock=clock)

    assert limiter.allow("conn")
    clock.now = 9.999
    assert not limiter.allow("conn")


def test_connections_are_independent():
    limiter = SlidingWindowRateLimiter(window_seconds=10, max_messages=1, clock=Clock())

    assert limiter.allow("a")
    assert not limiter.allow("a")
    assert limiter.allow("b")


def test_reset_discards_window():
    limiter = SlidingWindowRateLimiter(window_seconds=10, max_messages=1, clock=Clock())

    limiter.allow("a")
    assert limiter.tracked() == 1
    limiter.reset("a")
    assert limiter.tracked() == 0
    assert limiter.allow("a")


def test_reset_unknown_connection_is_harmless():
    limiter = SlidingWindowRateLimiter()
    limiter.reset("never-seen")
    assert limiter.tracked() == 0
