"""Tests for the fixed-window RateLimiter."""

from bibble.core.rate_limit import DEFAULT_LIMIT, DEFAULT_WINDOW_SECONDS, RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_defaults():
    """Test the default limit of 50 calls per minute."""
    limiter = RateLimiter()

    assert limiter.limit == DEFAULT_LIMIT == 50
    assert limiter.window == DEFAULT_WINDOW_SECONDS == 60.0


def test_allows_up_to_limit():
    """Test that the limit is inclusive and the next call is refused."""
    limiter = RateLimiter(limit=3, clock=FakeClock())

    assert [limiter.check("tool:a") for _ in range(4)] == [True, True, True, False]


def test_keys_are_independent():
    """Test that each key has its own window."""
    limiter = RateLimiter(limit=1, clock=FakeClock())

    assert limiter.check("tool:a")
    assert limiter.check("tool:b")
    assert not limiter.check("tool:a")


def test_window_resets_after_expiry():
    """Test that a new window starts once the old one expires."""
    clock = FakeClock()
    limiter = RateLimiter(limit=1, window=60.0, clock=clock)
    assert limiter.check("tool:a")
    assert not limiter.check("tool:a")

    clock.now += 60.5

    assert limiter.check("tool:a")


def test_cleanup_drops_expired_windows():
    """Test that cleanup only removes expired windows."""
    clock = FakeClock()
    limiter = RateLimiter(window=10.0, clock=clock)
    limiter.check("old")
    clock.now += 5
    limiter.check("new")
    clock.now += 6

    assert limiter.cleanup() == 1
    assert limiter.cleanup() == 0


def test_reset_clears_all_counters():
    """Test that reset forgets every window."""
    limiter = RateLimiter(limit=1, clock=FakeClock())
    limiter.check("tool:a")

    limiter.reset()

    assert limiter.check("tool:a")
