import pytest

from src.core.errors import RateLimitError
from src.core.rate_limit import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def test_third_attempt_is_rejected(clock):
    limiter = RateLimiter(limit=2, window_seconds=60, clock=clock)
    limiter.hit("alice@example.com")
    clock.now += 10.5
    limiter.hit("alice@example.com")

    with pytest.raises(RateLimitError) as exc:
        limiter.hit("alice@example.com")

    assert exc.value.retry_after == 50
    assert exc.value.status_code == 429
    assert exc.value.details == {"retry_after": 50}


def test_keys_are_independent(clock):
    limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)
    limiter.hit("a")
    limiter.hit("b")
    with pytest.raises(RateLimitError):
        limiter.hit("a")


def test_window_expires(clock):
    limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)
    limiter.hit("a")
    clock.now += 60
    limiter.hit("a")


def test_retry_after_is_at_least_one_second(clock):
    limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)
    limiter.hit("a")
    clock.now += 59.9
    with pytest.raises(RateLimitError) as exc:
        limiter.hit("a")
    assert exc.value.retry_after == 1


def test_reset_forgets_attempts(clock):
    limiter = RateLimiter(limit=1, window_seconds=60, clock=clock)
    limiter.hit("a")
    limiter.reset("a")
    limiter.hit("a")


def test_expired_keys_are_dropped(clock):
    limiter = RateLimiter(limit=5, window_seconds=60, clock=clock)
    for email in ("a@example.com", "b@example.com", "c@example.com"):
        limiter.hit(email)
    assert len(limiter) == 3

    clock.now += 30
    limiter.hit("d@example.com")
    assert len(limiter) == 4

    clock.now += 30
    limiter.hit("e@example.com")
    assert len(limiter) == 2

    clock.now += 60
    limiter.hit("e@example.com")
    assert len(limiter) == 1
