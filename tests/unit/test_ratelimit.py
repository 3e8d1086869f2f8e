import pytest

from adstudio.api.ratelimit import FixedWindowLimiter
from adstudio.core.errors import RateLimited


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestFixedWindowLimiter:
    """Per-user request throttling."""

    @pytest.mark.unit
    def test_allows_up_to_limit(self):
        limiter = FixedWindowLimiter(3, clock=FakeClock())

        assert [limiter.hit("u1") for _ in range(3)] == [None, None, None]
        assert limiter.hit("u1") == 60

    @pytest.mark.unit
    def test_retry_after_shrinks_within_window(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter(1, clock=clock)
        limiter.hit("u1")

        clock.now += 45.5
        assert limiter.hit("u1") == 15

    @pytest.mark.unit
    def test_window_resets(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter(1, clock=clock)
        limiter.hit("u1")

        clock.now += 60
        assert limiter.hit("u1") is None

    @pytest.mark.unit
    def test_keys_are_independent(self):
        limiter = FixedWindowLimiter(1, clock=FakeClock())
        limiter.hit("u1")

        assert limiter.hit("u2") is None

    @pytest.mark.unit
    def test_check_raises_rate_limited(self):
        limiter = FixedWindowLimiter(1, clock=FakeClock())
        limiter.check("u1")

        with pytest.raises(RateLimited) as exc_info:
            limiter.check("u1")

        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 60

    @pytest.mark.unit
    def test_rejected_requests_do_not_extend_window(self):
        clock = FakeClock()
        limiter = FixedWindowLimiter(1, clock=clock)
        limiter.hit("u1")
        for _ in range(5):
            clock.now += 10
            limiter.hit("u1")

        clock.now += 10
        assert limiter.hit("u1") is None
