"""Property-based tests for the rate limiter.

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

from hypothesis import given, settings, strategies as st

from src.smarty.gate.rate_limit import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestWindowCeiling:
    """Within one window exactly max_requests are allowed."""

    @given(
        max_requests=st.integers(min_value=1, max_value=20),
        attempts=st.integers(min_value=0, max_value=60),
    )
    @settings(max_examples=100)
    def test_allowed_count_is_capped(self, max_requests, attempts):
        clock = FakeClock()
        limiter = RateLimiter(max_requests, window_seconds=60, clock=clock)

        allowed = sum(limiter.check("client").allowed for _ in range(attempts))

        assert allowed == min(attempts, max_requests)
        record = limiter.get_record("client")
        if attempts:
            assert record.count <= max_requests


class TestWindowReset:
    """Any request at or beyond the window length starts a fresh window."""

    @given(
        max_requests=st.integers(min_value=1, max_value=10),
        elapsed=st.floats(min_value=60, max_value=10_000, allow_nan=False),
    )
    @settings(max_examples=100)
    def test_request_after_window_is_allowed(self, max_requests, elapsed):
        clock = FakeClock()
        limiter = RateLimiter(max_requests, window_seconds=60, clock=clock)
        for _ in range(max_requests + 3):
            limiter.check("client")

        clock.now += elapsed
        decision = limiter.check("client")

        assert decision.allowed
        assert limiter.get_record("client").count == 1

    @given(
        max_requests=st.integers(min_value=1, max_value=10),
        elapsed=st.floats(min_value=0, max_value=59.9, allow_nan=False),
    )
    @settings(max_examples=100)
    def test_request_inside_window_stays_denied(self, max_requests, elapsed):
        clock = FakeClock()
        limiter = RateLimiter(max_requests, window_seconds=60, clock=clock)
        for _ in range(max_requests):
            limiter.check("client")

        clock.now += elapsed
        decision = limiter.check("client")

        assert not decision.allowed
        assert 1 <= decision.retry_after <= 60
