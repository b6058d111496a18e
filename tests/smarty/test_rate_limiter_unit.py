"""Unit tests for the fixed-window rate limiter and client identity."""

from types import SimpleNamespace

import pytest

from src.smarty.gate.rate_limit import RateLimiter, client_identity

DAY = 86400


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(max_requests=5, window_seconds=DAY, clock=clock)


class TestFixedWindow:
    def test_first_five_allowed_sixth_denied(self, limiter):
        decisions = [limiter.check("10.0.0.1") for _ in range(6)]

        assert [d.allowed for d in decisions] == [True] * 5 + [False]
        assert [d.remaining for d in decisions[:5]] == [4, 3, 2, 1, 0]

    def test_denial_does_not_increment(self, limiter):
        for _ in range(8):
            limiter.check("10.0.0.1")

        assert limiter.get_record("10.0.0.1").count == 5

    def test_retry_after_counts_down(self, limiter, clock):
        for _ in range(5):
            limiter.check("10.0.0.1")

        clock.now += DAY - 60
        decision = limiter.check("10.0.0.1")

        assert decision.allowed is False
        assert decision.retry_after == 60

    def test_window_expiry_resets_count_to_one(self, limiter, clock):
        for _ in range(6):
            limiter.check("10.0.0.1")

        clock.now += DAY
        decision = limiter.check("10.0.0.1")

        assert decision.allowed is True
        record = limiter.get_record("10.0.0.1")
        assert record.count == 1
        assert record.window_start == clock.now

    def test_identities_are_independent(self, limiter):
        for _ in range(5):
            limiter.check("10.0.0.1")

        assert limiter.check("10.0.0.1").allowed is False
        assert limiter.check("10.0.0.2").allowed is True

    def test_prune_drops_expired_records(self, limiter, clock):
        limiter.check("old")
        clock.now += DAY / 2
        limiter.check("new")
        clock.now += DAY / 2

        assert limiter.prune() == 1
        assert limiter.get_record("old") is None
        assert limiter.get_record("new") is not None

    def test_check_drops_expired_identities_once_per_window(self, limiter, clock):
        for identity in ("10.0.0.1", "10.0.0.2", "10.0.0.3"):
            limiter.check(identity)
        clock.now += DAY / 2
        limiter.check("10.0.0.4")

        assert limiter.get_record("10.0.0.1") is not None

        clock.now += DAY / 2
        limiter.check("10.0.0.9")

        for identity in ("10.0.0.1", "10.0.0.2", "10.0.0.3"):
            assert limiter.get_record(identity) is None
        assert limiter.get_record("10.0.0.4") is not None
        assert limiter.get_record("10.0.0.9").count == 1

    @pytest.mark.parametrize(
        "kwargs", [{"max_requests": 0, "window_seconds": 1}, {"max_requests": 1, "window_seconds": 0}]
    )
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ValueError):
            RateLimiter(**kwargs)


class TestClientIdentity:
    def _request(self, headers=None, host="192.168.1.5"):
        client = SimpleNamespace(host=host) if host else None
        return SimpleNamespace(headers=headers or {}, client=client)

    def test_first_forwarded_address_wins(self):
        request = self._request({"x-forwarded-for": "203.0.113.7, 10.0.0.1"})
        assert client_identity(request) == "203.0.113.7"

    def test_falls_back_to_socket_address(self):
        assert client_identity(self._request()) == "192.168.1.5"

    def test_blank_forwarded_header_ignored(self):
        request = self._request({"x-forwarded-for": " , 10.0.0.1"})
        assert client_identity(request) == "192.168.1.5"

    def test_unknown_without_any_address(self):
        assert client_identity(self._request(host=None)) == "unknown"
