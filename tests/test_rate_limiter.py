"""Tests for the fixed-window rate gate."""

import pytest

from classes.rate_limiter import RateLimitDecision, RateLimiter, get_client_ip


@pytest.fixture
def clock():
    now = [1000.0]
    return now


@pytest.fixture
def limiter(clock):
    return RateLimiter(max_requests=3, window_seconds=60, clock=lambda: clock[0])


class TestRateLimiter:
    def test_allows_up_to_the_limit(self, limiter):
        decisions = [limiter.check("1.2.3.4") for _ in range(3)]
        assert [d.allowed for d in decisions] == [True, True, True]
        assert [d.remaining for d in decisions] == [2, 1, 0]

    def test_denies_past_the_limit(self, limiter, clock):
        for _ in range(3):
            limiter.check("1.2.3.4")
        clock[0] += 10
        denied = limiter.check("1.2.3.4")

        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.reset_in_seconds(clock[0]) == 50

    def test_window_expiry_reopens(self, limiter, clock):
        for _ in range(4):
            limiter.check("1.2.3.4")
        clock[0] += 60
        assert limiter.check("1.2.3.4").allowed is True

    def test_callers_are_independent(self, limiter):
        for _ in range(3):
            limiter.check("a")
        assert limiter.check("a").allowed is False
        assert limiter.check("b").allowed is True

    def test_status_does_not_count(self, limiter):
        limiter.check("a")
        for _ in range(5):
            status = limiter.get_status("a")
        assert status.remaining == 2
        assert limiter.check("a").remaining == 1

    def test_status_of_unknown_caller(self, limiter):
        status = limiter.get_status("nobody")
        assert status.allowed is True
        assert status.remaining == 3

    def test_reset(self, limiter):
        for _ in range(3):
            limiter.check("a")
        limiter.reset("a")
        assert limiter.check("a").allowed is True

    def test_sweep_expired(self, limiter, clock):
        limiter.check("a")
        clock[0] += 30
        limiter.check("b")
        clock[0] += 31
        assert limiter.sweep_expired() == 1
        assert limiter.get_status("b").remaining == 2

    def test_expired_callers_dropped_by_later_requests(self, limiter, clock):
        for i in range(500):
            limiter.check(f"10.0.{i // 256}.{i % 256}")
        clock[0] += 3600

        limiter.check("fresh")

        assert list(limiter._windows) == ["fresh"]

    def test_live_windows_survive_the_sweep(self, limiter, clock):
        limiter.check("a")
        clock[0] += 59
        limiter.check("b")
        clock[0] += 2
        limiter.check("c")

        assert sorted(limiter._windows) == ["b", "c"]
        assert limiter.get_status("b").remaining == 2


class TestResetInSeconds:
    def test_rounds_up(self):
        assert RateLimitDecision(False, 0, reset_at=100.2).reset_in_seconds(now=90.0) == 11

    def test_never_negative(self):
        assert RateLimitDecision(False, 0, reset_at=100.0).reset_in_seconds(now=200.0) == 0


class TestClientIp:
    def test_first_forwarded_address(self):
        assert get_client_ip({"x-forwarded-for": "10.0.0.1, 10.0.0.2"}) == "10.0.0.1"

    def test_real_ip_fallback(self):
        assert get_client_ip({"x-real-ip": " 10.0.0.9 "}) == "10.0.0.9"

    def test_unknown(self):
        assert get_client_ip({}) == "unknown"
