"""
Tests for per-domain sessions and pacing.
"""

import pytest

from patchscout.sessions import DomainRateLimiter, DomainSession


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestDomainSession:
    """Test cookie handling."""

    def test_absorb_merges_and_overwrites(self):
        session = DomainSession(host="vendor.example", cookie_jar={"a": "1", "b": "2"})
        session.absorb_cookies({"b": "3", "c": "4"})
        assert session.cookie_jar == {"a": "1", "b": "3", "c": "4"}

    def test_empty_value_deletes(self):
        session = DomainSession(host="vendor.example", cookie_jar={"a": "1"})
        session.absorb_cookies({"a": ""})
        assert session.cookie_jar == {}


class TestDomainRateLimiter:
    """Test session registry, locks and minimum spacing."""

    def test_one_session_per_host(self):
        limiter = DomainRateLimiter()
        assert limiter.session_for("Vendor.Example") is limiter.session_for("vendor.example")
        assert limiter.session_for("a.example") is not limiter.session_for("b.example")
        assert set(limiter.sessions) == {"vendor.example", "a.example", "b.example"}

    @pytest.mark.asyncio
    async def test_one_lock_per_host(self):
        limiter = DomainRateLimiter()
        assert limiter.lock_for("vendor.example") is limiter.lock_for("VENDOR.example")
        assert limiter.lock_for("a.example") is not limiter.lock_for("b.example")

    @pytest.mark.asyncio
    async def test_first_request_is_not_delayed(self, sleep):
        clock = FakeClock()
        limiter = DomainRateLimiter(min_interval_ms=1000, clock=clock, sleep=sleep)
        session = limiter.session_for("vendor.example")
        assert await limiter.wait_turn(session) == 0.0
        assert sleep.delays == []
        assert limiter.requests_sent("vendor.example") == 1

    @pytest.mark.asyncio
    async def test_spacing_enforced(self, sleep):
        clock = FakeClock()
        limiter = DomainRateLimiter(min_interval_ms=1000, clock=clock, sleep=sleep)
        session = limiter.session_for("vendor.example")
        await limiter.wait_turn(session)
        clock.now += 0.25
        delay = await limiter.wait_turn(session)
        assert delay == pytest.approx(750.0)
        assert sleep.delays == [pytest.approx(0.75)]
        assert limiter.requests_sent("vendor.example") == 2

    @pytest.mark.asyncio
    async def test_no_delay_after_interval(self, sleep):
        clock = FakeClock()
        limiter = DomainRateLimiter(min_interval_ms=1000, clock=clock, sleep=sleep)
        session = limiter.session_for("vendor.example")
        await limiter.wait_turn(session)
        clock.now += 2
        assert await limiter.wait_turn(session) == 0.0
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_hosts_are_paced_independently(self, sleep):
        limiter = DomainRateLimiter(min_interval_ms=1000, clock=FakeClock(), sleep=sleep)
        await limiter.wait_turn(limiter.session_for("a.example"))
        await limiter.wait_turn(limiter.session_for("b.example"))
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_no_session_is_a_noop(self, sleep):
        limiter = DomainRateLimiter(sleep=sleep)
        assert await limiter.wait_turn(None) == 0.0

    @pytest.mark.asyncio
    async def test_pacing_leaves_session_untouched(self, sleep):
        limiter = DomainRateLimiter(min_interval_ms=1000, clock=FakeClock(), sleep=sleep)
        session = limiter.session_for("vendor.example")
        await limiter.wait_turn(session)
        await limiter.wait_turn(session)
        assert session.last_request_ts == 0.0
        assert session.cookie_jar == {}
        assert limiter.requests_sent("VENDOR.example") == 2
