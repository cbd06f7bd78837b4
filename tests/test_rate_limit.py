from __future__ import annotations

from solpulse.rate_limit import (
    UNKNOWN_CLIENT,
    RateLimitConfig,
    RateLimits,
    SlidingWindowRateLimiter,
    client_id_from_headers,
)


class _Clock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_denies_after_max_requests_with_retry_metadata() -> None:
    clock = _Clock()
    limiter = SlidingWindowRateLimiter(clock=clock)
    config = RateLimits.SIGNALS

    for i in range(10):
        decision = limiter.check("1.2.3.4", "signals", config)
        assert decision.allowed
        assert decision.remaining == 9 - i
        clock.now += 1

    denied = limiter.check("1.2.3.4", "signals", config)
    assert not denied.allowed
    assert denied.remaining == 0
    # oldest accepted at t=1000, now t=1010, window 300s
    assert denied.retry_after == 290
    assert denied.reset_at == 1300

    headers = denied.headers()
    assert headers["Retry-After"] == "290"
    assert headers["X-RateLimit-Limit"] == "10"
    assert headers["X-RateLimit-Remaining"] == "0"
    assert headers["X-RateLimit-Reset"] == "1300"


def test_window_slides_as_old_timestamps_age_out() -> None:
    clock = _Clock()
    limiter = SlidingWindowRateLimiter(clock=clock)
    config = RateLimitConfig(max_requests=2, window=60)

    assert limiter.check("c", "r", config).allowed
    clock.now += 30
    assert limiter.check("c", "r", config).allowed
    clock.now += 10
    assert not limiter.check("c", "r", config).allowed

    # first request leaves the window at t+60
    clock.now = 1_060
    assert limiter.check("c", "r", config).allowed
    assert not limiter.check("c", "r", config).allowed


def test_never_more_than_max_accepted_in_any_window() -> None:
    clock = _Clock()
    limiter = SlidingWindowRateLimiter(clock=clock)
    config = RateLimitConfig(max_requests=3, window=10)

    accepted: list[float] = []
    for step in range(200):
        clock.now = 1_000 + step * 0.7
        if limiter.check("c", "r", config).allowed:
            accepted.append(clock.now)

    for t in accepted:
        in_window = [a for a in accepted if t <= a < t + config.window]
        assert len(in_window) <= config.max_requests


def test_routes_and_clients_have_independent_buckets() -> None:
    limiter = SlidingWindowRateLimiter(clock=_Clock())
    config = RateLimitConfig(max_requests=1, window=60)

    assert limiter.check("a", "narratives", config).allowed
    assert limiter.check("a", "signals", config).allowed
    assert limiter.check("b", "narratives", config).allowed
    assert not limiter.check("a", "narratives", config).allowed


def test_cleanup_prunes_idle_keys_after_interval() -> None:
    clock = _Clock()
    limiter = SlidingWindowRateLimiter(clock=clock, cleanup_interval=300, max_window=60)
    limiter.check("a", "r", RateLimitConfig(max_requests=5, window=60))
    limiter.check("b", "r", RateLimitConfig(max_requests=5, window=60))
    assert limiter.stats() == {"tracked_keys": 2, "entries": 2}

    clock.now += 301
    limiter.check("c", "r", RateLimitConfig(max_requests=5, window=60))
    assert limiter.stats() == {"tracked_keys": 1, "entries": 1}


def test_client_id_prefers_first_forwarded_hop() -> None:
    assert client_id_from_headers({"x-forwarded-for": "9.9.9.9, 10.0.0.1"}) == "9.9.9.9"
    assert client_id_from_headers({"x-real-ip": " 8.8.8.8 "}) == "8.8.8.8"
    assert client_id_from_headers({"x-forwarded-for": "7.7.7.7", "x-real-ip": "8.8.8.8"}) == "7.7.7.7"
    assert client_id_from_headers({}) == UNKNOWN_CLIENT
