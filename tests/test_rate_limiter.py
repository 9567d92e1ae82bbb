"""Tests for the order rate limiter."""

from marketsim.execution.rate_limiter import OrderRateLimiter


def test_allows_up_to_cap_then_rejects():
    limiter = OrderRateLimiter(window_seconds=2.0, max_orders=5)
    assert all(limiter.allow("a", 100.0 + i * 0.1) for i in range(5))
    assert limiter.allow("a", 100.5) is False


def test_allows_again_after_window():
    limiter = OrderRateLimiter(window_seconds=2.0, max_orders=5)
    for i in range(5):
        limiter.allow("a", 100.0)
    assert limiter.allow("a", 101.9) is False
    assert limiter.allow("a", 102.0) is True


def test_rejected_attempts_are_not_recorded():
    limiter = OrderRateLimiter(window_seconds=2.0, max_orders=1)
    assert limiter.allow("a", 0.0)
    assert not limiter.allow("a", 1.0)
    assert not limiter.allow("a", 1.5)
    assert limiter.allow("a", 2.0)


def test_accounts_are_independent():
    limiter = OrderRateLimiter(window_seconds=2.0, max_orders=2)
    limiter.allow("a", 0.0)
    limiter.allow("a", 0.0)
    assert not limiter.allow("a", 0.5)
    assert limiter.allow("b", 0.5)


def test_sliding_window():
    limiter = OrderRateLimiter(window_seconds=2.0, max_orders=2)
    limiter.allow("a", 0.0)
    limiter.allow("a", 1.0)
    assert not limiter.allow("a", 1.5)
    # Only the t=0 attempt has aged out
    assert limiter.allow("a", 2.0)
    assert not limiter.allow("a", 2.5)


def test_idle_accounts_are_forgotten():
    limiter = OrderRateLimiter(window_seconds=2.0, max_orders=5)
    limiter.allow("a", 0.0)
    limiter.allow("b", 0.0)
    assert limiter.tracked_accounts == 2
    assert limiter.recent("a", 10.0) == 0
    assert limiter.tracked_accounts == 1
    limiter.forget("b")
    assert limiter.tracked_accounts == 0
