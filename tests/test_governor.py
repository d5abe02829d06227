"""Tests for the sliding-window rate limiter and the daily token budget."""

import threading
from datetime import datetime

import pytest
from pydantic import ValidationError

from taskflow.core.governor import (
    Governor,
    TokenBudget,
    estimate_tokens,
)


# ---------------------------------------------------------------------------
# Rate limit
# ---------------------------------------------------------------------------
def test_quota_plus_one_is_denied_then_allowed_after_reset(clock) -> None:
    """The (quota+1)-th call in a window is denied; after reset_in seconds it is allowed."""
    governor = Governor(max_requests=3, window_seconds=60, clock=clock)

    for _ in range(3):
        assert governor.check_rate_limit("u1").allowed
        clock.advance(10)

    denied = governor.check_rate_limit("u1")
    assert not denied.allowed
    assert denied.remaining == 0
    assert denied.reset_in == 30  # first request was at t-30

    clock.advance(denied.reset_in)
    assert governor.check_rate_limit("u1").allowed


def test_allowed_checks_record_and_denied_checks_do_not(clock) -> None:
    governor = Governor(max_requests=2, window_seconds=60, clock=clock)

    assert governor.check_rate_limit("u1").remaining == 1
    assert governor.check_rate_limit("u1").remaining == 0
    for _ in range(5):
        assert not governor.check_rate_limit("u1").allowed

    # Denied checks did not push the oldest entry forward
    clock.advance(60)
    assert governor.check_rate_limit("u1").allowed


def test_users_have_independent_windows(clock) -> None:
    governor = Governor(max_requests=1, window_seconds=60, clock=clock)

    assert governor.check_rate_limit("alice").allowed
    assert not governor.check_rate_limit("alice").allowed
    assert governor.check_rate_limit("bob").allowed


def test_status_does_not_consume_quota(clock) -> None:
    governor = Governor(max_requests=1, window_seconds=60, clock=clock)

    for _ in range(3):
        status = governor.rate_limit_status("u1")
        assert status.allowed
        assert status.remaining == 1
    assert governor.check_rate_limit("u1").allowed


def test_status_for_unknown_user_keeps_no_state(clock) -> None:
    """Reading headers for a user who never made a request stores nothing."""
    governor = Governor(max_requests=3, tokens_per_day=500, clock=clock)

    headers = governor.headers("stranger")

    assert headers["X-RateLimit-Remaining"] == "3"
    assert headers["X-RateLimit-Reset"] == "0"
    assert headers["X-TokenLimit-Remaining"] == "500"
    assert governor._windows == {}
    assert governor._budgets == {}
    assert governor._user_locks == {}


def test_expired_window_is_dropped(clock) -> None:
    governor = Governor(max_requests=2, window_seconds=60, clock=clock)
    governor.check_rate_limit("u1")
    assert "u1" in governor._windows

    clock.advance(61)
    status = governor.rate_limit_status("u1")

    assert status.remaining == 2
    assert "u1" not in governor._windows
    assert governor.check_rate_limit("u1").remaining == 1


def test_concurrent_checks_for_one_user_never_exceed_quota(clock) -> None:
    governor = Governor(max_requests=25, window_seconds=60, clock=clock)
    results = []
    lock = threading.Lock()

    def worker() -> None:
        allowed = governor.check_rate_limit("u1").allowed
        with lock:
            results.append(allowed)

    threads = [threading.Thread(target=worker) for _ in range(100)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 25


# ---------------------------------------------------------------------------
# Token budget
# ---------------------------------------------------------------------------
def test_budget_rejection_leaves_usage_unchanged(clock) -> None:
    governor = Governor(tokens_per_day=100, clock=clock)

    first = governor.track_token_usage("u1", 60)
    assert first.allowed and first.used == 60 and first.remaining == 40

    rejected = governor.track_token_usage("u1", 50)
    assert not rejected.allowed
    assert rejected.used == 60
    assert rejected.limit == 100

    exact = governor.track_token_usage("u1", 40)
    assert exact.allowed and exact.used == 100 and exact.remaining == 0

    assert not governor.track_token_usage("u1", 1).allowed
    assert governor.token_usage_status("u1").used == 100


def test_budget_resets_at_calendar_day_boundary() -> None:
    morning = datetime(2024, 3, 5, 9, 0).timestamp()
    late = datetime(2024, 3, 5, 23, 59, 30).timestamp()
    next_day = datetime(2024, 3, 6, 0, 0, 1).timestamp()
    now = {"t": morning}
    governor = Governor(tokens_per_day=1000, clock=lambda: now["t"])

    governor.track_token_usage("u1", 300)
    now["t"] = late
    assert governor.track_token_usage("u1", 200).used == 500

    now["t"] = next_day
    after = governor.track_token_usage("u1", 70)
    assert after.allowed
    assert after.used == 70


def test_status_discards_budget_from_previous_day() -> None:
    now = {"t": datetime(2024, 3, 5, 9, 0).timestamp()}
    governor = Governor(tokens_per_day=1000, clock=lambda: now["t"])
    governor.track_token_usage("u1", 300)

    now["t"] = datetime(2024, 3, 6, 8, 0).timestamp()
    status = governor.token_usage_status("u1")

    assert status.used == 0
    assert "u1" not in governor._budgets


def test_budget_reset_in_points_at_midnight() -> None:
    start = datetime(2024, 3, 5, 23, 0).timestamp()
    governor = Governor(tokens_per_day=10, clock=lambda: start)

    assert governor.token_usage_status("u1").reset_in == 3600


def test_estimate_tokens_is_monotonic() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2

    lengths = [estimate_tokens("x" * n) for n in range(0, 200, 7)]
    assert lengths == sorted(lengths)


def test_headers_reflect_state_without_recording(clock) -> None:
    governor = Governor(max_requests=3, tokens_per_day=500, clock=clock)
    governor.check_rate_limit("u1")
    governor.track_token_usage("u1", 120)

    headers = governor.headers("u1")
    assert headers["X-RateLimit-Limit"] == "3"
    assert headers["X-RateLimit-Remaining"] == "2"
    assert headers["X-TokenLimit-Used"] == "120"
    assert headers["X-TokenLimit-Remaining"] == "380"
    assert governor.headers("u1")["X-RateLimit-Remaining"] == "2"


def test_token_budget_record_is_validated() -> None:
    assert TokenBudget(used="5", limit=10, reset_at=0).used == 5
    with pytest.raises(ValidationError):
        TokenBudget(used="plenty", limit=10, reset_at=0)
