"""
Per-user request rate limiting and daily token budgets.

Two independent mechanisms gate agent invocations:

1. **Sliding window** - at most ``max_requests`` allowed checks inside the trailing
   ``window_seconds``.  An allowed check records the request immediately.
2. **Token budget** - cumulative estimated tokens per user per local calendar day.

Neither check raises; callers branch on ``allowed``.  Each user's records are guarded by a
dedicated lock so that unrelated users never contend with each other.
"""

import logging
import math
import threading
import time
from datetime import (
    datetime,
    timedelta,
)
from typing import (
    Callable,
    Dict,
    List,
    Optional,
)

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class RateLimitResult(BaseModel):
    """Outcome of a rate-limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset_in: int  # seconds until the oldest in-window request expires


class TokenUsageResult(BaseModel):
    """Outcome of a token-budget check."""

    allowed: bool
    used: int
    limit: int
    remaining: int
    reset_in: int  # seconds until the budget resets


class TokenBudget(BaseModel):
    """Mutable per-user budget record."""

    used: int
    limit: int
    reset_at: float


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 characters per token for English)."""
    return math.ceil(len(text) / 4)


def _next_day_boundary(now: float) -> float:
    """Return the timestamp of the next local midnight after *now*."""
    today = datetime.fromtimestamp(now).replace(hour=0, minute=0, second=0, microsecond=0)
    return (today + timedelta(days=1)).timestamp()


class Governor:
    """Sliding-window rate limiter plus daily token-budget tracker, keyed by user id."""

    def __init__(
        self,
        max_requests: int = 3,
        window_seconds: float = 60.0,
        tokens_per_day: int = 100_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.tokens_per_day = tokens_per_day
        self._clock = clock

        self._windows: Dict[str, List[float]] = {}
        self._budgets: Dict[str, TokenBudget] = {}
        self._user_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = self._user_locks[user_id] = threading.Lock()
            return lock

    def _existing_lock(self, user_id: str) -> Optional[threading.Lock]:
        # Users without a lock have never been checked, so they have no records.
        with self._locks_guard:
            return self._user_locks.get(user_id)

    # ------------------------------------------------------------------ #
    # Request rate
    # ------------------------------------------------------------------ #
    def _recent(self, user_id: str, now: float) -> List[float]:
        """Prune expired timestamps; a window left empty is dropped entirely."""
        window_start = now - self.window_seconds
        recent = [ts for ts in self._windows.get(user_id, ()) if ts > window_start]
        if recent:
            self._windows[user_id] = recent
        else:
            self._windows.pop(user_id, None)
        return recent

    def _rate_result(self, allowed: bool, recent: List[float], now: float) -> RateLimitResult:
        reset_in = max(0, math.ceil(recent[0] + self.window_seconds - now)) if recent else 0
        return RateLimitResult(
            allowed=allowed,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - len(recent)),
            reset_in=reset_in,
        )

    def check_rate_limit(self, user_id: str) -> RateLimitResult:
        """
        Check the sliding window for *user_id* and record the request if it is allowed.

        Check and record happen atomically: two allowed checks count as two requests.
        """
        with self._lock_for(user_id):
            now = self._clock()
            recent = self._recent(user_id, now)
            allowed = len(recent) < self.max_requests
            if allowed:
                recent.append(now)
                self._windows[user_id] = recent
            result = self._rate_result(allowed, recent, now)

        if not allowed:
            logger.info("Rate limit hit for user %s (reset in %ds)", user_id, result.reset_in)
        return result

    def rate_limit_status(self, user_id: str) -> RateLimitResult:
        """Report the window state for *user_id* without recording a request."""
        lock = self._existing_lock(user_id)
        if lock is None:
            return self._rate_result(True, [], self._clock())
        with lock:
            now = self._clock()
            recent = self._recent(user_id, now)
            return self._rate_result(len(recent) < self.max_requests, recent, now)

    # ------------------------------------------------------------------ #
    # Token budget
    # ------------------------------------------------------------------ #
    def _fresh_budget(self, now: float) -> TokenBudget:
        return TokenBudget(used=0, limit=self.tokens_per_day, reset_at=_next_day_boundary(now))

    def _current_budget(self, user_id: str, now: float) -> Optional[TokenBudget]:
        """Return today's budget for *user_id*, discarding one whose day has ended."""
        budget = self._budgets.get(user_id)
        if budget is not None and now >= budget.reset_at:
            del self._budgets[user_id]
            return None
        return budget

    def _budget(self, user_id: str, now: float) -> TokenBudget:
        budget = self._current_budget(user_id, now)
        if budget is None:
            budget = self._budgets[user_id] = self._fresh_budget(now)
        return budget

    def _usage(self, budget: TokenBudget, allowed: bool, now: float) -> TokenUsageResult:
        return TokenUsageResult(
            allowed=allowed,
            used=budget.used,
            limit=budget.limit,
            remaining=max(0, budget.limit - budget.used),
            reset_in=max(0, math.ceil(budget.reset_at - now)),
        )

    def track_token_usage(self, user_id: str, tokens: int) -> TokenUsageResult:
        """
        Add *tokens* to today's usage for *user_id* unless that would exceed the limit.

        A rejected call leaves ``used`` untouched.
        """
        with self._lock_for(user_id):
            now = self._clock()
            budget = self._budget(user_id, now)
            allowed = budget.used + tokens <= budget.limit
            if allowed:
                budget.used += tokens
            result = self._usage(budget, allowed, now)

        if not allowed:
            logger.info(
                "Token budget exceeded for user %s (%d + %d > %d)",
                user_id,
                result.used,
                tokens,
                result.limit,
            )
        return result

    def token_usage_status(self, user_id: str) -> TokenUsageResult:
        """Report today's budget for *user_id* without consuming anything."""
        lock = self._existing_lock(user_id)
        if lock is None:
            now = self._clock()
            budget = self._fresh_budget(now)
            return self._usage(budget, budget.used < budget.limit, now)
        with lock:
            now = self._clock()
            budget = self._current_budget(user_id, now) or self._fresh_budget(now)
            return self._usage(budget, budget.used < budget.limit, now)

    def headers(self, user_id: str) -> Dict[str, str]:
        """Rate-limit and token-budget headers for an HTTP response."""
        rate = self.rate_limit_status(user_id)
        tokens = self.token_usage_status(user_id)
        return {
            "X-RateLimit-Limit": str(rate.limit),
            "X-RateLimit-Remaining": str(rate.remaining),
            "X-RateLimit-Reset": str(rate.reset_in),
            "X-TokenLimit-Used": str(tokens.used),
            "X-TokenLimit-Remaining": str(tokens.remaining),
        }
