"""Per-account order rate limiting over a sliding window."""

from __future__ import annotations

import logging
from collections import deque

logger = logging.getLogger(__name__)


class OrderRateLimiter:
    """
    Allows at most ``max_orders`` attempts per account within ``window_seconds``.

    Timestamps older than the window are pruned on every call, and accounts
    left with no recent attempts are forgotten, so memory stays bounded by
    the number of recently active accounts.
    """

    def __init__(self, window_seconds: float = 2.0, max_orders: int = 5):
        self.window_seconds = window_seconds
        self.max_orders = max_orders
        self._attempts: dict[str, deque[float]] = {}

    def _prune(self, account_id: str, now: float) -> deque[float]:
        stamps = self._attempts.get(account_id)
        if stamps is None:
            return deque()
        while stamps and now - stamps[0] >= self.window_seconds:
            stamps.popleft()
        if not stamps:
            del self._attempts[account_id]
        return stamps

    def allow(self, account_id: str, now: float) -> bool:
        """Record and allow the attempt if the account is under its cap."""
        stamps = self._prune(account_id, now)
        if len(stamps) >= self.max_orders:
            logger.warning(f"Rate limit hit for account {account_id}")
            return False
        self._attempts.setdefault(account_id, stamps).append(now)
        return True

    def recent(self, account_id: str, now: float) -> int:
        return len(self._prune(account_id, now))

    def forget(self, account_id: str) -> None:
        self._attempts.pop(account_id, None)

    @property
    def tracked_accounts(self) -> int:
        return len(self._attempts)
