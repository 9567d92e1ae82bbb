"""Accounts, positions, trades and the leaderboard."""

from marketsim.ledger.book import AccountBook
from marketsim.ledger.leaderboard import LeaderboardRow, compute_leaderboard
from marketsim.ledger.models import Account, Portfolio, Position, TeachingEventRecord, Trade
from marketsim.ledger.mutator import apply_fill

__all__ = [
    "AccountBook",
    "LeaderboardRow",
    "compute_leaderboard",
    "Account",
    "Portfolio",
    "Position",
    "TeachingEventRecord",
    "Trade",
    "apply_fill",
]
