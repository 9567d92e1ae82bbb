"""Mark-to-market leaderboard."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from marketsim.ledger.models import Account, Position


@dataclass(frozen=True)
class LeaderboardRow:
    rank: int
    account_id: str
    username: str
    cash: Decimal
    unrealized: Decimal
    equity: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "rank": self.rank,
            "userId": self.account_id,
            "username": self.username,
            "cash": float(self.cash),
            "unrealized": float(self.unrealized),
            "equity": float(self.equity),
        }


def compute_leaderboard(
    accounts: Iterable[Account],
    positions: Mapping[str, Iterable[Position]],
    prices: Mapping[str, Decimal],
) -> list[LeaderboardRow]:
    """
    Rank accounts by equity (cash plus unrealized P&L), highest first.

    The sort is stable, so accounts with equal equity keep the order they
    were given in. Positions on symbols without a price are ignored.
    """
    scored = []
    for account in accounts:
        unrealized = Decimal("0")
        for pos in positions.get(account.id, ()):
            price = prices.get(pos.symbol)
            if price is None or pos.qty == 0:
                continue
            unrealized += (price - pos.avg_entry) * pos.qty
        scored.append((account, unrealized, account.cash + unrealized))

    scored.sort(key=lambda item: item[2], reverse=True)

    return [
        LeaderboardRow(
            rank=i,
            account_id=account.id,
            username=account.username,
            cash=account.cash,
            unrealized=unrealized,
            equity=equity,
        )
        for i, (account, unrealized, equity) in enumerate(scored, start=1)
    ]
