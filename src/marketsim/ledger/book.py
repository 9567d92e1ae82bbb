"""In-memory account book: the committed ledger the service reads from."""

from __future__ import annotations

import asyncio
from collections import defaultdict

from marketsim.errors import AccountNotFound, UnknownSymbol
from marketsim.ledger.models import Account, Portfolio, Position, Trade


class AccountBook:
    """
    Accounts, positions and trades as last committed.

    Each account has its own lock; an order holds it across the whole
    read-quote-apply-persist-commit sequence so fills on one account never
    interleave. Accounts are kept in creation order.
    """

    def __init__(self):
        self._accounts: dict[str, Account] = {}
        self._by_name: dict[tuple[str, str], str] = {}
        self._positions: dict[str, dict[str, Position]] = {}
        self._trades: dict[str, list[Trade]] = defaultdict(list)
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._accounts)

    def add(self, account: Account, positions: list[Position]) -> None:
        self._accounts[account.id] = account
        self._by_name[(account.room_code, account.username)] = account.id
        self._positions[account.id] = {p.symbol: p for p in positions}
        self._locks[account.id] = asyncio.Lock()

    def get(self, account_id: str) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise AccountNotFound(f"Account not found: {account_id}")
        return account

    def find(self, room_code: str, username: str) -> Account | None:
        account_id = self._by_name.get((room_code, username))
        return self._accounts.get(account_id) if account_id else None

    def lock_for(self, account_id: str) -> asyncio.Lock:
        self.get(account_id)
        return self._locks[account_id]

    def position(self, account_id: str, symbol: str) -> Position:
        self.get(account_id)
        pos = self._positions[account_id].get(symbol)
        if pos is None:
            raise UnknownSymbol(f"No {symbol} position for account {account_id}")
        return pos

    def positions(self, account_id: str) -> list[Position]:
        self.get(account_id)
        return list(self._positions[account_id].values())

    def all_positions(self) -> dict[str, list[Position]]:
        return {account_id: list(by_symbol.values()) for account_id, by_symbol in self._positions.items()}

    def trades(self, account_id: str) -> list[Trade]:
        self.get(account_id)
        return list(self._trades.get(account_id, ()))

    def portfolio(self, account_id: str) -> Portfolio:
        return Portfolio(account=self.get(account_id), positions=self.positions(account_id))

    def accounts_in_room(self, room_code: str) -> list[Account]:
        return [a for a in self._accounts.values() if a.room_code == room_code]

    def rooms(self) -> list[str]:
        return list(dict.fromkeys(a.room_code for a in self._accounts.values()))

    def commit(self, account: Account, position: Position, trade: Trade) -> None:
        """Install the result of a persisted fill."""
        self._accounts[account.id] = account
        self._positions[account.id][position.symbol] = position
        self._trades[account.id].append(trade)
