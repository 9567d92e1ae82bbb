"""Ledger models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from marketsim.constants import OrderSide


def generate_id() -> str:
    """Generate unique ID."""
    return str(uuid4())


@dataclass(frozen=True)
class Account:
    """Participant cash account, owned by exactly one room."""

    id: str
    username: str
    room_code: str
    cash: Decimal
    realized_pnl: Decimal = Decimal("0")
    created_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class Position:
    """Holding of one symbol. Long-only, so ``qty`` never goes negative."""

    account_id: str
    symbol: str
    qty: Decimal = Decimal("0")
    avg_entry: Decimal = Decimal("0")
    realized_pnl: Decimal = Decimal("0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "qty": float(self.qty),
            "avgEntry": float(self.avg_entry),
            "realizedPnl": float(self.realized_pnl),
        }


@dataclass(frozen=True)
class Trade:
    """Executed fill. Append-only audit record."""

    id: str
    account_id: str
    room_code: str
    symbol: str
    side: OrderSide
    qty: Decimal
    fill_price: Decimal
    fee_paid: Decimal
    timestamp: datetime


@dataclass(frozen=True)
class TeachingEventRecord:
    """Event log entry: teaching events, admin controls and broadcasts."""

    event_type: str
    message: str
    room_code: str
    symbol: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=generate_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "eventType": self.event_type,
            "symbol": self.symbol,
            "message": self.message,
            "roomCode": self.room_code,
            "createdAt": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class Portfolio:
    """Cash plus every position of one account."""

    account: Account
    positions: list[Position]

    def to_dict(self) -> dict[str, Any]:
        return {
            "cash": float(self.account.cash),
            "realizedPnl": float(self.account.realized_pnl),
            "positions": [p.to_dict() for p in self.positions],
        }
