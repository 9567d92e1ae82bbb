"""Applies validated fills to account cash and positions."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from marketsim.constants import ZERO, OrderSide
from marketsim.errors import (
    InsufficientCash,
    InsufficientPosition,
    InvalidQuantity,
    MarketHalted,
)
from marketsim.ledger.models import Account, Position, Trade, generate_id

logger = logging.getLogger(__name__)


def apply_fill(
    account: Account,
    position: Position,
    side: OrderSide,
    qty: Decimal,
    fill_price: Decimal,
    fee: Decimal,
    *,
    halted: bool = False,
    timestamp: datetime | None = None,
) -> tuple[Account, Position, Trade]:
    """
    Compute the ledger effect of one fill.

    Inputs are never mutated; the updated account and position are returned
    together with the trade record, so a rejection leaves no trace and the
    caller decides when to commit.

    Raises:
        MarketHalted: Trading on the symbol is halted.
        InvalidQuantity: ``qty`` is not positive.
        InsufficientCash: BUY costs more than the account's cash.
        InsufficientPosition: SELL exceeds the held quantity.
    """
    if halted:
        raise MarketHalted(f"Trading halted on {position.symbol}")
    if qty <= 0:
        raise InvalidQuantity(f"Quantity must be positive, got: {qty}")

    side = OrderSide(side)
    gross = fill_price * qty

    if side == OrderSide.BUY:
        total = gross + fee
        if account.cash < total:
            raise InsufficientCash(f"Need {total:.2f}, have {account.cash:.2f}")

        new_qty = position.qty + qty
        new_avg = (position.qty * position.avg_entry + gross) / new_qty
        new_account = replace(account, cash=account.cash - total)
        new_position = replace(position, qty=new_qty, avg_entry=new_avg)
    else:
        if position.qty < qty:
            raise InsufficientPosition(
                f"Cannot sell {qty} {position.symbol}, holding {position.qty}"
            )

        pnl = (fill_price - position.avg_entry) * qty
        new_qty = position.qty - qty
        new_account = replace(
            account,
            cash=account.cash + gross - fee,
            realized_pnl=account.realized_pnl + pnl,
        )
        new_position = replace(
            position,
            qty=new_qty,
            avg_entry=ZERO if new_qty == 0 else position.avg_entry,
            realized_pnl=position.realized_pnl + pnl,
        )

    trade = Trade(
        id=generate_id(),
        account_id=account.id,
        room_code=account.room_code,
        symbol=position.symbol,
        side=side,
        qty=qty,
        fill_price=fill_price,
        fee_paid=fee,
        timestamp=timestamp or datetime.now(),
    )
    logger.debug(
        f"Fill {side.value} {qty} {position.symbol} @ {fill_price} for {account.username}: "
        f"cash {account.cash} -> {new_account.cash}"
    )
    return new_account, new_position, trade
