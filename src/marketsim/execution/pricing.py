"""Fill pricing and fees.

One pure function serves both the client-side estimate and the authoritative
execution path, so quoted and executed prices only differ when the market
moved in between.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from marketsim.config_loader import ExecutionConfig
from marketsim.constants import BPS_DIVISOR, OrderSide
from marketsim.errors import InvalidQuantity
from marketsim.market.state import MarketSnapshot, MarketState


@dataclass(frozen=True)
class FillQuote:
    """Execution price and fee for one order."""

    symbol: str
    side: OrderSide
    qty: Decimal
    mid_price: Decimal
    fill_price: Decimal
    fee: Decimal

    @property
    def gross(self) -> Decimal:
        return self.fill_price * self.qty

    @property
    def total_cost(self) -> Decimal:
        """Cash needed for a BUY."""
        return self.gross + self.fee

    @property
    def net_proceeds(self) -> Decimal:
        """Cash received for a SELL."""
        return self.gross - self.fee

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "side": self.side.value,
            "qty": float(self.qty),
            "midPrice": float(self.mid_price),
            "fillPrice": float(self.fill_price),
            "fee": float(self.fee),
        }


def quote(
    market: MarketState | MarketSnapshot,
    side: OrderSide,
    qty: Decimal,
    config: ExecutionConfig | None = None,
) -> FillQuote:
    """
    Price an order against the simulated market maker.

    Spread and size-dependent slippage always work against the trader.

    Raises:
        InvalidQuantity: If ``qty`` is not positive.
    """
    cfg = config or ExecutionConfig()
    if qty <= 0:
        raise InvalidQuantity(f"Quantity must be positive, got: {qty}")

    side = OrderSide(side)
    slippage = qty / max(cfg.liquidity_floor, market.liquidity) * cfg.slippage_coefficient
    spread_cost = market.spread / 2 + slippage

    if side == OrderSide.BUY:
        fill_price = market.price * (1 + spread_cost)
    else:
        fill_price = market.price * (1 - spread_cost)

    fee = fill_price * qty * (market.fee_bps / BPS_DIVISOR)
    return FillQuote(
        symbol=market.symbol,
        side=side,
        qty=qty,
        mid_price=market.price,
        fill_price=fill_price,
        fee=fee,
    )
