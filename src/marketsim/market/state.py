"""Per-symbol market state and the lock-guarded cells that own it."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from marketsim.config_loader import (
    MarketDefaultsConfig,
    MarketLimitsConfig,
    SymbolSeedConfig,
)
from marketsim.errors import UnknownSymbol
from marketsim.market.candles import Candle

logger = logging.getLogger(__name__)


@dataclass
class MarketState:
    """Live simulated market for one symbol."""

    symbol: str
    display_name: str
    price: Decimal
    session_open_price: Decimal
    volatility: Decimal
    liquidity: Decimal
    spread: Decimal
    fee_bps: Decimal
    supply: Decimal
    halted: bool = False
    trend_bias: Decimal = Decimal("0")
    drift: Decimal = Decimal("0")
    candle_history: deque[Candle] = field(default_factory=lambda: deque(maxlen=200))

    @classmethod
    def from_seed(
        cls,
        seed: SymbolSeedConfig,
        defaults: MarketDefaultsConfig,
        history_limit: int = 200,
    ) -> MarketState:
        return cls(
            symbol=seed.symbol,
            display_name=seed.name,
            price=seed.price,
            session_open_price=seed.price,
            volatility=defaults.volatility,
            liquidity=defaults.liquidity,
            spread=defaults.spread,
            fee_bps=defaults.fee_bps,
            supply=defaults.supply,
            candle_history=deque(maxlen=history_limit),
        )

    @property
    def change_pct(self) -> Decimal:
        return (self.price - self.session_open_price) / self.session_open_price * 100

    def snapshot(self) -> MarketSnapshot:
        return MarketSnapshot(
            symbol=self.symbol,
            display_name=self.display_name,
            price=self.price,
            session_open_price=self.session_open_price,
            change_pct=self.change_pct,
            volatility=self.volatility,
            liquidity=self.liquidity,
            spread=self.spread,
            fee_bps=self.fee_bps,
            supply=self.supply,
            halted=self.halted,
            trend_bias=self.trend_bias,
            drift=self.drift,
        )


@dataclass(frozen=True)
class MarketSnapshot:
    """Immutable copy of a MarketState taken under the symbol lock."""

    symbol: str
    display_name: str
    price: Decimal
    session_open_price: Decimal
    change_pct: Decimal
    volatility: Decimal
    liquidity: Decimal
    spread: Decimal
    fee_bps: Decimal
    supply: Decimal
    halted: bool
    trend_bias: Decimal
    drift: Decimal

    def to_dict(self) -> dict[str, Any]:
        """Per-tick market push payload."""
        return {
            "symbol": self.symbol,
            "price": float(self.price),
            "changePct": float(self.change_pct),
            "halted": self.halted,
            "spread": float(self.spread),
            "feeBps": float(self.fee_bps),
            "liquidity": float(self.liquidity),
        }


def clamp(value: Decimal, floor: Decimal | None = None, cap: Decimal | None = None) -> Decimal:
    if floor is not None and value < floor:
        return floor
    if cap is not None and value > cap:
        return cap
    return value


class MarketCell:
    """
    Single-writer cell around one symbol's MarketState.

    Tick advances, teaching events (including delayed reversals), admin
    overrides and snapshot reads all go through ``lock``.
    """

    def __init__(self, state: MarketState):
        self.state = state
        self.lock = asyncio.Lock()

    @property
    def symbol(self) -> str:
        return self.state.symbol

    async def snapshot(self) -> MarketSnapshot:
        async with self.lock:
            return self.state.snapshot()


class MarketRegistry:
    """All tradable symbols, keyed by code."""

    def __init__(
        self,
        seeds: list[SymbolSeedConfig],
        defaults: MarketDefaultsConfig,
        limits: MarketLimitsConfig | None = None,
        history_limit: int = 200,
    ):
        self.seeds = {seed.symbol: seed for seed in seeds}
        self.defaults = defaults
        self.limits = limits or MarketLimitsConfig()
        self.history_limit = history_limit
        self._cells: dict[str, MarketCell] = {
            seed.symbol: MarketCell(MarketState.from_seed(seed, defaults, history_limit))
            for seed in seeds
        }

    @property
    def symbols(self) -> list[str]:
        return list(self._cells)

    def cells(self) -> list[MarketCell]:
        return list(self._cells.values())

    def get(self, symbol: str) -> MarketCell:
        cell = self._cells.get(symbol.upper()) if isinstance(symbol, str) else None
        if cell is None:
            raise UnknownSymbol(f"Unknown symbol: {symbol}")
        return cell

    async def snapshots(self) -> list[MarketSnapshot]:
        return [await cell.snapshot() for cell in self._cells.values()]

    async def prices(self) -> dict[str, Decimal]:
        return {snap.symbol: snap.price for snap in await self.snapshots()}

    async def reset(self, symbol: str) -> MarketSnapshot:
        """Restore a symbol to its seed parameters and clear its candles."""
        cell = self.get(symbol)
        async with cell.lock:
            fresh = MarketState.from_seed(self.seeds[cell.symbol], self.defaults, self.history_limit)
            cell.state = fresh
            logger.info(f"Market {cell.symbol} reset to seed price {fresh.price}")
            return fresh.snapshot()
