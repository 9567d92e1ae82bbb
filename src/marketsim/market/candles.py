"""Candle data structure and time-bucket aggregation."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from marketsim.market.state import MarketState

logger = logging.getLogger(__name__)


@dataclass
class Candle:
    """OHLC bar for one fixed-duration bucket.

    Mutable only while its bucket is the open one; once sealed the
    aggregator never touches it again.
    """

    bucket_start: float
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal

    @classmethod
    def opening(cls, bucket_start: float, price: Decimal) -> Candle:
        return cls(bucket_start=bucket_start, open=price, high=price, low=price, close=price)

    def update(self, price: Decimal) -> None:
        self.high = max(self.high, price)
        self.low = min(self.low, price)
        self.close = price

    def to_dict(self) -> dict[str, Any]:
        """Wire form: time in epoch milliseconds, prices as floats."""
        return {
            "time": int(self.bucket_start * 1000),
            "open": float(self.open),
            "high": float(self.high),
            "low": float(self.low),
            "close": float(self.close),
        }


class CandleAggregator:
    """
    Buckets ticks into wall-clock aligned OHLC candles, one open candle per symbol.

    Sealed candles are appended to the symbol's ``candle_history`` (a bounded
    deque, so the oldest is evicted on overflow) and returned to the caller
    for broadcast.
    """

    def __init__(self, bucket_seconds: int = 5):
        if bucket_seconds <= 0:
            raise ValueError(f"bucket_seconds must be positive, got: {bucket_seconds}")
        self.bucket_seconds = bucket_seconds
        self._open: dict[str, Candle] = {}

    def bucket_start(self, now: float) -> float:
        return math.floor(now / self.bucket_seconds) * self.bucket_seconds

    def open_candle(self, symbol: str) -> Candle | None:
        return self._open.get(symbol)

    def on_tick(self, state: MarketState, now: float) -> Candle | None:
        """Fold the state's current price into its open candle.

        Returns the sealed candle when ``now`` crossed into a new bucket.
        """
        price = state.price
        start = self.bucket_start(now)
        candle = self._open.get(state.symbol)

        if candle is not None and candle.bucket_start == start:
            candle.update(price)
            return None

        sealed = None
        if candle is not None:
            state.candle_history.append(candle)
            sealed = candle
            logger.debug(
                f"Candle sealed {state.symbol} @ {start}: "
                f"O={candle.open} H={candle.high} L={candle.low} C={candle.close}"
            )

        self._open[state.symbol] = Candle.opening(start, price)
        return sealed

    def reset(self, symbol: str) -> None:
        """Drop the open candle for a symbol."""
        self._open.pop(symbol, None)
