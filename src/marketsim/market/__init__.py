"""Simulated markets: price process, candles, admin controls and teaching events."""

from marketsim.market.candles import Candle, CandleAggregator
from marketsim.market.controls import AdminControls, apply_controls
from marketsim.market.events import TeachingEventEngine
from marketsim.market.price_process import PriceProcess
from marketsim.market.state import MarketCell, MarketRegistry, MarketSnapshot, MarketState

__all__ = [
    "Candle",
    "CandleAggregator",
    "AdminControls",
    "apply_controls",
    "TeachingEventEngine",
    "PriceProcess",
    "MarketCell",
    "MarketRegistry",
    "MarketSnapshot",
    "MarketState",
]
