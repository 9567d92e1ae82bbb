"""Outbound notifications to viewers.

The transport (sockets, SSE, ...) subscribes here; the core only awaits the
registered callbacks.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from marketsim.ledger.leaderboard import LeaderboardRow
from marketsim.ledger.models import TeachingEventRecord
from marketsim.market.candles import Candle
from marketsim.market.state import MarketSnapshot

logger = logging.getLogger(__name__)

MarketCallback = Callable[[list[MarketSnapshot]], Awaitable[None]]
CandleCallback = Callable[[str, Candle], Awaitable[None]]
LeaderboardCallback = Callable[[str, list[LeaderboardRow]], Awaitable[None]]
EventLogCallback = Callable[[TeachingEventRecord], Awaitable[None]]
BroadcastCallback = Callable[[str, float], Awaitable[None]]


class Notifier:
    """Fan-out of simulation events to registered async callbacks."""

    def __init__(self):
        self._market_callbacks: list[MarketCallback] = []
        self._candle_callbacks: list[CandleCallback] = []
        self._leaderboard_callbacks: list[LeaderboardCallback] = []
        self._event_log_callbacks: list[EventLogCallback] = []
        self._broadcast_callbacks: list[BroadcastCallback] = []

    def add_market_callback(self, callback: MarketCallback) -> None:
        """Register callback for the per-tick market snapshot."""
        self._market_callbacks.append(callback)

    def add_candle_callback(self, callback: CandleCallback) -> None:
        """Register callback for sealed candles."""
        self._candle_callbacks.append(callback)

    def add_leaderboard_callback(self, callback: LeaderboardCallback) -> None:
        """Register callback for per-room leaderboard snapshots."""
        self._leaderboard_callbacks.append(callback)

    def add_event_log_callback(self, callback: EventLogCallback) -> None:
        """Register callback for event log entries."""
        self._event_log_callbacks.append(callback)

    def add_broadcast_callback(self, callback: BroadcastCallback) -> None:
        """Register callback for instructor broadcast messages."""
        self._broadcast_callbacks.append(callback)

    async def _fan_out(self, topic: str, callbacks: list, *args: Any) -> None:
        # Viewer failures are logged, never propagated
        for cb in callbacks:
            try:
                await cb(*args)
            except Exception as e:
                logger.error(f"{topic} callback failed: {e}", exc_info=True)

    async def market_update(self, snapshots: list[MarketSnapshot]) -> None:
        await self._fan_out("market_update", self._market_callbacks, snapshots)

    async def candle_update(self, symbol: str, candle: Candle) -> None:
        await self._fan_out("candle_update", self._candle_callbacks, symbol, candle)

    async def leaderboard_update(self, room_code: str, rows: list[LeaderboardRow]) -> None:
        await self._fan_out("leaderboard_update", self._leaderboard_callbacks, room_code, rows)

    async def event_log(self, record: TeachingEventRecord) -> None:
        await self._fan_out("event_log", self._event_log_callbacks, record)

    async def broadcast_message(self, message: str, timestamp: float) -> None:
        await self._fan_out("broadcast_message", self._broadcast_callbacks, message, timestamp)
