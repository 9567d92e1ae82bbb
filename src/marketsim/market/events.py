"""Teaching event engine.

Each event is a named mutation of one symbol's market state. FAKE_BREAKOUT
and WASH_TRADING also schedule a delayed reversal. Reversals are kept per
symbol with a due time on the simulation clock and are applied by the clock
tick while it holds the symbol lock, so they follow simulated time as well
as wall time. Pending reversals are dropped when the symbol is reset or the
engine shuts down.
"""

from __future__ import annotations

import logging
import random
import time
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from marketsim.config_loader import MarketLimitsConfig, TeachingEventConfig
from marketsim.constants import DEFAULT_ROOM, TeachingEventType
from marketsim.errors import InvalidRequest
from marketsim.ledger.models import TeachingEventRecord
from marketsim.market.state import MarketRegistry, MarketState, clamp

logger = logging.getLogger(__name__)


def parse_event_type(event_type: str | TeachingEventType) -> TeachingEventType:
    if isinstance(event_type, TeachingEventType):
        return event_type
    try:
        return TeachingEventType(str(event_type).upper())
    except ValueError:
        raise InvalidRequest(f"Unknown event type: {event_type}") from None


@dataclass(frozen=True)
class PendingReversal:
    """A deferred mutation waiting for its due time."""

    event_type: TeachingEventType
    due: float
    revert: Callable[[MarketState], None]


class TeachingEventEngine:
    """Applies instructor teaching events to live market state."""

    def __init__(
        self,
        registry: MarketRegistry,
        config: TeachingEventConfig | None = None,
        limits: MarketLimitsConfig | None = None,
        rng: random.Random | None = None,
    ):
        self.registry = registry
        self.config = config or TeachingEventConfig()
        self.limits = limits or registry.limits
        self.rng = rng or random.Random()
        self._pending: dict[str, list[PendingReversal]] = defaultdict(list)

    async def apply(
        self,
        symbol: str,
        event_type: str | TeachingEventType,
        room_code: str = DEFAULT_ROOM,
        now: float | None = None,
    ) -> TeachingEventRecord:
        """Apply an event to ``symbol`` and return its log record.

        ``now`` is the simulation clock in epoch seconds; delayed reversals
        fall due relative to it.
        """
        kind = parse_event_type(event_type)
        cell = self.registry.get(symbol)
        now = time.time() if now is None else now

        async with cell.lock:
            detail = self._mutate(cell.state, kind, now)

        logger.info(f"Teaching event {kind.value} on {cell.symbol}: {detail}")
        return TeachingEventRecord(
            event_type=kind.value,
            symbol=cell.symbol,
            message=f"Event {kind.value} on {cell.symbol}",
            room_code=room_code,
            timestamp=datetime.fromtimestamp(now),
        )

    def _mutate(self, m: MarketState, kind: TeachingEventType, now: float) -> str:
        cfg = self.config
        limits = self.limits

        if kind == TeachingEventType.PUMP:
            m.trend_bias += cfg.pump_bias
            return f"trend_bias={m.trend_bias}"

        if kind == TeachingEventType.DUMP:
            m.trend_bias -= cfg.dump_bias
            return f"trend_bias={m.trend_bias}"

        if kind == TeachingEventType.RUG_PULL:
            m.liquidity = clamp(m.liquidity * cfg.rug_liquidity_factor, limits.liquidity_floor)
            m.spread = min(limits.spread_cap, m.spread + cfg.rug_spread_add)
            m.trend_bias -= cfg.rug_bias
            return f"liquidity={m.liquidity} spread={m.spread} trend_bias={m.trend_bias}"

        if kind == TeachingEventType.FAKE_BREAKOUT:
            m.trend_bias += cfg.fake_breakout_bias
            self._schedule(
                m.symbol,
                kind,
                now + cfg.fake_breakout_delay_seconds,
                self._fake_breakout_reversal,
            )
            return f"trend_bias={m.trend_bias}, reversal in {cfg.fake_breakout_delay_seconds}s"

        if kind == TeachingEventType.DILUTION:
            m.supply *= cfg.dilution_supply_factor
            m.drift -= cfg.dilution_drift
            return f"supply={m.supply} drift={m.drift}"

        if kind == TeachingEventType.WHALE_CANDLE:
            sign = 1 if self.rng.random() > 0.5 else -1
            m.price = max(limits.price_floor, m.price * (1 + sign * cfg.whale_move))
            return f"price={m.price}"

        if kind == TeachingEventType.FEE_HIKE:
            m.fee_bps = min(limits.fee_bps_cap, m.fee_bps + cfg.fee_hike_bps)
            return f"fee_bps={m.fee_bps}"

        if kind == TeachingEventType.SPREAD_WIDEN:
            # Never narrows a spread already above the cap (e.g. after RUG_PULL)
            m.spread = max(m.spread, min(cfg.spread_widen_cap, m.spread + cfg.spread_widen_add))
            return f"spread={m.spread}"

        if kind == TeachingEventType.TRADING_HALT:
            m.halted = not m.halted
            return f"halted={m.halted}"

        if kind == TeachingEventType.WASH_TRADING:
            m.volatility += cfg.wash_volatility_add
            sign = 1 if self.rng.random() > 0.5 else -1
            m.trend_bias += sign * cfg.wash_bias
            self._schedule(
                m.symbol, kind, now + cfg.wash_delay_seconds, self._wash_trading_reversal
            )
            return f"volatility={m.volatility}, reversal in {cfg.wash_delay_seconds}s"

        raise InvalidRequest(f"Unhandled event type: {kind}")

    # ------------------------------------------------------------------
    # Delayed reversals
    # ------------------------------------------------------------------

    def _fake_breakout_reversal(self, m: MarketState) -> None:
        m.trend_bias -= self.config.fake_breakout_reversal
        logger.info(f"Fake breakout reversed on {m.symbol}: trend_bias={m.trend_bias}")

    def _wash_trading_reversal(self, m: MarketState) -> None:
        m.volatility = max(
            self.config.wash_volatility_floor, m.volatility - self.config.wash_volatility_add
        )
        logger.info(f"Wash trading faded on {m.symbol}: volatility={m.volatility}")

    def _schedule(
        self,
        symbol: str,
        kind: TeachingEventType,
        due: float,
        revert: Callable[[MarketState], None],
    ) -> PendingReversal:
        reversal = PendingReversal(event_type=kind, due=due, revert=revert)
        self._pending[symbol].append(reversal)
        return reversal

    def run_due(self, m: MarketState, now: float) -> list[TeachingEventType]:
        """Apply every reversal on ``m`` whose due time has passed.

        The caller must hold the symbol lock. Reversals run in due order.
        """
        queue = self._pending.get(m.symbol)
        if not queue:
            return []
        due = sorted((r for r in queue if r.due <= now), key=lambda r: r.due)
        if not due:
            return []
        self._pending[m.symbol] = [r for r in queue if r.due > now]
        for reversal in due:
            reversal.revert(m)
        return [r.event_type for r in due]

    def pending(self, symbol: str) -> int:
        return len(self._pending.get(symbol, ()))

    def cancel_pending(self, symbol: str | None = None) -> int:
        """Drop scheduled reversals for one symbol, or for all when ``symbol`` is None."""
        symbols = [symbol] if symbol is not None else list(self._pending)
        cancelled = 0
        for sym in symbols:
            cancelled += len(self._pending.pop(sym, ()))
        if cancelled:
            logger.info(f"Cancelled {cancelled} pending reversal(s) for {symbol or 'all symbols'}")
        return cancelled

    def shutdown(self) -> None:
        self.cancel_pending()
