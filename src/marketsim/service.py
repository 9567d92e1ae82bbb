"""Market service: the command surface of the simulation core."""

from __future__ import annotations

import asyncio
import hmac
import logging
import random
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from marketsim.config_loader import AppConfig
from marketsim.constants import LogEventType, OrderSide, TeachingEventType
from marketsim.errors import (
    InvalidQuantity,
    InvalidRequest,
    MarketHalted,
    PersistenceFailed,
    RateLimited,
    Unauthorized,
)
from marketsim.execution.pricing import FillQuote, quote
from marketsim.execution.rate_limiter import OrderRateLimiter
from marketsim.ledger.book import AccountBook
from marketsim.ledger.leaderboard import LeaderboardRow, compute_leaderboard
from marketsim.ledger.models import (
    Account,
    Portfolio,
    Position,
    TeachingEventRecord,
    Trade,
    generate_id,
)
from marketsim.ledger.mutator import apply_fill
from marketsim.market.candles import CandleAggregator
from marketsim.market.controls import AdminControls, apply_controls
from marketsim.market.events import TeachingEventEngine
from marketsim.market.price_process import PriceProcess
from marketsim.market.state import MarketRegistry, MarketSnapshot
from marketsim.notify import Notifier
from marketsim.persistence.store import LedgerStore

logger = logging.getLogger(__name__)

EVENT_LOG_MEMORY = 500


@dataclass(frozen=True)
class OrderResult:
    """Accepted order."""

    trade: Trade
    account: Account
    position: Position

    @property
    def fill_price(self) -> Decimal:
        return self.trade.fill_price

    @property
    def fee(self) -> Decimal:
        return self.trade.fee_paid

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "fillPrice": float(self.trade.fill_price),
            "fee": float(self.trade.fee_paid),
            "cash": float(self.account.cash),
            "position": self.position.to_dict(),
        }


@dataclass(frozen=True)
class JoinResult:
    """Account plus everything a freshly joined viewer needs."""

    account: Account
    portfolio: Portfolio
    market: list[MarketSnapshot]
    leaderboard: list[LeaderboardRow]
    created: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "user": {"userId": self.account.id, "username": self.account.username},
            "portfolio": self.portfolio.to_dict(),
            "market": [m.to_dict() for m in self.market],
            "leaderboard": [r.to_dict() for r in self.leaderboard],
        }


def parse_side(side: str | OrderSide) -> OrderSide:
    try:
        return OrderSide(str(side.value if isinstance(side, OrderSide) else side).upper())
    except ValueError:
        raise InvalidRequest(f"Unknown order side: {side}") from None


def parse_qty(qty: Any) -> Decimal:
    if isinstance(qty, bool):
        raise InvalidRequest("Quantity must be a number")
    try:
        value = qty if isinstance(qty, Decimal) else Decimal(str(qty))
    except (InvalidOperation, ValueError):
        raise InvalidRequest(f"Quantity must be a number, got: {qty!r}") from None
    if not value.is_finite():
        raise InvalidQuantity(f"Quantity must be finite, got: {qty!r}")
    return value


class MarketService:
    """
    Orchestrates the simulation core.

    Order path: payload parsing -> rate limiter -> halt/validity checks ->
    fill pricing -> ledger mutation -> durable write -> in-memory commit ->
    leaderboard broadcast. Delayed teaching-event reversals fall due on the
    service clock and are applied by ``tick``, which the app's clock loop
    drives. Admin actions go to raw parameter setters or the teaching event
    engine.
    """

    def __init__(
        self,
        config: AppConfig,
        store: LedgerStore | None = None,
        notifier: Notifier | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.config = config
        self.store = store
        self.notifier = notifier or Notifier()
        self._clock = clock
        rng = rng or random.Random()

        self.registry = MarketRegistry(
            config.symbols,
            config.market_defaults,
            config.limits,
            history_limit=config.candles.history_limit,
        )
        self.process = PriceProcess(config.price_process, config.limits, rng)
        self.candles = CandleAggregator(config.candles.bucket_seconds)
        self.events = TeachingEventEngine(self.registry, config.events, config.limits, rng)
        self.rate_limiter = OrderRateLimiter(
            config.rate_limit.window_seconds, config.rate_limit.max_orders
        )
        self.book = AccountBook()
        self.event_log: deque[TeachingEventRecord] = deque(maxlen=EVENT_LOG_MEMORY)
        self._join_lock = asyncio.Lock()

    def _now(self) -> float:
        return self._clock() if self._clock is not None else time.time()

    async def start(self) -> None:
        """Initialize the store and restore committed accounts."""
        if self.store is None:
            return
        await self.store.initialize()
        restored = await self.store.load_accounts()
        for account, positions in restored:
            by_symbol = {p.symbol: p for p in positions}
            # Symbols added to the config since the account was created start flat
            for symbol in self.registry.symbols:
                by_symbol.setdefault(symbol, Position(account_id=account.id, symbol=symbol))
            self.book.add(account, list(by_symbol.values()))
        if restored:
            logger.info(f"Restored {len(restored)} account(s) from {self.store.db_path}")

    async def close(self) -> None:
        self.events.shutdown()
        if self.store is not None:
            await self.store.close()

    # ------------------------------------------------------------------
    # Clock-driven
    # ------------------------------------------------------------------

    async def tick(self, now: float | None = None) -> list[MarketSnapshot]:
        """Advance every symbol one step, seal candles and push the market snapshot."""
        now = self._now() if now is None else now
        snapshots = []
        sealed = []
        for cell in self.registry.cells():
            async with cell.lock:
                self.events.run_due(cell.state, now)
                self.process.advance(cell.state)
                candle = self.candles.on_tick(cell.state, now)
                snapshots.append(cell.state.snapshot())
            if candle is not None:
                sealed.append((cell.symbol, candle))

        for symbol, candle in sealed:
            await self.notifier.candle_update(symbol, candle)
        await self.notifier.market_update(snapshots)
        return snapshots

    async def leaderboard(self, room_code: str | None = None) -> list[LeaderboardRow]:
        """Full ranking for a room."""
        room = self._room(room_code)
        prices = await self.registry.prices()
        return compute_leaderboard(
            self.book.accounts_in_room(room), self.book.all_positions(), prices
        )

    async def publish_leaderboard(self, room_code: str | None = None) -> list[LeaderboardRow]:
        """Compute, persist and broadcast the top-N leaderboard of a room."""
        room = self._room(room_code)
        top = (await self.leaderboard(room))[: self.config.leaderboard.top_n]
        if self.store is not None and top:
            try:
                await self.store.save_leaderboard_snapshot(room, top)
            except Exception as e:
                logger.error(f"Failed to persist leaderboard for {room}: {e}", exc_info=True)
        await self.notifier.leaderboard_update(room, top)
        return top

    async def refresh_leaderboards(self) -> None:
        rooms = self.book.rooms() or [self.config.accounts.default_room]
        for room in rooms:
            await self.publish_leaderboard(room)

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    def _room(self, room_code: str | None) -> str:
        code = (room_code or "").strip().upper()
        return code or self.config.accounts.default_room

    async def join_room(self, username: str, room_code: str | None = None) -> JoinResult:
        """Return the room's account for ``username``, creating it on first join."""
        room = self._room(room_code)
        name = (username or "").strip()[: self.config.accounts.username_max_length]
        if not name:
            raise InvalidRequest("Username required")

        async with self._join_lock:
            account = self.book.find(room, name)
            created = account is None
            if account is None:
                account = Account(
                    id=generate_id(),
                    username=name,
                    room_code=room,
                    cash=self.config.accounts.starting_cash,
                )
                positions = [
                    Position(account_id=account.id, symbol=symbol)
                    for symbol in self.registry.symbols
                ]
                if self.store is not None:
                    try:
                        await self.store.create_account(account, positions)
                    except Exception as e:
                        logger.error(f"Failed to persist account {name}: {e}", exc_info=True)
                        raise PersistenceFailed("Could not create account") from e
                self.book.add(account, positions)
                logger.info(f"Account created: {name} in room {room}")

        board = (await self.leaderboard(room))[: self.config.leaderboard.top_n]
        return JoinResult(
            account=account,
            portfolio=self.book.portfolio(account.id),
            market=await self.registry.snapshots(),
            leaderboard=board,
            created=created,
        )

    def portfolio(self, account_id: str) -> Portfolio:
        return self.book.portfolio(account_id)

    async def estimate(self, symbol: str, side: str | OrderSide, qty: Any) -> FillQuote:
        """Client-side quote against the current market; nothing is reserved."""
        snap = await self.registry.get(symbol).snapshot()
        return quote(snap, parse_side(side), parse_qty(qty), self.config.execution)

    async def submit_order(
        self, account_id: str, symbol: str, side: str | OrderSide, qty: Any
    ) -> OrderResult:
        """
        Execute a market order against the simulated market maker.

        Raises:
            AccountNotFound, RateLimited, UnknownSymbol, InvalidRequest,
            MarketHalted, InvalidQuantity, InsufficientCash,
            InsufficientPosition, PersistenceFailed.
        """
        self.book.get(account_id)
        # Malformed orders never reach the limiter
        cell = self.registry.get(symbol)
        order_side = parse_side(side)
        order_qty = parse_qty(qty)

        if not self.rate_limiter.allow(account_id, self._now()):
            raise RateLimited("Too many orders, slow down")

        async with self.book.lock_for(account_id):
            snap = await cell.snapshot()
            if snap.halted:
                raise MarketHalted(f"Trading halted on {cell.symbol}")

            account = self.book.get(account_id)
            position = self.book.position(account_id, cell.symbol)
            fill = quote(snap, order_side, order_qty, self.config.execution)
            new_account, new_position, trade = apply_fill(
                account,
                position,
                order_side,
                order_qty,
                fill.fill_price,
                fill.fee,
                halted=snap.halted,
                timestamp=datetime.fromtimestamp(self._now()),
            )

            if self.store is not None:
                try:
                    await self.store.record_fill(new_account, new_position, trade)
                except Exception as e:
                    logger.error(
                        f"Fill for {account.username} not persisted, rejecting: {e}", exc_info=True
                    )
                    raise PersistenceFailed("Order could not be recorded") from e

            self.book.commit(new_account, new_position, trade)

        logger.info(
            f"Order filled: {account.username} {order_side.value} {order_qty} {cell.symbol} "
            f"@ {fill.fill_price:.6f} fee {fill.fee:.4f}"
        )
        await self.publish_leaderboard(new_account.room_code)
        return OrderResult(trade=trade, account=new_account, position=new_position)

    # ------------------------------------------------------------------
    # Instructor
    # ------------------------------------------------------------------

    def check_admin(self, pin: str | None) -> None:
        expected = self.config.admin.pin.encode()
        if not isinstance(pin, str) or not hmac.compare_digest(pin.encode(), expected):
            logger.warning("Rejected admin action with bad pin")
            raise Unauthorized("Unauthorized")

    async def apply_admin_control(
        self, pin: str, symbol: str, controls: AdminControls
    ) -> MarketSnapshot:
        self.check_admin(pin)
        cell = self.registry.get(symbol)
        async with cell.lock:
            apply_controls(cell.state, controls, self.config.limits)
            snap = cell.state.snapshot()

        await self._record_event(
            TeachingEventRecord(
                event_type=LogEventType.ADMIN_CONTROL.value,
                symbol=cell.symbol,
                message=f"Adjusted controls for {cell.symbol}",
                room_code=self.config.accounts.default_room,
                timestamp=datetime.fromtimestamp(self._now()),
            )
        )
        return snap

    async def trigger_teaching_event(
        self,
        pin: str,
        symbol: str,
        event_type: str | TeachingEventType,
        room_code: str | None = None,
    ) -> TeachingEventRecord:
        self.check_admin(pin)
        record = await self.events.apply(
            symbol, event_type, self._room(room_code), now=self._now()
        )
        await self._record_event(record)
        return record

    async def broadcast_message(self, pin: str, text: str) -> TeachingEventRecord:
        self.check_admin(pin)
        message = (text or "").strip()
        if not message:
            raise InvalidRequest("Message required")

        now = self._now()
        await self.notifier.broadcast_message(message, now)
        record = TeachingEventRecord(
            event_type=LogEventType.BROADCAST.value,
            message=message,
            room_code=self.config.accounts.default_room,
            timestamp=datetime.fromtimestamp(now),
        )
        await self._record_event(record)
        return record

    async def reset_symbol(self, pin: str, symbol: str) -> MarketSnapshot:
        """Restore seed parameters, drop candles and any pending reversals."""
        self.check_admin(pin)
        cell = self.registry.get(symbol)
        self.events.cancel_pending(cell.symbol)
        snap = await self.registry.reset(cell.symbol)
        self.candles.reset(cell.symbol)
        await self._record_event(
            TeachingEventRecord(
                event_type=LogEventType.SYMBOL_RESET.value,
                symbol=cell.symbol,
                message=f"Reset {cell.symbol} to its opening state",
                room_code=self.config.accounts.default_room,
                timestamp=datetime.fromtimestamp(self._now()),
            )
        )
        return snap

    def recent_events(self, room_code: str | None = None, limit: int = 50) -> list[TeachingEventRecord]:
        room = self._room(room_code)
        matching = [r for r in self.event_log if r.room_code == room]
        return matching[-limit:]

    async def _record_event(self, record: TeachingEventRecord) -> None:
        self.event_log.append(record)
        if self.store is not None:
            try:
                await self.store.log_event(record)
            except Exception as e:
                logger.error(f"Failed to persist event {record.event_type}: {e}", exc_info=True)
        await self.notifier.event_log(record)

