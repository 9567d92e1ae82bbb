"""Durable ledger store."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sqlite3
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from marketsim.constants import OrderSide
from marketsim.ledger.leaderboard import LeaderboardRow
from marketsim.ledger.models import Account, Position, TeachingEventRecord, Trade
from marketsim.persistence.schema import SCHEMA_STATEMENTS

logger = logging.getLogger(__name__)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


class LedgerStore:
    """
    Persists rooms, accounts, positions, trades and the event log to SQLite.
    Offloads blocking I/O to a single worker thread, so writes are applied
    in submission order.

    A fill (account + position + trade) is written in one transaction:
    either all three rows land or none do.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ledger-store")

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("PRAGMA foreign_keys = ON;")
            with conn:
                yield conn
        finally:
            conn.close()

    async def initialize(self) -> None:
        """Initialize database schema."""
        await self._run(self._init_db_sync)

    def _init_db_sync(self) -> None:
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as conn:
                for stmt in SCHEMA_STATEMENTS:
                    conn.execute(stmt)
        except Exception as e:
            logger.error(f"Failed to initialize ledger DB: {e}", exc_info=True)
            raise

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_account(self, account: Account, positions: list[Position]) -> None:
        """Insert the room (if new), the account and its starting positions."""
        await self._run(self._create_account_sync, account, positions)

    def _create_account_sync(self, account: Account, positions: list[Position]) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO rooms (code, created_at) VALUES (?, ?)",
                (account.room_code, datetime.now().isoformat()),
            )
            conn.execute(
                """
                INSERT INTO accounts (account_id, room_code, username, cash, realized_pnl, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    account.id,
                    account.room_code,
                    account.username,
                    str(account.cash),
                    str(account.realized_pnl),
                    account.created_at.isoformat(),
                ),
            )
            conn.executemany(
                """
                INSERT INTO positions (account_id, symbol, qty, avg_entry, realized_pnl)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (p.account_id, p.symbol, str(p.qty), str(p.avg_entry), str(p.realized_pnl))
                    for p in positions
                ],
            )

    async def record_fill(self, account: Account, position: Position, trade: Trade) -> None:
        """Persist the post-fill account and position plus the trade, atomically."""
        await self._run(self._record_fill_sync, account, position, trade)

    def _record_fill_sync(self, account: Account, position: Position, trade: Trade) -> None:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE accounts SET cash = ?, realized_pnl = ? WHERE account_id = ?",
                (str(account.cash), str(account.realized_pnl), account.id),
            )
            if cur.rowcount != 1:
                raise sqlite3.IntegrityError(f"Account {account.id} is not in the store")
            conn.execute(
                """
                INSERT OR REPLACE INTO positions (account_id, symbol, qty, avg_entry, realized_pnl)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    position.account_id,
                    position.symbol,
                    str(position.qty),
                    str(position.avg_entry),
                    str(position.realized_pnl),
                ),
            )
            conn.execute(
                """
                INSERT INTO trades (
                    trade_id, account_id, room_code, timestamp, symbol, side, qty, fill_price, fee_paid
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    trade.id,
                    trade.account_id,
                    trade.room_code,
                    trade.timestamp.isoformat(),
                    trade.symbol,
                    trade.side.value,
                    str(trade.qty),
                    str(trade.fill_price),
                    str(trade.fee_paid),
                ),
            )

    async def log_event(self, record: TeachingEventRecord) -> None:
        """Append an event log entry."""
        await self._run(self._log_event_sync, record)

    def _log_event_sync(self, record: TeachingEventRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO event_log (event_id, room_code, timestamp, event_type, symbol, message)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.room_code,
                    record.timestamp.isoformat(),
                    record.event_type,
                    record.symbol,
                    record.message,
                ),
            )

    async def save_leaderboard_snapshot(self, room_code: str, rows: list[LeaderboardRow]) -> None:
        await self._run(self._save_snapshot_sync, room_code, rows)

    def _save_snapshot_sync(self, room_code: str, rows: list[LeaderboardRow]) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO leaderboard_snapshots (room_code, timestamp, payload_json) VALUES (?, ?, ?)",
                (
                    room_code,
                    datetime.now().isoformat(),
                    json.dumps([r.to_dict() for r in rows], default=_json_default),
                ),
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load_accounts(self) -> list[tuple[Account, list[Position]]]:
        """Latest committed accounts with their positions, in creation order."""
        return await self._run(self._load_accounts_sync)

    def _load_accounts_sync(self) -> list[tuple[Account, list[Position]]]:
        with self._connect() as conn:
            account_rows = conn.execute(
                """
                SELECT account_id, room_code, username, cash, realized_pnl, created_at
                FROM accounts ORDER BY created_at, rowid
                """
            ).fetchall()
            position_rows = conn.execute(
                "SELECT account_id, symbol, qty, avg_entry, realized_pnl FROM positions ORDER BY rowid"
            ).fetchall()

        positions: dict[str, list[Position]] = {}
        for account_id, symbol, qty, avg_entry, realized in position_rows:
            positions.setdefault(account_id, []).append(
                Position(
                    account_id=account_id,
                    symbol=symbol,
                    qty=Decimal(qty),
                    avg_entry=Decimal(avg_entry),
                    realized_pnl=Decimal(realized),
                )
            )

        result = []
        for account_id, room_code, username, cash, realized, created_at in account_rows:
            account = Account(
                id=account_id,
                username=username,
                room_code=room_code,
                cash=Decimal(cash),
                realized_pnl=Decimal(realized),
                created_at=datetime.fromisoformat(created_at),
            )
            result.append((account, positions.get(account_id, [])))
        return result

    async def load_trades(self, account_id: str) -> list[Trade]:
        return await self._run(self._load_trades_sync, account_id)

    def _load_trades_sync(self, account_id: str) -> list[Trade]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT trade_id, account_id, room_code, timestamp, symbol, side, qty, fill_price, fee_paid
                FROM trades WHERE account_id = ? ORDER BY timestamp, rowid
                """,
                (account_id,),
            ).fetchall()
        return [
            Trade(
                id=r[0],
                account_id=r[1],
                room_code=r[2],
                timestamp=datetime.fromisoformat(r[3]),
                symbol=r[4],
                side=OrderSide(r[5]),
                qty=Decimal(r[6]),
                fill_price=Decimal(r[7]),
                fee_paid=Decimal(r[8]),
            )
            for r in rows
        ]

    async def load_events(self, room_code: str, limit: int = 50) -> list[TeachingEventRecord]:
        """Most recent events for a room, oldest first."""
        return await self._run(self._load_events_sync, room_code, limit)

    def _load_events_sync(self, room_code: str, limit: int) -> list[TeachingEventRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT event_id, room_code, timestamp, event_type, symbol, message
                FROM event_log WHERE room_code = ? ORDER BY timestamp DESC, rowid DESC LIMIT ?
                """,
                (room_code, limit),
            ).fetchall()
        return [
            TeachingEventRecord(
                id=r[0],
                room_code=r[1],
                timestamp=datetime.fromisoformat(r[2]),
                event_type=r[3],
                symbol=r[4],
                message=r[5],
            )
            for r in reversed(rows)
        ]

    async def close(self) -> None:
        """Shutdown the store worker."""
        self._executor.shutdown(wait=True)
