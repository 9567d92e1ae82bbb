"""Ledger Database Schema."""

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS rooms (
        code TEXT PRIMARY KEY,
        created_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS accounts (
        account_id TEXT PRIMARY KEY,
        room_code TEXT NOT NULL,
        username TEXT NOT NULL,
        cash TEXT NOT NULL,
        realized_pnl TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE(room_code, username),
        FOREIGN KEY(room_code) REFERENCES rooms(code)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS positions (
        account_id TEXT NOT NULL,
        symbol TEXT NOT NULL,
        qty TEXT NOT NULL,
        avg_entry TEXT NOT NULL,
        realized_pnl TEXT NOT NULL,
        PRIMARY KEY(account_id, symbol),
        FOREIGN KEY(account_id) REFERENCES accounts(account_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS trades (
        trade_id TEXT PRIMARY KEY,
        account_id TEXT NOT NULL,
        room_code TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        symbol TEXT NOT NULL,
        side TEXT NOT NULL,
        qty TEXT NOT NULL,
        fill_price TEXT NOT NULL,
        fee_paid TEXT NOT NULL,
        FOREIGN KEY(account_id) REFERENCES accounts(account_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS event_log (
        event_id TEXT PRIMARY KEY,
        room_code TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        event_type TEXT NOT NULL,
        symbol TEXT,
        message TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS leaderboard_snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        room_code TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        payload_json TEXT NOT NULL
    );
    """,
]
