"""SQLite ledger persistence."""
