#!/usr/bin/env python3
"""
Storage module for Velotimer.
A small key/value store on top of SQLite that keeps the race history.
"""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any


class KeyValueDatabase:
    """Manages named JSON documents in a SQLite database"""

    def __init__(self, db_path: str = "velotimer.db"):
        self.db_path: Path = Path(db_path)
        self.conn: sqlite3.Connection | None = None
        self._init_database()

    def _init_database(self) -> None:
        """Initialize database connection and create tables if needed"""
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row  # Enable column access by name

        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS items (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        self.conn.commit()

    def get_item(self, key: str) -> str | None:
        """Return the stored value for a key, or None if it was never set"""
        assert self.conn is not None
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT value FROM items
            WHERE key = ?
        """,
            (key,),
        )
        row = cursor.fetchone()
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        """Insert or replace the value stored under a key"""
        assert self.conn is not None
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO items (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
        """,
            (key, value, datetime.now().isoformat()),
        )
        self.conn.commit()

    def remove_item(self, key: str) -> None:
        """Delete a key; missing keys are ignored"""
        assert self.conn is not None
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM items WHERE key = ?", (key,))
        self.conn.commit()

    def close(self) -> None:
        """Release the SQLite connection; safe to call twice"""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self) -> "KeyValueDatabase":
        """Use the storage in a with block"""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
