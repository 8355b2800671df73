"""Shared SQLite helpers: WAL mode, row_factory defaults, write transactions."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

BUSY_TIMEOUT_SECONDS = 30.0


def wal_connect(db_path: str | Path, row_factory: bool = False) -> sqlite3.Connection:
    """Open SQLite connection with WAL journal mode.

    Args:
        db_path: Path to database file.
        row_factory: If True, set conn.row_factory = sqlite3.Row.
    """
    conn = sqlite3.connect(str(db_path), timeout=BUSY_TIMEOUT_SECONDS, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def write_transaction(db_path: str | Path) -> Iterator[sqlite3.Connection]:
    """Run a block inside BEGIN IMMEDIATE; commit on success, roll back on any error.

    The write lock is taken up front so concurrent writers queue instead of
    failing halfway through a read-then-write sequence.
    """
    conn = wal_connect(db_path, row_factory=True)
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()
    finally:
        conn.close()


@contextmanager
def read_snapshot(db_path: str | Path) -> Iterator[sqlite3.Connection]:
    """Read-only connection; statements in one block share a WAL snapshot."""
    conn = wal_connect(db_path, row_factory=True)
    try:
        conn.execute("BEGIN")
        yield conn
        conn.rollback()
    finally:
        conn.close()
