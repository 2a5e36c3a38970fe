"""SQLite connection setup and DDL for the assistant's state tables."""

from __future__ import annotations

import sqlite3
from pathlib import Path


def open_database(db_path: Path | str) -> sqlite3.Connection:
    """Open the assistant database with WAL mode enabled.

    The connection is shared by the request handlers and the worker threads
    that run blocking Gmail calls, so same-thread checking is disabled.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.

    Returns:
        An open sqlite3.Connection.
    """
    if str(db_path) != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_planned_execution_table(conn: sqlite3.Connection) -> None:
    """Create the planned_executions table if it does not already exist.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS planned_executions (
            id TEXT PRIMARY KEY,
            rule_id TEXT NOT NULL,
            user_email TEXT NOT NULL,
            thread_id TEXT NOT NULL,
            message_id TEXT NOT NULL,
            email_json TEXT NOT NULL,
            actions_json TEXT NOT NULL,
            status TEXT NOT NULL,
            reason TEXT,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
            updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
        )
    """)
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_planned_user_status "
        "ON planned_executions (user_email, status)"
    )
    conn.commit()


def init_ai_settings_table(conn: sqlite3.Connection) -> None:
    """Create the ai_settings table if it does not already exist.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS ai_settings (
            user_email TEXT PRIMARY KEY,
            ai_provider TEXT NOT NULL,
            ai_model TEXT,
            ai_api_key TEXT,
            updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
        )
    """)
    conn.commit()
