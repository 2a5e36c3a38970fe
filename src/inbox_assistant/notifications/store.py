"""SQLite-backed store of user-visible error banners.

One row per (user, error type): a repeated failure of the same type
refreshes the message and timestamp instead of stacking duplicates.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from typing import Any

import structlog

logger = structlog.get_logger()


def init_user_error_table(conn: sqlite3.Connection) -> None:
    """Create the user_error_messages table if it does not already exist.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS user_error_messages (
            user_email TEXT NOT NULL,
            error_type TEXT NOT NULL,
            message TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
            PRIMARY KEY (user_email, error_type)
        )
    """)
    conn.commit()


class UserErrorStore:
    """Persist and read the error banners shown to a mailbox owner."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def add_user_error_message(self, user_email: str, error_type: str, message: str) -> None:
        """Record *message* under *error_type* for *user_email*.

        Args:
            user_email: The affected mailbox owner.
            error_type: The ``ErrorType`` value (human-readable title).
            message: The raw provider message.
        """
        self._conn.execute(
            """
            INSERT OR REPLACE INTO user_error_messages (user_email, error_type, message, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                user_email,
                str(error_type),
                message,
                datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
            ),
        )
        self._conn.commit()
        logger.info("user_error_message_added", user_email=user_email, error_type=str(error_type))

    def get_user_error_messages(self, user_email: str) -> list[dict[str, Any]]:
        """Return the banners for *user_email*, newest first."""
        rows = self._conn.execute(
            """
            SELECT error_type, message, created_at FROM user_error_messages
            WHERE user_email = ? ORDER BY created_at DESC, error_type
            """,
            (user_email,),
        ).fetchall()
        return [
            {"error_type": error_type, "message": message, "created_at": created_at}
            for error_type, message, created_at in rows
        ]

    def clear_user_error_messages(self, user_email: str) -> int:
        """Delete every banner for *user_email* and return how many were removed."""
        cursor = self._conn.execute(
            "DELETE FROM user_error_messages WHERE user_email = ?",
            (user_email,),
        )
        self._conn.commit()
        return cursor.rowcount
