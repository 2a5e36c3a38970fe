"""SQLite-backed, append-only store of LLM usage records.

Follows the same pattern as the other stores: accepts a sqlite3.Connection,
uses parameterized queries exclusively, and commits after every write.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from typing import Any

import structlog

from inbox_assistant.llm.models import TokenUsage
from inbox_assistant.usage.models import UsageRecord

logger = structlog.get_logger()

# USD per million tokens: (input, output).
MODEL_COSTS: dict[str, tuple[float, float]] = {
    "gpt-4o": (2.5, 10.0),
    "gpt-4o-mini": (0.15, 0.6),
    "claude-3-5-sonnet-20241022": (3.0, 15.0),
    "anthropic.claude-3-5-sonnet-20241022-v2:0": (3.0, 15.0),
    "claude-3-5-haiku-20241022": (0.8, 4.0),
    "llama-3.3-70b-versatile": (0.59, 0.79),
}


def estimate_cost(model: str, usage: TokenUsage) -> float:
    """Return the estimated USD cost of *usage* on *model* (0 when unknown)."""
    rates = MODEL_COSTS.get(model)
    if rates is None:
        return 0.0
    input_rate, output_rate = rates
    return (usage.prompt_tokens * input_rate + usage.completion_tokens * output_rate) / 1_000_000


def init_usage_table(conn: sqlite3.Connection) -> None:
    """Create the ai_usage table and its indexes if they do not exist.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS ai_usage (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
            email TEXT NOT NULL,
            provider TEXT NOT NULL,
            model TEXT NOT NULL,
            label TEXT NOT NULL,
            prompt_tokens INTEGER NOT NULL DEFAULT 0,
            completion_tokens INTEGER NOT NULL DEFAULT 0,
            total_tokens INTEGER NOT NULL DEFAULT 0,
            cost REAL NOT NULL DEFAULT 0
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_ai_usage_email ON ai_usage (email)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_ai_usage_created ON ai_usage (created_at)")
    conn.commit()


class UsageStore:
    """Append LLM usage records and query them back for reporting."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def save_ai_usage(
        self,
        *,
        email: str,
        provider: str,
        model: str,
        usage: TokenUsage,
        label: str,
    ) -> UsageRecord:
        """Append one usage row for a successful LLM call.

        Args:
            email: The mailbox owner the call was made for.
            provider: Provider name (``openai``, ``anthropic``, ...).
            model: The model id that served the call.
            usage: Token usage reported by the provider.
            label: What the call was for (e.g. ``Args for rule``).

        Returns:
            The persisted ``UsageRecord``.
        """
        record = UsageRecord(
            email=email,
            provider=provider,
            model=model,
            label=label,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            cost=estimate_cost(model, usage),
        )
        self._conn.execute(
            """
            INSERT INTO ai_usage (
                created_at, email, provider, model, label,
                prompt_tokens, completion_tokens, total_tokens, cost
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
                record.email,
                record.provider,
                record.model,
                record.label,
                record.prompt_tokens,
                record.completion_tokens,
                record.total_tokens,
                record.cost,
            ),
        )
        self._conn.commit()
        logger.info(
            "ai_usage_saved",
            provider=provider,
            model=model,
            label=label,
            total_tokens=record.total_tokens,
        )
        return record

    def query_usage(
        self,
        *,
        email: str | None = None,
        from_date: str | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Return usage rows, newest first.

        Args:
            email: Only rows for this mailbox owner.
            from_date: Only rows on or after this ISO 8601 timestamp.
            limit: Maximum number of rows.
        """
        conditions: list[str] = []
        params: list[str | int] = []
        if email is not None:
            conditions.append("email = ?")
            params.append(email)
        if from_date is not None:
            conditions.append("created_at >= ?")
            params.append(from_date)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)

        prev_factory = self._conn.row_factory
        self._conn.row_factory = sqlite3.Row
        try:
            rows = self._conn.execute(
                f"SELECT * FROM ai_usage {where_clause} ORDER BY id DESC LIMIT ?",
                params,
            ).fetchall()
        finally:
            self._conn.row_factory = prev_factory
        return [dict(row) for row in rows]

    def summarize(self, *, email: str | None = None, from_date: str | None = None) -> dict[str, Any]:
        """Return total calls, tokens and cost for the matching rows."""
        conditions: list[str] = []
        params: list[str] = []
        if email is not None:
            conditions.append("email = ?")
            params.append(email)
        if from_date is not None:
            conditions.append("created_at >= ?")
            params.append(from_date)
        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        calls, tokens, cost = self._conn.execute(
            f"SELECT COUNT(*), COALESCE(SUM(total_tokens), 0), COALESCE(SUM(cost), 0) "
            f"FROM ai_usage {where_clause}",
            params,
        ).fetchone()
        return {"calls": calls, "total_tokens": tokens, "cost": round(cost, 6)}
