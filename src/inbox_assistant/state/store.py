"""SQLite-backed stores for planned executions and per-user AI settings.

Both accept a sqlite3.Connection, use parameterized queries exclusively, and
commit synchronously after writes.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import UTC, datetime

from inbox_assistant.domain.models import ActionItem, EmailContext, UserAIFields
from inbox_assistant.domain.types import PlanStatus
from inbox_assistant.state.models import PlannedExecution


def _now() -> str:
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class PlanStore:
    """Persist executed-rule records and plans awaiting approval."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def save(
        self,
        *,
        rule_id: str,
        user_email: str,
        email: EmailContext,
        actions: list[ActionItem],
        status: PlanStatus,
        reason: str | None = None,
    ) -> str:
        """Insert a new record and return its generated id.

        Args:
            rule_id: The rule that matched.
            user_email: The mailbox owner.
            email: Snapshot of the email the rule matched.
            actions: The resolved action items.
            status: Initial status (``PENDING`` for planned runs).
            reason: Failure summary, if any.
        """
        plan_id = uuid.uuid4().hex
        now = _now()
        self._conn.execute(
            """
            INSERT INTO planned_executions (
                id, rule_id, user_email, thread_id, message_id,
                email_json, actions_json, status, reason, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                plan_id,
                rule_id,
                user_email,
                email.thread_id,
                email.message_id,
                email.model_dump_json(by_alias=True),
                json.dumps([item.model_dump(mode="json") for item in actions]),
                status.value,
                reason,
                now,
                now,
            ),
        )
        self._conn.commit()
        return plan_id

    def update_status(self, plan_id: str, status: PlanStatus, reason: str | None = None) -> bool:
        """Set the status of *plan_id*.  Returns ``False`` if it does not exist."""
        cursor = self._conn.execute(
            "UPDATE planned_executions SET status = ?, reason = ?, updated_at = ? WHERE id = ?",
            (status.value, reason, _now(), plan_id),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def _row_to_model(self, row: sqlite3.Row) -> PlannedExecution:
        return PlannedExecution(
            id=row["id"],
            rule_id=row["rule_id"],
            user_email=row["user_email"],
            thread_id=row["thread_id"],
            message_id=row["message_id"],
            email=EmailContext.model_validate_json(row["email_json"]),
            actions=[ActionItem.model_validate(item) for item in json.loads(row["actions_json"])],
            status=PlanStatus(row["status"]),
            reason=row["reason"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _select(self, query: str, params: tuple[str, ...]) -> list[PlannedExecution]:
        prev_factory = self._conn.row_factory
        self._conn.row_factory = sqlite3.Row
        try:
            rows = self._conn.execute(query, params).fetchall()
        finally:
            self._conn.row_factory = prev_factory
        return [self._row_to_model(row) for row in rows]

    def get(self, plan_id: str) -> PlannedExecution | None:
        """Return the record for *plan_id*, or ``None``."""
        rows = self._select("SELECT * FROM planned_executions WHERE id = ?", (plan_id,))
        return rows[0] if rows else None

    def list_by_status(self, user_email: str, status: PlanStatus) -> list[PlannedExecution]:
        """Return *user_email*'s records with *status*, oldest first."""
        return self._select(
            "SELECT * FROM planned_executions WHERE user_email = ? AND status = ? "
            "ORDER BY created_at, rowid",
            (user_email, status.value),
        )


class AISettingsStore:
    """Persist each mailbox owner's LLM provider selection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def save(self, user_email: str, fields: UserAIFields) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO ai_settings (user_email, ai_provider, ai_model, ai_api_key, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (user_email, fields.ai_provider, fields.ai_model, fields.ai_api_key, _now()),
        )
        self._conn.commit()

    def get(self, user_email: str) -> UserAIFields | None:
        row = self._conn.execute(
            "SELECT ai_provider, ai_model, ai_api_key FROM ai_settings WHERE user_email = ?",
            (user_email,),
        ).fetchone()
        if row is None:
            return None
        ai_provider, ai_model, ai_api_key = row
        return UserAIFields(ai_provider=ai_provider, ai_model=ai_model, ai_api_key=ai_api_key)
