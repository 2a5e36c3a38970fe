"""Liveness and readiness routes for the inbox assistant.

``/ready`` reports whether a message could be processed right now: the
database answers with the assistant's schema in place, a Gmail client is
configured, and how many static rules and pending plans there are.  An empty
rule set is reported but does not make the service unready.
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from inbox_assistant.domain.types import PlanStatus

logger = structlog.get_logger()


def _count_pending_plans(conn: sqlite3.Connection) -> int:
    row = conn.execute(
        "SELECT COUNT(*) FROM planned_executions WHERE status = ?",
        (PlanStatus.PENDING.value,),
    ).fetchone()
    return int(row[0])


async def _database_check(services: dict[str, Any]) -> tuple[str, int | None]:
    conn: sqlite3.Connection | None = services.get("db_conn")
    if conn is None:
        return "fail", None
    try:
        pending = await asyncio.to_thread(_count_pending_plans, conn)
    except sqlite3.Error as exc:
        logger.warning("readiness_database_failed", error=str(exc))
        return "fail", None
    return "ok", pending


def register_health_routes(app: FastAPI) -> None:
    """Register ``GET /health`` and ``GET /ready`` on *app*.

    Both read ``app.state.services`` as built by ``initialize_services``.
    """

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        services: dict[str, Any] = request.app.state.services
        database, pending_plans = await _database_check(services)
        rules = services.get("rules") or []

        checks = {
            "database": database,
            "gmail": "ok" if services.get("gmail_client") is not None else "fail",
            "rules": "ok" if rules else "empty",
        }
        is_ready = checks["database"] == "ok" and checks["gmail"] == "ok"
        body = {
            "status": "ready" if is_ready else "not_ready",
            "checks": checks,
            "rules_loaded": len(rules),
            "pending_plans": pending_plans,
        }
        return JSONResponse(content=body, status_code=200 if is_ready else 503)
