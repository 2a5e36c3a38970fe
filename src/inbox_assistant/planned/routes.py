"""FastAPI routes for approving and rejecting planned executions."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request

from inbox_assistant.domain.errors import PlanNotFoundError, ResolutionError, SafeError
from inbox_assistant.domain.types import PlanStatus
from inbox_assistant.planned.controller import ExecutePlanBody, execute_plan, reject_plan
from inbox_assistant.state.store import PlanStore
from inbox_assistant.user.context import build_user_context

logger = structlog.get_logger()

router = APIRouter(prefix="/api/user/planned")


@router.get("")
async def list_pending(request: Request) -> dict[str, Any]:
    """Return the owner's plans awaiting approval."""
    services = request.app.state.services
    settings = request.app.state.settings
    plan_store: PlanStore = services["plan_store"]
    plans = plan_store.list_by_status(settings.user_email, PlanStatus.PENDING)
    return {"plans": [plan.model_dump(mode="json", by_alias=True) for plan in plans]}


@router.post("/{plan_id}")
async def approve(plan_id: str, body: ExecutePlanBody, request: Request) -> dict[str, Any]:
    """Execute a planned rule run with the approved actions and overrides.

    Raises:
        HTTPException: 404 for an unknown plan, 409 when it is no longer
            executable, 422 when an argument is still unresolved, 503 when
            Gmail is not configured.
    """
    services = request.app.state.services
    gmail = services.get("gmail_client")
    if gmail is None:
        raise HTTPException(status_code=503, detail="Gmail client not configured")

    user = build_user_context(request.app.state.settings, services.get("ai_settings_store"))
    try:
        result = await execute_plan(body, plan_id, user, gmail, services["plan_store"])
    except PlanNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Plan not found") from exc
    except SafeError as exc:
        raise HTTPException(status_code=409, detail=exc.safe_message) from exc
    except ResolutionError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return result.model_dump(mode="json")


@router.post("/{plan_id}/reject")
async def reject(plan_id: str, request: Request) -> dict[str, str]:
    """Reject a pending plan without touching Gmail."""
    services = request.app.state.services
    user = build_user_context(request.app.state.settings, services.get("ai_settings_store"))
    try:
        reject_plan(plan_id, user, services["plan_store"])
    except PlanNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Plan not found") from exc
    except SafeError as exc:
        raise HTTPException(status_code=409, detail=exc.safe_message) from exc
    return {"status": "rejected"}
