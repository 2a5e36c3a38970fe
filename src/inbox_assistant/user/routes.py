"""FastAPI routes for the mailbox owner's AI settings and error banners."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request

from inbox_assistant.domain.errors import SafeError
from inbox_assistant.user.settings import SaveSettingsBody, resolve_ai_settings

logger = structlog.get_logger()

router = APIRouter(prefix="/api/user")


@router.post("/settings")
async def save_settings(body: SaveSettingsBody, request: Request) -> dict[str, Any]:
    """Validate and store the owner's AI provider, model and key.

    Raises:
        HTTPException: 400 with a safe message when validation fails.
    """
    services = request.app.state.services
    settings = request.app.state.settings
    try:
        fields = resolve_ai_settings(body)
    except SafeError as exc:
        raise HTTPException(status_code=400, detail=exc.safe_message) from exc

    services["ai_settings_store"].save(settings.user_email, fields)
    logger.info("ai_settings_saved", provider=fields.ai_provider, model=fields.ai_model)
    return {
        "ai_provider": fields.ai_provider,
        "ai_model": fields.ai_model,
        "has_api_key": fields.ai_api_key is not None,
    }


@router.get("/errors")
async def list_errors(request: Request) -> dict[str, Any]:
    """Return the owner's error banners, newest first."""
    services = request.app.state.services
    settings = request.app.state.settings
    return {"errors": services["error_store"].get_user_error_messages(settings.user_email)}


@router.delete("/errors")
async def clear_errors(request: Request) -> dict[str, int]:
    """Dismiss every error banner."""
    services = request.app.state.services
    settings = request.app.state.settings
    return {"cleared": services["error_store"].clear_user_error_messages(settings.user_email)}
