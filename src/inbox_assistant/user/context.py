"""Build the mailbox owner's ``UserContext`` from settings and stored AI settings."""

from __future__ import annotations

from inbox_assistant.config import Settings
from inbox_assistant.domain.models import UserAIFields, UserContext
from inbox_assistant.state.store import AISettingsStore


def build_user_context(settings: Settings, ai_settings_store: AISettingsStore | None = None) -> UserContext:
    """Return the owner's context.

    AI settings saved through the settings endpoint take precedence over the
    ``AI_PROVIDER`` / ``AI_MODEL`` / ``AI_API_KEY`` environment defaults.
    """
    stored = ai_settings_store.get(settings.user_email) if ai_settings_store is not None else None
    ai = stored or UserAIFields(
        ai_provider=settings.ai_provider or None,
        ai_model=settings.ai_model or None,
        ai_api_key=settings.ai_api_key.get_secret_value() or None,
    )
    return UserContext(
        id=settings.user_id,
        email=settings.user_email,
        about=settings.user_about,
        ai=ai,
    )
