"""Mailbox owner context, AI settings validation, and user routes."""

from inbox_assistant.user.context import build_user_context
from inbox_assistant.user.settings import SaveSettingsBody, resolve_ai_settings

__all__ = ["SaveSettingsBody", "build_user_context", "resolve_ai_settings"]
