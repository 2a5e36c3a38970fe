"""Validation of the AI settings a mailbox owner saves."""

from __future__ import annotations

from pydantic import BaseModel

from inbox_assistant.domain.errors import SafeError
from inbox_assistant.domain.models import UserAIFields
from inbox_assistant.llm.config import DEFAULT_PROVIDER, BackendKind, Model, Provider, resolve_model


class SaveSettingsBody(BaseModel):
    """Request body of ``POST /api/user/settings``."""

    ai_provider: str | None = None
    ai_model: str | None = None
    ai_api_key: str | None = None


def resolve_ai_settings(body: SaveSettingsBody) -> UserAIFields:
    """Validate *body* and return the fields to store.

    OpenAI and Groq need a personal key.  Anthropic without a key is served
    by Bedrock, so the stored model is the Bedrock model id.

    Raises:
        SafeError: If the provider is unknown or a required key is missing.
    """
    try:
        provider = Provider(body.ai_provider) if body.ai_provider else DEFAULT_PROVIDER
    except ValueError:
        raise SafeError("Invalid AI provider") from None

    api_key = (body.ai_api_key or "").strip() or None

    if provider == Provider.OPEN_AI:
        if not api_key:
            raise SafeError("OpenAI requires an API key")
        model = resolve_model(BackendKind.OPEN_AI, body.ai_model)
    elif provider == Provider.ANTHROPIC:
        model = (
            Model.CLAUDE_3_5_SONNET_ANTHROPIC if api_key else Model.CLAUDE_3_5_SONNET_BEDROCK
        )
    elif provider == Provider.GROQ:
        if not api_key:
            raise SafeError("GROQ requires an API key")
        model = Model.LLAMA_3_70B_GROQ
    else:
        model = resolve_model(BackendKind.OLLAMA, body.ai_model)

    return UserAIFields(ai_provider=provider.value, ai_model=model, ai_api_key=api_key)
