"""Core domain types, models, and errors for the inbox assistant."""

from inbox_assistant.domain.errors import (
    AssistantError,
    ConfigurationError,
    PlanNotFoundError,
    ProviderAPIError,
    ResolutionError,
    SafeError,
    UnsupportedProviderError,
)
from inbox_assistant.domain.models import (
    AI_GENERATED,
    Action,
    ActionItem,
    EmailContext,
    MessageHeaders,
    ParsedMessage,
    Rule,
    UserAIFields,
    UserContext,
    is_ai_generated,
)
from inbox_assistant.domain.types import (
    ACTION_FIELDS,
    ActionField,
    ActionOutcomeStatus,
    ActionType,
    PlanStatus,
)

__all__ = [
    "ACTION_FIELDS",
    "AI_GENERATED",
    "Action",
    "ActionField",
    "ActionItem",
    "ActionOutcomeStatus",
    "ActionType",
    "AssistantError",
    "ConfigurationError",
    "EmailContext",
    "MessageHeaders",
    "ParsedMessage",
    "PlanNotFoundError",
    "PlanStatus",
    "ProviderAPIError",
    "ResolutionError",
    "Rule",
    "SafeError",
    "UnsupportedProviderError",
    "UserAIFields",
    "UserContext",
    "is_ai_generated",
]
