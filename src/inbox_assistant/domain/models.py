"""Pydantic v2 models for messages, rules, actions, and per-user AI settings.

Message models are frozen: once a Gmail message has been parsed it is never
mutated.  Rule and action templates are frozen as well since they are owned
by the persistence layer and only read by the pipeline.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from inbox_assistant.domain.types import ACTION_FIELDS, ActionField, ActionType

# Argument value meaning "ask the AI to fill this in".
AI_GENERATED = "{{ai}}"


def is_ai_generated(value: str | None) -> bool:
    """Return ``True`` when *value* is the AI-generated marker."""
    return value is not None and value.strip() == AI_GENERATED


class MessageHeaders(BaseModel):
    """The subset of RFC 2822 headers the pipeline cares about."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: str = Field(default="", alias="from")
    to: str = ""
    cc: str | None = None
    subject: str = ""
    date: str = ""
    message_id: str | None = Field(default=None, alias="message-id")
    references: str | None = None
    reply_to: str | None = Field(default=None, alias="reply-to")


class ParsedMessage(BaseModel):
    """A Gmail message normalized into headers and body variants."""

    model_config = ConfigDict(frozen=True)

    id: str
    thread_id: str
    headers: MessageHeaders
    snippet: str = ""
    text_plain: str | None = None
    text_html: str | None = None
    label_ids: tuple[str, ...] = ()


class EmailContext(BaseModel):
    """The email as seen by rule execution and AI argument generation.

    Carries the identifiers needed to mutate or reply to the thread plus
    ``content``, the best available body representation.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: str = Field(alias="from")
    to: str = ""
    subject: str = ""
    header_message_id: str = ""
    message_id: str
    thread_id: str
    snippet: str = ""
    text_plain: str | None = None
    text_html: str | None = None
    cc: str | None = None
    date: str | None = None
    references: str | None = None
    reply_to: str | None = None
    content: str = ""


class _ActionArgs(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ActionType
    label: str | None = None
    subject: str | None = None
    content: str | None = None
    to: str | None = None
    cc: str | None = None
    bcc: str | None = None

    def value_of(self, field: ActionField) -> str | None:
        return getattr(self, field.value)


class Action(_ActionArgs):
    """An action template attached to a rule.

    Each argument is a literal value, ``None``, or :data:`AI_GENERATED`.
    Only the fields listed in ``ACTION_FIELDS`` for the action type are
    considered.
    """

    def ai_fields(self) -> list[ActionField]:
        """Return the fields of this action the AI has to generate."""
        return [f for f in ACTION_FIELDS[self.type] if is_ai_generated(self.value_of(f))]


class ActionItem(_ActionArgs):
    """A fully resolved action, ready for the executor."""

    @model_validator(mode="after")
    def _no_unresolved_fields(self) -> ActionItem:
        for field in ActionField:
            if is_ai_generated(self.value_of(field)):
                msg = f"Action item field '{field}' still requires AI generation"
                raise ValueError(msg)
        return self


class Rule(BaseModel):
    """A user-defined policy mapping message conditions to actions.

    Pattern fields are regular expressions; ``None`` (or empty) means the
    field matches every message.  ``automate=False`` turns matches into
    planned actions awaiting approval.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    instructions: str = ""
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    subject: str | None = None
    body: str | None = None
    actions: tuple[Action, ...] = ()
    automate: bool = True


class UserAIFields(BaseModel):
    """Per-user LLM selection.  Empty values fall back to defaults."""

    model_config = ConfigDict(frozen=True)

    ai_provider: str | None = None
    ai_model: str | None = None
    ai_api_key: str | None = None


class UserContext(BaseModel):
    """The mailbox owner on whose behalf the pipeline runs."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    about: str = ""
    ai: UserAIFields = Field(default_factory=UserAIFields)
