"""Persisted record of a rule execution or a plan awaiting approval."""

from pydantic import BaseModel

from inbox_assistant.domain.models import ActionItem, EmailContext
from inbox_assistant.domain.types import PlanStatus


class PlannedExecution(BaseModel):
    """One rule applied (or planned) on one email.

    ``email`` is the snapshot the plan was computed from, so an approved plan
    acts on the same thread even if the mailbox changed since.
    """

    id: str
    rule_id: str
    user_email: str
    thread_id: str
    message_id: str
    email: EmailContext
    actions: list[ActionItem]
    status: PlanStatus
    reason: str | None = None
    created_at: str
    updated_at: str
