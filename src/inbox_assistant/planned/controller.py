"""Approval and rejection of planned rule executions.

A planned execution is approved by the owner with the actions to run and,
optionally, literal argument overrides (an edited reply, a different label).
Approval always executes immediately.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel, Field

from inbox_assistant.actions.executor import ExecutionContext, ExecutionResult, execute_action_items
from inbox_assistant.domain.errors import PlanNotFoundError, ResolutionError, SafeError
from inbox_assistant.domain.models import Action, ActionItem, EmailContext, UserContext, is_ai_generated
from inbox_assistant.domain.types import ACTION_FIELDS, ActionField, PlanStatus
from inbox_assistant.email.client import GmailClient
from inbox_assistant.state.store import PlanStore

logger = structlog.get_logger()

_EXECUTABLE_STATUSES = frozenset({PlanStatus.PENDING, PlanStatus.FAILED})


class PlanArgs(BaseModel):
    """Literal argument overrides applied to every action of the plan."""

    label: str | None = None
    to: str | None = None
    cc: str | None = None
    bcc: str | None = None
    subject: str | None = None
    content: str | None = None


class ExecutePlanBody(BaseModel):
    """Request body for approving a planned execution."""

    email: EmailContext
    actions: list[Action]
    args: PlanArgs = Field(default_factory=PlanArgs)
    rule_id: str


def build_plan_items(body: ExecutePlanBody) -> list[ActionItem]:
    """Merge *body*'s overrides into its actions.

    An override wins over the action's own value.  A field still holding the
    AI marker after the merge cannot be executed.

    Raises:
        ResolutionError: If a marked field has no override.
    """
    items: list[ActionItem] = []
    for action in body.actions:
        values: dict[str, str | None] = {}
        for action_field in ActionField:
            override = getattr(body.args, action_field.value)
            value = override if override is not None else action.value_of(action_field)
            if is_ai_generated(value) and action_field not in ACTION_FIELDS[action.type]:
                value = None
            if is_ai_generated(value):
                raise ResolutionError(body.rule_id, f"missing value for {action.type} {action_field.value}")
            values[action_field.value] = value
        items.append(ActionItem(type=action.type, **values))
    return items


async def execute_plan(
    body: ExecutePlanBody,
    plan_id: str,
    user: UserContext,
    gmail: GmailClient,
    plan_store: PlanStore,
) -> ExecutionResult:
    """Execute an approved plan and record the outcome.

    Args:
        body: The approved actions, overrides and email snapshot.
        plan_id: The planned execution being approved.
        user: The mailbox owner.
        gmail: Gmail client for the owner's mailbox.
        plan_store: Store holding the plan.

    Returns:
        The execution result; the plan is marked ``APPLIED`` or ``FAILED``.

    Raises:
        PlanNotFoundError: If *plan_id* does not exist for *user*.
        SafeError: If the plan was already applied or rejected, or if
            *body* names a different rule or thread than the stored plan.
    """
    plan = plan_store.get(plan_id)
    if plan is None or plan.user_email != user.email:
        raise PlanNotFoundError(plan_id)
    if plan.status not in _EXECUTABLE_STATUSES:
        raise SafeError(f"Plan is already {plan.status.value}")
    if body.rule_id != plan.rule_id or body.email.thread_id != plan.thread_id:
        logger.warning("plan_mismatch", plan_id=plan_id, rule_id=body.rule_id, thread_id=body.email.thread_id)
        raise SafeError("Plan does not match the submitted rule or thread")

    items = build_plan_items(body)
    context = ExecutionContext(
        gmail=gmail,
        user_id=user.id,
        user_email=user.email,
        allow_execute=True,
        email=body.email,
    )
    result = await execute_action_items(items, context)

    status = PlanStatus.APPLIED if result.succeeded else PlanStatus.FAILED
    reason = None if result.succeeded else "; ".join(f"{o.action.type}: {o.error}" for o in result.failed)
    plan_store.update_status(plan_id, status, reason)
    logger.info("plan_executed", plan_id=plan_id, rule_id=body.rule_id, status=status.value)
    return result.model_copy(update={"plan_id": plan_id})


def reject_plan(plan_id: str, user: UserContext, plan_store: PlanStore) -> None:
    """Mark a pending plan as rejected without touching Gmail.

    Raises:
        PlanNotFoundError: If *plan_id* does not exist for *user*.
        SafeError: If the plan is no longer pending.
    """
    plan = plan_store.get(plan_id)
    if plan is None or plan.user_email != user.email:
        raise PlanNotFoundError(plan_id)
    if plan.status != PlanStatus.PENDING:
        raise SafeError(f"Plan is already {plan.status.value}")
    plan_store.update_status(plan_id, PlanStatus.REJECTED)
    logger.info("plan_rejected", plan_id=plan_id)
