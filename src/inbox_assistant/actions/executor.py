"""Execution of resolved action items against Gmail.

Items run strictly in list order, one at a time, because later actions can
depend on earlier ones (a thread is labelled before it is archived).
Execution is best-effort: a failing item is recorded and the remaining items
still run; nothing is rolled back.  Planned runs (``allow_execute=False``)
touch nothing in Gmail and are saved for later approval.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import structlog
from pydantic import BaseModel, ConfigDict

from inbox_assistant.domain.models import ActionItem, EmailContext, Rule
from inbox_assistant.domain.types import ActionOutcomeStatus, ActionType, PlanStatus
from inbox_assistant.email.client import GmailClient
from inbox_assistant.email.models import OutboundEmail
from inbox_assistant.observability.errors import capture_exception, classify_error
from inbox_assistant.observability.metrics import ACTIONS_EXECUTED, RULES_MATCHED

logger = structlog.get_logger()


class PlanSink(Protocol):
    def save(
        self,
        *,
        rule_id: str,
        user_email: str,
        email: EmailContext,
        actions: list[ActionItem],
        status: PlanStatus,
        reason: str | None = None,
    ) -> str: ...


@dataclass(frozen=True)
class ExecutionContext:
    """Everything an execution needs besides the items themselves."""

    gmail: GmailClient
    user_id: str
    user_email: str
    allow_execute: bool
    email: EmailContext


class ActionOutcome(BaseModel):
    """What happened to one action item."""

    model_config = ConfigDict(frozen=True)

    action: ActionItem
    status: ActionOutcomeStatus
    error: str | None = None


class ExecutionResult(BaseModel):
    """Per-item outcomes of one execution, in execution order."""

    outcomes: list[ActionOutcome]
    plan_id: str | None = None

    @property
    def applied(self) -> list[ActionOutcome]:
        return [o for o in self.outcomes if o.status == ActionOutcomeStatus.APPLIED]

    @property
    def failed(self) -> list[ActionOutcome]:
        return [o for o in self.outcomes if o.status == ActionOutcomeStatus.FAILED]

    @property
    def succeeded(self) -> bool:
        return not self.failed


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _label(gmail: GmailClient, email: EmailContext, item: ActionItem) -> Any:
    if not item.label:
        msg = "LABEL action requires a label name"
        raise ValueError(msg)
    label_id = gmail.get_or_create_label(item.label)
    return gmail.label_thread(email.thread_id, label_id)


def _archive(gmail: GmailClient, email: EmailContext, item: ActionItem) -> Any:
    return gmail.archive_thread(email.thread_id)


def _mark_read(gmail: GmailClient, email: EmailContext, item: ActionItem) -> Any:
    return gmail.mark_read(email.thread_id)


def _mark_unread(gmail: GmailClient, email: EmailContext, item: ActionItem) -> Any:
    return gmail.mark_unread(email.thread_id)


def _mark_spam(gmail: GmailClient, email: EmailContext, item: ActionItem) -> Any:
    return gmail.mark_spam(email.thread_id)


def _reply(gmail: GmailClient, email: EmailContext, item: ActionItem) -> Any:
    if not item.content:
        msg = "REPLY action requires content"
        raise ValueError(msg)
    return gmail.reply_to_email(email, item.content, cc=item.cc, bcc=item.bcc)


def _send_email(gmail: GmailClient, email: EmailContext, item: ActionItem) -> Any:
    if not item.to or not item.content:
        msg = "SEND_EMAIL action requires a recipient and content"
        raise ValueError(msg)
    return gmail.send(
        OutboundEmail(
            to=item.to,
            subject=item.subject or "",
            body=item.content,
            cc=item.cc,
            bcc=item.bcc,
        )
    )


def _forward(gmail: GmailClient, email: EmailContext, item: ActionItem) -> Any:
    if not item.to:
        msg = "FORWARD action requires a recipient"
        raise ValueError(msg)
    return gmail.forward_email(email, item.to, content=item.content, cc=item.cc, bcc=item.bcc)


def _draft_email(gmail: GmailClient, email: EmailContext, item: ActionItem) -> Any:
    return gmail.draft_email(
        email,
        item.content or "",
        subject=item.subject,
        to=item.to,
        cc=item.cc,
        bcc=item.bcc,
    )


ACTION_HANDLERS: dict[ActionType, Callable[[GmailClient, EmailContext, ActionItem], Any]] = {
    ActionType.LABEL: _label,
    ActionType.ARCHIVE: _archive,
    ActionType.MARK_READ: _mark_read,
    ActionType.MARK_UNREAD: _mark_unread,
    ActionType.MARK_SPAM: _mark_spam,
    ActionType.REPLY: _reply,
    ActionType.SEND_EMAIL: _send_email,
    ActionType.FORWARD: _forward,
    ActionType.DRAFT_EMAIL: _draft_email,
}


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


async def _execute_one(item: ActionItem, context: ExecutionContext) -> ActionOutcome:
    handler = ACTION_HANDLERS[item.type]
    try:
        await asyncio.to_thread(handler, context.gmail, context.email, item)
    except Exception as exc:
        error_type = classify_error(exc)
        if error_type is not None:
            logger.warning(
                "action_failed_known_error",
                action_type=item.type.value,
                thread_id=context.email.thread_id,
                error_type=error_type.name,
            )
        else:
            logger.warning(
                "action_failed",
                action_type=item.type.value,
                thread_id=context.email.thread_id,
                error=str(exc),
            )
            capture_exception(
                exc,
                extra={"action_type": item.type.value, "thread_id": context.email.thread_id},
                user_email=context.user_email,
            )
        ACTIONS_EXECUTED.labels(action_type=item.type.value, outcome="failed").inc()
        return ActionOutcome(action=item, status=ActionOutcomeStatus.FAILED, error=str(exc))

    ACTIONS_EXECUTED.labels(action_type=item.type.value, outcome="applied").inc()
    logger.info("action_applied", action_type=item.type.value, thread_id=context.email.thread_id)
    return ActionOutcome(action=item, status=ActionOutcomeStatus.APPLIED)


async def execute_action_items(
    action_items: list[ActionItem],
    context: ExecutionContext,
) -> ExecutionResult:
    """Apply *action_items* to the email in *context*, in order.

    Args:
        action_items: Fully resolved items.
        context: Gmail client, user and email.  When ``allow_execute`` is
            ``False`` every item is reported as ``SKIPPED``.

    Returns:
        One ``ActionOutcome`` per item, in input order.
    """
    if not context.allow_execute:
        for item in action_items:
            ACTIONS_EXECUTED.labels(action_type=item.type.value, outcome="skipped").inc()
        return ExecutionResult(
            outcomes=[
                ActionOutcome(action=item, status=ActionOutcomeStatus.SKIPPED)
                for item in action_items
            ]
        )

    outcomes: list[ActionOutcome] = []
    for item in action_items:
        outcomes.append(await _execute_one(item, context))
    return ExecutionResult(outcomes=outcomes)


def _failure_reason(result: ExecutionResult) -> str | None:
    if result.succeeded:
        return None
    return "; ".join(f"{o.action.type}: {o.error}" for o in result.failed)


async def run_rule_actions(
    context: ExecutionContext,
    rule: Rule,
    action_items: list[ActionItem],
    plan_store: PlanSink | None = None,
) -> ExecutionResult:
    """Execute (or plan) *rule*'s action items and record the run.

    Automated runs are recorded as ``APPLIED`` or ``FAILED``.  Planned runs
    are recorded as ``PENDING`` with the email snapshot so the approval
    endpoint can execute them later.

    Args:
        context: The execution context.
        rule: The rule that matched.
        action_items: The rule's resolved action items.
        plan_store: Where runs are recorded.  ``None`` skips recording.

    Returns:
        The execution result, carrying the recorded plan id when stored.
    """
    mode = "automated" if context.allow_execute else "planned"
    RULES_MATCHED.labels(mode=mode).inc()
    logger.info(
        "rule_actions_started",
        rule_id=rule.id,
        mode=mode,
        thread_id=context.email.thread_id,
        actions=[item.type.value for item in action_items],
    )

    result = await execute_action_items(action_items, context)

    if plan_store is None:
        return result

    if context.allow_execute:
        status = PlanStatus.APPLIED if result.succeeded else PlanStatus.FAILED
    else:
        status = PlanStatus.PENDING
    plan_id = plan_store.save(
        rule_id=rule.id,
        user_email=context.user_email,
        email=context.email,
        actions=action_items,
        status=status,
        reason=_failure_reason(result),
    )
    logger.info("rule_actions_recorded", rule_id=rule.id, plan_id=plan_id, status=status.value)
    return result.model_copy(update={"plan_id": plan_id})
