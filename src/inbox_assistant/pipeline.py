"""Static-rule pipeline for one inbound message.

Matches the message against the owner's rules, resolves the matched rule's
action arguments (calling the LLM only when a field asks for it), and
executes or plans the resulting actions.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel

from inbox_assistant.actions.arguments import resolve_action_items
from inbox_assistant.actions.executor import (
    ExecutionContext,
    ExecutionResult,
    PlanSink,
    run_rule_actions,
)
from inbox_assistant.domain.models import ParsedMessage, Rule, UserContext
from inbox_assistant.email.client import GmailClient
from inbox_assistant.email.parser import parsed_message_to_email
from inbox_assistant.llm.gateway import LLMGateway
from inbox_assistant.rules.matcher import find_matching_rule

logger = structlog.get_logger()


class StaticRuleResult(BaseModel):
    """Outcome of running the static-rule pipeline on one message."""

    handled: bool
    rule_id: str | None = None
    execution: ExecutionResult | None = None


async def handle_static_rule(
    message: ParsedMessage,
    user: UserContext,
    gmail: GmailClient,
    rules: list[Rule],
    gateway: LLMGateway,
    plan_store: PlanSink | None = None,
) -> StaticRuleResult:
    """Run the first matching static rule on *message*.

    Rules with ``automate=True`` are applied immediately; the others are
    saved as pending plans for the owner to approve.

    Args:
        message: The parsed inbound message.
        user: The mailbox owner.
        gmail: Gmail client for the owner's mailbox.
        rules: The owner's rules, in priority order.
        gateway: LLM gateway used for AI-generated arguments.
        plan_store: Where executions and plans are recorded.

    Returns:
        ``handled=False`` when no rule matched.

    Raises:
        ResolutionError: If AI argument generation failed.  No action is
            executed in that case.
        ConfigurationError: If the rule needs the LLM and no backend is
            usable for *user*.
    """
    log = logger.bind(message_id=message.id, thread_id=message.thread_id)

    rule = find_matching_rule(rules, message)
    if rule is None:
        log.info("no_static_rule_matched")
        return StaticRuleResult(handled=False)

    log.info("static_rule_matched", rule_id=rule.id, rule_name=rule.name)
    email = parsed_message_to_email(message)
    action_items = await resolve_action_items(rule, email, user, gateway)

    context = ExecutionContext(
        gmail=gmail,
        user_id=user.id,
        user_email=user.email,
        allow_execute=rule.automate,
        email=email,
    )
    execution = await run_rule_actions(context, rule, action_items, plan_store)
    return StaticRuleResult(handled=True, rule_id=rule.id, execution=execution)
