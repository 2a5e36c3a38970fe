"""Resolution of rule action templates into executable action items.

A rule's actions carry literal argument values or the ``{{ai}}`` marker.
Every marked field across all of the rule's actions is collected into one
pydantic model, so a rule needs at most one structured-generation call no
matter how many actions it has.  The validated response is then merged back
into the templates: literal values are kept as written, marked values are
replaced by the AI's answer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import BaseModel, Field, create_model

from inbox_assistant.domain.errors import ConfigurationError, ResolutionError
from inbox_assistant.domain.models import (
    Action,
    ActionItem,
    EmailContext,
    Rule,
    UserContext,
    is_ai_generated,
)
from inbox_assistant.domain.types import ACTION_FIELDS, ActionField, ActionType
from inbox_assistant.llm.gateway import LLMGateway
from inbox_assistant.llm.prompts import ARGS_USER_PROMPT, build_args_system_prompt

logger = structlog.get_logger()

ARGS_USAGE_LABEL = "Args for rule"

_FUNCTION_NAME_RE = re.compile(r"[^a-zA-Z0-9_-]+")
_MAX_FUNCTION_NAME_LENGTH = 64

_FIELD_DESCRIPTIONS: dict[ActionField, str] = {
    ActionField.LABEL: "The name of the label to apply to the email.",
    ActionField.SUBJECT: "The subject of the email.",
    ActionField.CONTENT: "The body text of the email.",
    ActionField.TO: "Comma-separated email addresses of the recipients.",
    ActionField.CC: "Comma-separated email addresses to CC.",
    ActionField.BCC: "Comma-separated email addresses to BCC.",
}

_ACTION_DESCRIPTIONS: dict[ActionType, str] = {
    ActionType.LABEL: "label",
    ActionType.REPLY: "reply",
    ActionType.SEND_EMAIL: "new email",
    ActionType.FORWARD: "forward",
    ActionType.DRAFT_EMAIL: "draft reply",
}


@dataclass(frozen=True)
class RuleFunction:
    """The structured-generation function derived from one rule.

    Attributes:
        rule: The rule the function was built for.
        name: Function name sent to the model (provider-safe characters).
        description: Function description sent to the model.
        parameters: Pydantic model with one required string field per
            AI-generated action argument.
        field_names: Maps ``(action index, field)`` to the parameter name.
    """

    rule: Rule
    name: str
    description: str
    parameters: type[BaseModel]
    field_names: dict[tuple[int, ActionField], str] = field(default_factory=dict)

    @property
    def should_ai_generate_args(self) -> bool:
        return bool(self.field_names)


def _sanitize(text: str) -> str:
    return _FUNCTION_NAME_RE.sub("_", text.strip()).strip("_")


def _function_name(rule: Rule) -> str:
    name = _sanitize(rule.name) or _sanitize(f"rule_{rule.id}")
    return name[:_MAX_FUNCTION_NAME_LENGTH]


def ai_argument_fields(actions: tuple[Action, ...] | list[Action]) -> dict[tuple[int, ActionField], str]:
    """Return the parameter name of every AI-generated field of *actions*.

    Names follow ``<action_type>_<field>``.  When a rule has several actions
    of the same type, later ones get a position suffix
    (``label_2_label``) so parameter names never collide.
    """
    names: dict[tuple[int, ActionField], str] = {}
    seen: dict[ActionType, int] = {}
    for index, action in enumerate(actions):
        seen[action.type] = seen.get(action.type, 0) + 1
        prefix = action.type.lower()
        if seen[action.type] > 1:
            prefix = f"{prefix}_{seen[action.type]}"
        for action_field in action.ai_fields():
            names[(index, action_field)] = f"{prefix}_{action_field.value}"
    return names


def get_function_for_rule(rule: Rule) -> RuleFunction:
    """Build the structured-generation function for *rule*.

    Args:
        rule: The rule whose actions need arguments.

    Returns:
        A ``RuleFunction``.  Its ``parameters`` model has no fields when
        every argument is a literal.
    """
    field_names = ai_argument_fields(rule.actions)

    definitions: dict[str, Any] = {}
    for (index, action_field), param_name in field_names.items():
        action_type = rule.actions[index].type
        kind = _ACTION_DESCRIPTIONS.get(action_type, action_type.lower())
        definitions[param_name] = (
            str,
            Field(description=f"{_FIELD_DESCRIPTIONS[action_field]} Used for the {kind} action."),
        )

    name = _function_name(rule)
    parameters = create_model(f"{name}_args", **definitions)
    description = rule.instructions.strip() or f"Arguments for the rule '{rule.name}'."
    return RuleFunction(
        rule=rule,
        name=name,
        description=description,
        parameters=parameters,
        field_names=field_names,
    )


def get_functions_from_rules(rules: list[Rule]) -> list[RuleFunction]:
    """Build one ``RuleFunction`` per rule, preserving order."""
    return [get_function_for_rule(rule) for rule in rules]


async def get_args_ai_response(
    email: EmailContext,
    function: RuleFunction,
    user: UserContext,
    gateway: LLMGateway,
) -> dict[str, str]:
    """Ask the LLM for the AI-generated arguments of *function*'s rule.

    Issues exactly one structured-generation call.

    Args:
        email: The email the rule matched.
        function: The rule's structured-generation function.
        user: The mailbox owner (AI settings and profile).
        gateway: The LLM gateway.

    Returns:
        The validated arguments keyed by parameter name.

    Raises:
        ConfigurationError: If no LLM backend is usable for *user*.
        ResolutionError: If the call fails or returns invalid output.
    """
    prompt = ARGS_USER_PROMPT.format(
        rule_name=function.rule.name,
        instructions=function.rule.instructions or "(none)",
        email_from=email.from_,
        email_to=email.to,
        email_subject=email.subject,
        email_content=email.content,
        function_name=function.name,
    )
    try:
        result = await gateway.chat_completion_object(
            user_ai=user.ai,
            prompt=prompt,
            system=build_args_system_prompt(user.about),
            schema=function.parameters,
            user_email=user.email,
            usage_label=ARGS_USAGE_LABEL,
            schema_name=function.name,
            schema_description=function.description,
        )
    except ConfigurationError:
        raise
    except Exception as exc:
        logger.warning("args_generation_failed", rule_id=function.rule.id, error=str(exc))
        raise ResolutionError(function.rule.id, str(exc)) from exc

    args: dict[str, str] = result.object.model_dump()
    logger.info("args_generated", rule_id=function.rule.id, fields=sorted(args))
    return args


def get_action_items_from_ai_args_response(
    response: dict[str, str] | None,
    actions: tuple[Action, ...] | list[Action],
    *,
    rule_id: str = "",
) -> list[ActionItem]:
    """Merge an AI args response into *actions* to produce action items.

    Literal fields keep their template value.  Marked fields take the value
    from *response*; marked fields on arguments the action type does not use
    are dropped.

    Raises:
        ResolutionError: If a marked field has no value in *response*, or
            the value is the marker itself.
    """
    field_names = ai_argument_fields(actions)
    response = response or {}

    items: list[ActionItem] = []
    for index, action in enumerate(actions):
        values: dict[str, str | None] = {}
        for action_field in ActionField:
            value = action.value_of(action_field)
            if not is_ai_generated(value):
                values[action_field.value] = value
                continue
            if action_field not in ACTION_FIELDS[action.type]:
                values[action_field.value] = None
                continue
            generated = response.get(field_names[(index, action_field)])
            if generated is None or is_ai_generated(generated):
                reason = f"no value generated for {action.type} {action_field.value}"
                raise ResolutionError(rule_id, reason)
            values[action_field.value] = generated
        items.append(ActionItem(type=action.type, **values))
    return items


async def resolve_action_items(
    rule: Rule,
    email: EmailContext,
    user: UserContext,
    gateway: LLMGateway,
) -> list[ActionItem]:
    """Return the executable action items for *rule* matched on *email*.

    Makes no LLM call when every argument is a literal, and exactly one
    otherwise.

    Raises:
        ResolutionError: If AI argument generation fails.  No items are
            produced in that case.
    """
    function = get_function_for_rule(rule)
    response = (
        await get_args_ai_response(email, function, user, gateway)
        if function.should_ai_generate_args
        else None
    )
    return get_action_items_from_ai_args_response(response, rule.actions, rule_id=rule.id)
