"""Action argument resolution and execution."""

from inbox_assistant.actions.arguments import (
    RuleFunction,
    get_action_items_from_ai_args_response,
    get_args_ai_response,
    get_function_for_rule,
    get_functions_from_rules,
    resolve_action_items,
)
from inbox_assistant.actions.executor import (
    ACTION_HANDLERS,
    ActionOutcome,
    ExecutionContext,
    ExecutionResult,
    execute_action_items,
    run_rule_actions,
)

__all__ = [
    "ACTION_HANDLERS",
    "ActionOutcome",
    "ExecutionContext",
    "ExecutionResult",
    "RuleFunction",
    "execute_action_items",
    "get_action_items_from_ai_args_response",
    "get_args_ai_response",
    "get_function_for_rule",
    "get_functions_from_rules",
    "resolve_action_items",
    "run_rule_actions",
]
