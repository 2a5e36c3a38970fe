"""Rule loading and static rule matching."""

from inbox_assistant.rules.loader import load_rules
from inbox_assistant.rules.matcher import (
    compile_pattern,
    field_matches,
    find_matching_rule,
    rule_matches,
)

__all__ = [
    "compile_pattern",
    "field_matches",
    "find_matching_rule",
    "load_rules",
    "rule_matches",
]
