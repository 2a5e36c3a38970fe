"""Static rule matching against message headers and body.

Rules carry user-supplied regular expressions for the ``from``, ``to``,
``subject``, and ``body`` fields.  A rule matches when every configured
pattern finds a match; unset patterns match everything.  Rules are tried in
the caller's order and the first match wins.

Patterns are untrusted input.  They are compiled lazily and cached with the
``regex`` engine, and every search runs under ``MATCH_TIMEOUT_SECONDS``.  A
pattern that does not compile, is longer than ``MAX_PATTERN_LENGTH``, or
times out never matches.  Only the owning rule's field is affected;
evaluation of other rules continues.
"""

from __future__ import annotations

from collections.abc import Sequence
from functools import lru_cache

import regex
import structlog

from inbox_assistant.domain.models import ParsedMessage, Rule

logger = structlog.get_logger()

MAX_PATTERN_LENGTH = 500
MAX_TEXT_LENGTH = 50_000
MATCH_TIMEOUT_SECONDS = 0.25


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> regex.Pattern[str] | None:
    """Compile a user-supplied pattern, or return ``None`` if it is unusable.

    Args:
        pattern: The regular expression source.

    Returns:
        The compiled pattern, or ``None`` when the pattern is invalid or
        longer than ``MAX_PATTERN_LENGTH``.
    """
    if len(pattern) > MAX_PATTERN_LENGTH:
        logger.warning("rule_pattern_too_long", length=len(pattern))
        return None
    try:
        return regex.compile(pattern)
    except regex.error as exc:
        logger.warning("rule_pattern_invalid", pattern=pattern, error=str(exc))
        return None


def field_matches(pattern: str | None, text: str | None) -> bool:
    """Return whether *pattern* matches anywhere in *text*.

    An unset (or empty) pattern matches every text.  An unusable pattern, or
    one whose search exceeds ``MATCH_TIMEOUT_SECONDS``, matches nothing.
    """
    if not pattern:
        return True
    compiled = compile_pattern(pattern)
    if compiled is None:
        return False
    try:
        return compiled.search((text or "")[:MAX_TEXT_LENGTH], timeout=MATCH_TIMEOUT_SECONDS) is not None
    except TimeoutError:
        logger.warning("rule_pattern_timed_out", pattern=pattern, timeout=MATCH_TIMEOUT_SECONDS)
        return False


def rule_matches(rule: Rule, message: ParsedMessage) -> bool:
    """Return whether every configured pattern of *rule* matches *message*."""
    headers = message.headers
    return (
        field_matches(rule.from_, headers.from_)
        and field_matches(rule.to, headers.to)
        and field_matches(rule.subject, headers.subject)
        and field_matches(rule.body, message.text_plain)
    )


def find_matching_rule(rules: Sequence[Rule], message: ParsedMessage) -> Rule | None:
    """Return the first rule in *rules* that matches *message*.

    Args:
        rules: Candidate rules in priority order.
        message: The parsed inbound message.

    Returns:
        The first matching rule, or ``None`` when no rule qualifies.
    """
    for rule in rules:
        if rule_matches(rule, message):
            logger.debug("static_rule_matched", rule_id=rule.id, message_id=message.id)
            return rule
    return None
