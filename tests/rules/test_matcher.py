"""Tests for static rule matching."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from inbox_assistant.domain.models import Action, MessageHeaders, ParsedMessage, Rule
from inbox_assistant.domain.types import ActionType
from inbox_assistant.rules.matcher import (
    MATCH_TIMEOUT_SECONDS,
    MAX_PATTERN_LENGTH,
    MAX_TEXT_LENGTH,
    compile_pattern,
    field_matches,
    find_matching_rule,
    rule_matches,
)


def _message(
    from_: str = "newsletter@example.com",
    to: str = "me@x.com",
    subject: str = "Weekly digest",
    body: str | None = "Hello",
) -> ParsedMessage:
    return ParsedMessage(
        id="m1",
        thread_id="t1",
        headers=MessageHeaders(from_=from_, to=to, subject=subject),
        text_plain=body,
    )


def _rule(rule_id: str, **patterns: str) -> Rule:
    return Rule(id=rule_id, name=rule_id, actions=(Action(type=ActionType.ARCHIVE),), **patterns)


# ---------------------------------------------------------------------------
# find_matching_rule
# ---------------------------------------------------------------------------


class TestFindMatchingRule:
    def test_returns_first_matching_rule_in_order(self) -> None:
        rules = [
            _rule("a", subject="^Invoice"),
            _rule("b", from_="newsletter"),
            _rule("c", from_="example"),
        ]

        assert find_matching_rule(rules, _message()).id == "b"

    def test_returns_none_when_nothing_matches(self) -> None:
        rules = [_rule("a", subject="^Invoice"), _rule("b", to="billing@")]

        assert find_matching_rule(rules, _message()) is None

    def test_empty_rule_list(self) -> None:
        assert find_matching_rule([], _message()) is None

    def test_rule_without_patterns_matches_everything(self) -> None:
        wildcard = _rule("wild")

        assert find_matching_rule([wildcard], _message()) is wildcard
        assert find_matching_rule([wildcard], _message(from_="", to="", subject="", body=None)) is wildcard

    def test_all_configured_patterns_must_match(self) -> None:
        rule = _rule("r", from_="newsletter", subject="^Invoice")

        assert find_matching_rule([rule], _message()) is None
        assert find_matching_rule([rule], _message(subject="Invoice 12")) is rule

    def test_later_rules_are_not_evaluated_after_a_match(self) -> None:
        rules = [_rule("first", from_="newsletter"), _rule("bad", from_="(")]

        # The invalid pattern would log a warning if it were compiled.
        compile_pattern.cache_clear()
        assert find_matching_rule(rules, _message()).id == "first"
        assert compile_pattern.cache_info().currsize == 1

    def test_invalid_pattern_only_disqualifies_its_own_rule(self) -> None:
        rules = [_rule("broken", from_="[unclosed"), _rule("ok", from_="newsletter")]

        assert find_matching_rule(rules, _message()).id == "ok"


# ---------------------------------------------------------------------------
# Field matching
# ---------------------------------------------------------------------------


class TestFieldMatches:
    def test_body_matches_plain_text(self) -> None:
        rule = _rule("r", body="unsubscribe")

        assert rule_matches(rule, _message(body="Click to unsubscribe"))
        assert not rule_matches(rule, _message(body=None))

    def test_to_header(self) -> None:
        assert rule_matches(_rule("r", to=r"me@x\.com"), _message())
        assert not rule_matches(_rule("r", to=r"you@x\.com"), _message())

    def test_search_is_unanchored(self) -> None:
        assert field_matches("digest", "Weekly digest")

    def test_anchors_are_respected(self) -> None:
        assert not field_matches("^digest", "Weekly digest")

    @pytest.mark.parametrize("pattern", ["", None])
    def test_unset_pattern_matches(self, pattern: str | None) -> None:
        assert field_matches(pattern, "anything")

    def test_none_text_treated_as_empty(self) -> None:
        assert field_matches("^$", None)

    def test_text_is_bounded(self) -> None:
        text = "a" * MAX_TEXT_LENGTH + "needle"

        assert not field_matches("needle", text)


# ---------------------------------------------------------------------------
# Pattern safety
# ---------------------------------------------------------------------------


class TestCompilePattern:
    def test_valid_pattern_compiles(self) -> None:
        assert compile_pattern(r"^Invoice\s+#\d+") is not None

    def test_invalid_pattern_returns_none(self) -> None:
        assert compile_pattern("(unclosed") is None

    def test_too_long_pattern_returns_none(self) -> None:
        assert compile_pattern("a" * (MAX_PATTERN_LENGTH + 1)) is None

    @pytest.mark.parametrize(
        ("pattern", "text"),
        [
            (r"@(\w+\.)+example\.com", "a@mail.example.com"),
            (r"^(\d+-){2}\d+$", "555-123-4567"),
            (r"(ab)+", "xxabab"),
            (r"(foo|bar)*baz", "foobarbaz"),
        ],
    )
    def test_repeated_groups_match(self, pattern: str, text: str) -> None:
        assert compile_pattern(pattern) is not None
        assert field_matches(pattern, text)

    def test_search_runs_under_timeout(self) -> None:
        compiled = MagicMock()
        compiled.search.return_value = None

        with patch("inbox_assistant.rules.matcher.compile_pattern", return_value=compiled):
            field_matches("anything", "text")

        assert compiled.search.call_args.kwargs["timeout"] == MATCH_TIMEOUT_SECONDS

    def test_timed_out_search_is_a_non_match(self) -> None:
        compiled = MagicMock()
        compiled.search.side_effect = TimeoutError("regex timed out")

        with patch("inbox_assistant.rules.matcher.compile_pattern", return_value=compiled):
            assert not field_matches(r"(a|aa)+$", "a" * 40 + "!")

    def test_timed_out_pattern_only_disqualifies_its_own_rule(self) -> None:
        slow = MagicMock()
        slow.search.side_effect = TimeoutError("regex timed out")
        real_compile = compile_pattern.__wrapped__

        def fake_compile(pattern: str):
            return slow if pattern == "slow" else real_compile(pattern)

        rules = [_rule("a", subject="slow"), _rule("b", from_="newsletter")]
        with patch("inbox_assistant.rules.matcher.compile_pattern", side_effect=fake_compile):
            assert find_matching_rule(rules, _message()).id == "b"

    def test_compiled_patterns_are_cached(self) -> None:
        compile_pattern.cache_clear()
        first = compile_pattern("newsletter")
        second = compile_pattern("newsletter")

        assert first is second
        assert compile_pattern.cache_info().hits == 1
