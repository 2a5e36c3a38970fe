"""Tests for approving and rejecting planned executions."""

from __future__ import annotations

import sqlite3
from unittest.mock import patch

import pytest

from inbox_assistant.domain.errors import PlanNotFoundError, ResolutionError, SafeError
from inbox_assistant.domain.models import AI_GENERATED, Action, ActionItem, EmailContext, UserContext
from inbox_assistant.domain.types import ActionType, PlanStatus
from inbox_assistant.planned.controller import (
    ExecutePlanBody,
    PlanArgs,
    build_plan_items,
    execute_plan,
    reject_plan,
)
from inbox_assistant.state.schema import init_planned_execution_table
from inbox_assistant.state.store import PlanStore


@pytest.fixture
def plan_store(db_conn: sqlite3.Connection) -> PlanStore:
    init_planned_execution_table(db_conn)
    return PlanStore(db_conn)


def _pending(plan_store: PlanStore, email: EmailContext, user_email: str = "me@x.com") -> str:
    return plan_store.save(
        rule_id="support",
        user_email=user_email,
        email=email,
        actions=[ActionItem(type=ActionType.DRAFT_EMAIL, content="Draft")],
        status=PlanStatus.PENDING,
    )


def _body(email: EmailContext, *actions: Action, **args: str) -> ExecutePlanBody:
    return ExecutePlanBody(email=email, actions=list(actions), args=PlanArgs(**args), rule_id="support")


class TestBuildPlanItems:
    def test_override_wins_over_template(self, sample_email: EmailContext) -> None:
        body = _body(
            sample_email,
            Action(type=ActionType.REPLY, content=AI_GENERATED, cc="boss@x.com"),
            content="Edited reply",
        )

        items = build_plan_items(body)

        assert items == [ActionItem(type=ActionType.REPLY, content="Edited reply", cc="boss@x.com")]

    def test_unresolved_marker_raises(self, sample_email: EmailContext) -> None:
        body = _body(sample_email, Action(type=ActionType.LABEL, label=AI_GENERATED))

        with pytest.raises(ResolutionError):
            build_plan_items(body)

    def test_marker_on_unused_field_is_dropped(self, sample_email: EmailContext) -> None:
        body = _body(sample_email, Action(type=ActionType.ARCHIVE, content=AI_GENERATED))

        assert build_plan_items(body) == [ActionItem(type=ActionType.ARCHIVE)]


class TestExecutePlan:
    @pytest.mark.anyio()
    async def test_approval_executes_and_marks_applied(
        self, plan_store: PlanStore, sample_email: EmailContext, sample_user: UserContext, gmail
    ) -> None:
        plan_id = _pending(plan_store, sample_email)
        body = _body(
            sample_email,
            Action(type=ActionType.DRAFT_EMAIL, content=AI_GENERATED),
            Action(type=ActionType.LABEL, label="Support"),
            content="We are on it.",
        )

        result = await execute_plan(body, plan_id, sample_user, gmail, plan_store)

        assert result.plan_id == plan_id
        assert result.succeeded is True
        gmail.draft_email.assert_called_once()
        assert gmail.draft_email.call_args.args[1] == "We are on it."
        gmail.label_thread.assert_called_once_with("thread_002", "Label_1")
        plan = plan_store.get(plan_id)
        assert plan is not None
        assert plan.status == PlanStatus.APPLIED

    @pytest.mark.anyio()
    async def test_failed_action_marks_plan_failed(
        self, plan_store: PlanStore, sample_email: EmailContext, sample_user: UserContext, gmail
    ) -> None:
        gmail.archive_thread.side_effect = RuntimeError("gone")
        plan_id = _pending(plan_store, sample_email)

        with patch("inbox_assistant.actions.executor.capture_exception"):
            result = await execute_plan(
                _body(sample_email, Action(type=ActionType.ARCHIVE)), plan_id, sample_user, gmail, plan_store
            )

        assert result.succeeded is False
        plan = plan_store.get(plan_id)
        assert plan is not None
        assert plan.status == PlanStatus.FAILED
        assert plan.reason == "ARCHIVE: gone"

    @pytest.mark.anyio()
    async def test_unknown_plan_raises(
        self, plan_store: PlanStore, sample_email: EmailContext, sample_user: UserContext, gmail
    ) -> None:
        with pytest.raises(PlanNotFoundError):
            await execute_plan(
                _body(sample_email, Action(type=ActionType.ARCHIVE)), "missing", sample_user, gmail, plan_store
            )

    @pytest.mark.anyio()
    async def test_other_users_plan_is_not_found(
        self, plan_store: PlanStore, sample_email: EmailContext, sample_user: UserContext, gmail
    ) -> None:
        plan_id = _pending(plan_store, sample_email, user_email="other@x.com")

        with pytest.raises(PlanNotFoundError):
            await execute_plan(
                _body(sample_email, Action(type=ActionType.ARCHIVE)), plan_id, sample_user, gmail, plan_store
            )
        gmail.archive_thread.assert_not_called()

    @pytest.mark.anyio()
    async def test_applied_plan_cannot_run_again(
        self, plan_store: PlanStore, sample_email: EmailContext, sample_user: UserContext, gmail
    ) -> None:
        plan_id = _pending(plan_store, sample_email)
        plan_store.update_status(plan_id, PlanStatus.APPLIED)

        with pytest.raises(SafeError, match="already applied"):
            await execute_plan(
                _body(sample_email, Action(type=ActionType.ARCHIVE)), plan_id, sample_user, gmail, plan_store
            )

    @pytest.mark.anyio()
    async def test_different_rule_is_rejected(
        self, plan_store: PlanStore, sample_email: EmailContext, sample_user: UserContext, gmail
    ) -> None:
        plan_id = _pending(plan_store, sample_email)
        body = _body(sample_email, Action(type=ActionType.ARCHIVE)).model_copy(update={"rule_id": "newsletters"})

        with pytest.raises(SafeError, match="does not match"):
            await execute_plan(body, plan_id, sample_user, gmail, plan_store)
        gmail.archive_thread.assert_not_called()
        plan = plan_store.get(plan_id)
        assert plan is not None
        assert plan.status == PlanStatus.PENDING

    @pytest.mark.anyio()
    async def test_different_thread_is_rejected(
        self, plan_store: PlanStore, sample_email: EmailContext, sample_user: UserContext, gmail
    ) -> None:
        plan_id = _pending(plan_store, sample_email)
        other_thread = sample_email.model_copy(update={"thread_id": "thread_999"})

        with pytest.raises(SafeError, match="does not match"):
            await execute_plan(
                _body(other_thread, Action(type=ActionType.ARCHIVE)), plan_id, sample_user, gmail, plan_store
            )
        gmail.archive_thread.assert_not_called()


class TestRejectPlan:
    def test_reject_pending(
        self, plan_store: PlanStore, sample_email: EmailContext, sample_user: UserContext
    ) -> None:
        plan_id = _pending(plan_store, sample_email)

        reject_plan(plan_id, sample_user, plan_store)

        plan = plan_store.get(plan_id)
        assert plan is not None
        assert plan.status == PlanStatus.REJECTED

    def test_reject_twice_raises(
        self, plan_store: PlanStore, sample_email: EmailContext, sample_user: UserContext
    ) -> None:
        plan_id = _pending(plan_store, sample_email)
        reject_plan(plan_id, sample_user, plan_store)

        with pytest.raises(SafeError):
            reject_plan(plan_id, sample_user, plan_store)
