"""Planned executions awaiting the owner's approval."""

from inbox_assistant.planned.controller import (
    ExecutePlanBody,
    PlanArgs,
    build_plan_items,
    execute_plan,
    reject_plan,
)

__all__ = ["ExecutePlanBody", "PlanArgs", "build_plan_items", "execute_plan", "reject_plan"]
