"""Append-only LLM usage accounting."""

from inbox_assistant.usage.models import UsageRecord
from inbox_assistant.usage.store import MODEL_COSTS, UsageStore, estimate_cost, init_usage_table

__all__ = [
    "MODEL_COSTS",
    "UsageRecord",
    "UsageStore",
    "estimate_cost",
    "init_usage_table",
]
