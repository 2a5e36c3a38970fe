"""State persistence package.

Provides SQLite-backed storage for planned executions and per-user AI
settings.
"""

from inbox_assistant.state.models import PlannedExecution
from inbox_assistant.state.schema import (
    init_ai_settings_table,
    init_planned_execution_table,
    open_database,
)
from inbox_assistant.state.store import AISettingsStore, PlanStore

__all__ = [
    "AISettingsStore",
    "PlanStore",
    "PlannedExecution",
    "init_ai_settings_table",
    "init_planned_execution_table",
    "open_database",
]
