"""User-visible error notifications."""

from inbox_assistant.notifications.store import UserErrorStore, init_user_error_table

__all__ = ["UserErrorStore", "init_user_error_table"]
