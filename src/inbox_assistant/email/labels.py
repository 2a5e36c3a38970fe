"""Gmail system label identifiers used by the action handlers."""

INBOX = "INBOX"
UNREAD = "UNREAD"
SPAM = "SPAM"
STARRED = "STARRED"
IMPORTANT = "IMPORTANT"
TRASH = "TRASH"
DRAFT = "DRAFT"
SENT = "SENT"

SYSTEM_LABELS: frozenset[str] = frozenset(
    {INBOX, UNREAD, SPAM, STARRED, IMPORTANT, TRASH, DRAFT, SENT}
)
