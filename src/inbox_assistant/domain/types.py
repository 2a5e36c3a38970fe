"""Domain enumerations for rules, actions, and planned executions."""

from enum import StrEnum


class ActionType(StrEnum):
    """Gmail operations a rule can request."""

    ARCHIVE = "ARCHIVE"
    LABEL = "LABEL"
    REPLY = "REPLY"
    SEND_EMAIL = "SEND_EMAIL"
    FORWARD = "FORWARD"
    DRAFT_EMAIL = "DRAFT_EMAIL"
    MARK_SPAM = "MARK_SPAM"
    MARK_READ = "MARK_READ"
    MARK_UNREAD = "MARK_UNREAD"


class ActionField(StrEnum):
    """Argument fields an action template may carry."""

    LABEL = "label"
    SUBJECT = "subject"
    CONTENT = "content"
    TO = "to"
    CC = "cc"
    BCC = "bcc"


# Which argument fields each action type actually uses.
ACTION_FIELDS: dict[ActionType, tuple[ActionField, ...]] = {
    ActionType.ARCHIVE: (),
    ActionType.LABEL: (ActionField.LABEL,),
    ActionType.REPLY: (ActionField.CONTENT, ActionField.CC, ActionField.BCC),
    ActionType.SEND_EMAIL: (
        ActionField.SUBJECT,
        ActionField.CONTENT,
        ActionField.TO,
        ActionField.CC,
        ActionField.BCC,
    ),
    ActionType.FORWARD: (
        ActionField.CONTENT,
        ActionField.TO,
        ActionField.CC,
        ActionField.BCC,
    ),
    ActionType.DRAFT_EMAIL: (
        ActionField.SUBJECT,
        ActionField.CONTENT,
        ActionField.TO,
        ActionField.CC,
        ActionField.BCC,
    ),
    ActionType.MARK_SPAM: (),
    ActionType.MARK_READ: (),
    ActionType.MARK_UNREAD: (),
}


class PlanStatus(StrEnum):
    """Lifecycle of an executed (or awaiting approval) rule."""

    PENDING = "pending"
    APPLIED = "applied"
    REJECTED = "rejected"
    FAILED = "failed"


class ActionOutcomeStatus(StrEnum):
    """Result of a single action item within one execution."""

    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"
