"""Pydantic v2 models for outbound Gmail messages."""

from pydantic import BaseModel, ConfigDict


class OutboundEmail(BaseModel):
    """An email to be sent or saved as a draft.

    When ``thread_id``, ``in_reply_to``, and ``references`` are provided,
    the email is threaded as a reply.  Otherwise it starts a new
    conversation.
    """

    model_config = ConfigDict(frozen=True)

    to: str
    subject: str
    body: str
    cc: str | None = None
    bcc: str | None = None
    thread_id: str | None = None
    in_reply_to: str | None = None  # RFC 2822 Message-ID to reply to
    references: str | None = None  # Space-separated RFC 2822 Message-IDs
