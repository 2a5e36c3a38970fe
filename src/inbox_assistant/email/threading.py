"""Reply and forward header construction for threaded Gmail messages.

Provides helpers for:
- Building RFC 2822 reply headers from the email being answered
- Building the subject and quoted body of a forwarded message
"""

from __future__ import annotations

from inbox_assistant.domain.models import EmailContext


def reply_subject(subject: str) -> str:
    """Prefix *subject* with ``Re: `` unless it already has it (case-insensitive)."""
    if subject.lower().startswith("re:"):
        return subject
    return f"Re: {subject}"


def forward_subject(subject: str) -> str:
    """Prefix *subject* with ``Fwd: `` unless it already has a forward prefix."""
    if subject.lower().startswith(("fwd:", "fw:")):
        return subject
    return f"Fwd: {subject}"


def build_reply_headers(email: EmailContext) -> dict[str, str]:
    """Build RFC 2822 reply headers for answering *email*.

    ``References`` extends the original chain with the answered message's
    ``Message-ID``.  Replies go to ``Reply-To`` when present, else ``From``.

    Args:
        email: The email being replied to.

    Returns:
        A dict of header names to values suitable for setting on an
        ``email.message.EmailMessage``.
    """
    headers = {
        "To": email.reply_to or email.from_,
        "Subject": reply_subject(email.subject),
    }
    if email.header_message_id:
        headers["In-Reply-To"] = email.header_message_id
        chain = f"{email.references} {email.header_message_id}" if email.references else email.header_message_id
        headers["References"] = chain.strip()
    return headers


def build_forward_body(email: EmailContext, content: str | None) -> str:
    """Return *content* followed by the quoted forwarded message."""
    quoted = "\n".join(
        [
            "---------- Forwarded message ---------",
            f"From: {email.from_}",
            f"Date: {email.date or ''}",
            f"Subject: {email.subject}",
            f"To: {email.to}",
            "",
            email.text_plain or email.content or email.snippet,
        ]
    )
    if content:
        return f"{content}\n\n{quoted}"
    return quoted
