"""MIME email parsing, body selection, and reply text extraction.

Provides helpers for:
- Decoding a raw Gmail message into a ``ParsedMessage``
- Choosing the best body representation for rules and prompts
- Extracting only the latest reply from a multi-message email thread
- Building the ``EmailContext`` passed to rule execution
"""

from __future__ import annotations

import base64
import html
import re
from email import message_from_bytes, policy
from email.message import Message
from typing import Any

from mailparser_reply import EmailReplyParser  # type: ignore[import-untyped]

from inbox_assistant.domain.models import EmailContext, MessageHeaders, ParsedMessage

DEFAULT_CONTENT_MAX_LENGTH = 2000

_HTML_BLOCK_RE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


def _decode_part(part: Message) -> str:
    raw_payload = part.get_payload(decode=True)
    if isinstance(raw_payload, bytes) and raw_payload:
        charset = part.get_content_charset() or "utf-8"
        try:
            return raw_payload.decode(charset, errors="replace")
        except LookupError:
            return raw_payload.decode("utf-8", errors="replace")
    return ""


def split_mime_bodies(raw_bytes: bytes) -> tuple[str | None, str | None]:
    """Return the ``(text/plain, text/html)`` bodies of a raw MIME message.

    For multipart messages the first part of each content type wins.
    Attachments are ignored.

    Args:
        raw_bytes: The raw email bytes (already base64url-decoded).

    Returns:
        A tuple of plain text and HTML bodies; either may be ``None``.
    """
    msg: Message = message_from_bytes(raw_bytes)
    text_plain: str | None = None
    text_html: str | None = None

    parts = msg.walk() if msg.is_multipart() else [msg]
    for part in parts:
        if part.get_content_disposition() == "attachment":
            continue
        content_type = part.get_content_type()
        if content_type == "text/plain" and text_plain is None:
            text_plain = _decode_part(part) or None
        elif content_type == "text/html" and text_html is None:
            text_html = _decode_part(part) or None

    return text_plain, text_html


def parse_raw_message(gmail_message: dict[str, Any]) -> ParsedMessage:
    """Convert a Gmail API ``format="raw"`` message into a ``ParsedMessage``.

    Args:
        gmail_message: The dict returned by ``users.messages.get`` with
            ``format="raw"`` (keys ``id``, ``threadId``, ``raw``,
            ``snippet``, ``labelIds``).

    Returns:
        The parsed, immutable message.
    """
    raw_bytes = base64.urlsafe_b64decode(gmail_message["raw"])
    msg = message_from_bytes(raw_bytes, policy=policy.default)
    text_plain, text_html = split_mime_bodies(raw_bytes)

    def header(name: str) -> str | None:
        value = msg.get(name)
        return str(value) if value is not None else None

    headers = MessageHeaders(
        from_=header("From") or "",
        to=header("To") or "",
        cc=header("Cc"),
        subject=header("Subject") or "",
        date=header("Date") or "",
        message_id=header("Message-ID"),
        references=header("References"),
        reply_to=header("Reply-To"),
    )

    return ParsedMessage(
        id=gmail_message["id"],
        thread_id=gmail_message.get("threadId", ""),
        headers=headers,
        snippet=html.unescape(gmail_message.get("snippet", "")),
        text_plain=text_plain,
        text_html=text_html,
        label_ids=tuple(gmail_message.get("labelIds", [])),
    )


def html_to_text(text_html: str) -> str:
    """Strip tags from an HTML body and normalize whitespace."""
    text = _HTML_BLOCK_RE.sub("", text_html)
    text = re.sub(r"<br\s*/?>|</p>|</div>", "\n", text, flags=re.IGNORECASE)
    text = html.unescape(_HTML_TAG_RE.sub("", text))
    text = _WHITESPACE_RE.sub(" ", text)
    return _BLANK_LINES_RE.sub("\n\n", text).strip()


def extract_latest_reply(full_body: str) -> str:
    """Extract only the latest reply text from an email thread body.

    Uses ``mail-parser-reply`` to strip quoted content, signature blocks,
    and forwarded message headers.  Falls back to ``full_body`` when the
    parser returns nothing (e.g. the whole message looked quoted).

    Args:
        full_body: The full text body of the email.

    Returns:
        The extracted latest reply text, or the original body.
    """
    parsed: str = EmailReplyParser(languages=["en"]).parse_reply(text=full_body)
    if not parsed or not parsed.strip():
        return full_body
    return parsed


def email_to_content(
    text_plain: str | None,
    text_html: str | None,
    snippet: str | None,
    *,
    max_length: int = DEFAULT_CONTENT_MAX_LENGTH,
    extract_reply: bool = False,
) -> str:
    """Pick the best available body representation of an email.

    Preference order: plain text, HTML converted to text, then the Gmail
    snippet.  The result is truncated to *max_length* characters.

    Args:
        text_plain: The ``text/plain`` body, if any.
        text_html: The ``text/html`` body, if any.
        snippet: The Gmail snippet, if any.
        max_length: Maximum length of the returned content.
        extract_reply: Drop quoted history and keep only the latest reply.

    Returns:
        The body text, possibly empty.
    """
    if text_plain and text_plain.strip():
        content = text_plain
    elif text_html and text_html.strip():
        content = html_to_text(text_html)
    else:
        content = snippet or ""

    if extract_reply and content:
        content = extract_latest_reply(content)

    content = content.strip()
    if len(content) > max_length:
        content = content[:max_length]
    return content


def parsed_message_to_email(message: ParsedMessage) -> EmailContext:
    """Build the execution-context email for *message*."""
    headers = message.headers
    return EmailContext(
        from_=headers.from_,
        to=headers.to,
        subject=headers.subject,
        header_message_id=headers.message_id or "",
        message_id=message.id,
        thread_id=message.thread_id,
        snippet=message.snippet,
        text_plain=message.text_plain,
        text_html=message.text_html,
        cc=headers.cc,
        date=headers.date,
        references=headers.references,
        reply_to=headers.reply_to,
        content=email_to_content(message.text_plain, message.text_html, message.snippet),
    )
