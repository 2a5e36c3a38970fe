"""Email domain: Gmail API client, label ids, MIME parsing, and threading."""

from inbox_assistant.email.client import GmailClient
from inbox_assistant.email.models import OutboundEmail
from inbox_assistant.email.parser import (
    email_to_content,
    extract_latest_reply,
    html_to_text,
    parse_raw_message,
    parsed_message_to_email,
)
from inbox_assistant.email.threading import build_forward_body, build_reply_headers

__all__ = [
    "GmailClient",
    "OutboundEmail",
    "build_forward_body",
    "build_reply_headers",
    "email_to_content",
    "extract_latest_reply",
    "html_to_text",
    "parse_raw_message",
    "parsed_message_to_email",
]
