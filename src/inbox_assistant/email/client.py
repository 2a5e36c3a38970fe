"""Gmail API client wrapper for thread mutations, sending, and drafts.

Provides the ``GmailClient`` class that encapsulates every Gmail API
operation the action executor needs: label changes through
``users.threads.modify``, label lookup/creation, composing and sending
messages, threaded replies, forwards, drafts, and fetching a message as a
``ParsedMessage``.

All methods are synchronous; async callers wrap them in ``asyncio.to_thread``.
"""

from __future__ import annotations

import base64
from email.message import EmailMessage
from typing import Any

from inbox_assistant.domain.models import EmailContext, ParsedMessage
from inbox_assistant.email import labels
from inbox_assistant.email.models import OutboundEmail
from inbox_assistant.email.parser import parse_raw_message
from inbox_assistant.email.threading import (
    build_forward_body,
    build_reply_headers,
    forward_subject,
)


class GmailClient:
    """Wrapper around the Gmail API service for mailbox operations.

    All methods operate through the provided Gmail API service resource
    (obtained via ``get_gmail_service``).  No real network calls are made
    by this class directly -- the service object handles transport.

    Args:
        service: An authenticated Gmail API v1 service resource.
        from_email: The email address to use as the ``From`` header.
    """

    def __init__(self, service: Any, from_email: str) -> None:
        self._service = service
        self._from_email = from_email
        self._label_ids: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Thread labels
    # ------------------------------------------------------------------

    def modify_thread(
        self,
        thread_id: str,
        add_label_ids: list[str] | None = None,
        remove_label_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        """Add and/or remove labels on every message of a thread.

        Adding a label the thread already has (or removing one it lacks) is
        a no-op on Gmail's side.

        Args:
            thread_id: The Gmail thread ID.
            add_label_ids: Label IDs to add.
            remove_label_ids: Label IDs to remove.

        Returns:
            The Gmail API response dict for the modified thread.
        """
        body: dict[str, list[str]] = {}
        if add_label_ids:
            body["addLabelIds"] = add_label_ids
        if remove_label_ids:
            body["removeLabelIds"] = remove_label_ids

        result: dict[str, Any] = (
            self._service.users()
            .threads()
            .modify(userId="me", id=thread_id, body=body)
            .execute()
        )
        return result

    def label_thread(self, thread_id: str, label_id: str) -> dict[str, Any]:
        return self.modify_thread(thread_id, add_label_ids=[label_id])

    def archive_thread(self, thread_id: str) -> dict[str, Any]:
        return self.modify_thread(thread_id, remove_label_ids=[labels.INBOX])

    def mark_read(self, thread_id: str) -> dict[str, Any]:
        return self.modify_thread(thread_id, remove_label_ids=[labels.UNREAD])

    def mark_unread(self, thread_id: str) -> dict[str, Any]:
        return self.modify_thread(thread_id, add_label_ids=[labels.UNREAD])

    def mark_spam(self, thread_id: str) -> dict[str, Any]:
        return self.modify_thread(
            thread_id,
            add_label_ids=[labels.SPAM],
            remove_label_ids=[labels.INBOX],
        )

    # ------------------------------------------------------------------
    # Label lookup
    # ------------------------------------------------------------------

    def list_labels(self) -> list[dict[str, Any]]:
        response: dict[str, Any] = self._service.users().labels().list(userId="me").execute()
        return list(response.get("labels", []))

    def get_or_create_label(self, name: str) -> str:
        """Return the ID of the label called *name*, creating it if needed.

        System labels (``INBOX``, ``UNREAD``, ...) are returned as-is.
        Name comparison is case-insensitive.  Resolved IDs are cached on the
        client instance.

        Args:
            name: The label's display name.

        Returns:
            The Gmail label ID.
        """
        if name.upper() in labels.SYSTEM_LABELS:
            return name.upper()

        key = name.strip().lower()
        if key in self._label_ids:
            return self._label_ids[key]

        for label in self.list_labels():
            if label.get("name", "").lower() == key:
                self._label_ids[key] = label["id"]
                return str(label["id"])

        created: dict[str, Any] = (
            self._service.users()
            .labels()
            .create(
                userId="me",
                body={
                    "name": name.strip(),
                    "labelListVisibility": "labelShow",
                    "messageListVisibility": "show",
                },
            )
            .execute()
        )
        self._label_ids[key] = created["id"]
        return str(created["id"])

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def _encode(self, outbound: OutboundEmail) -> dict[str, Any]:
        message = EmailMessage()
        message.set_content(outbound.body)
        message["To"] = outbound.to
        message["From"] = self._from_email
        message["Subject"] = outbound.subject
        if outbound.cc:
            message["Cc"] = outbound.cc
        if outbound.bcc:
            message["Bcc"] = outbound.bcc
        if outbound.in_reply_to:
            message["In-Reply-To"] = outbound.in_reply_to
        if outbound.references:
            message["References"] = outbound.references

        encoded = base64.urlsafe_b64encode(message.as_bytes()).decode()
        payload: dict[str, Any] = {"raw": encoded}
        if outbound.thread_id:
            payload["threadId"] = outbound.thread_id
        return payload

    def send(self, outbound: OutboundEmail) -> dict[str, Any]:
        """Compose and send an email via ``users.messages.send``.

        Args:
            outbound: The email to send.

        Returns:
            The Gmail API response dict (contains ``id``, ``threadId``,
            ``labelIds``).
        """
        result: dict[str, Any] = (
            self._service.users()
            .messages()
            .send(userId="me", body=self._encode(outbound))
            .execute()
        )
        return result

    def _reply_outbound(
        self,
        email: EmailContext,
        content: str,
        cc: str | None = None,
        bcc: str | None = None,
        to: str | None = None,
        subject: str | None = None,
    ) -> OutboundEmail:
        headers = build_reply_headers(email)
        return OutboundEmail(
            to=to or headers["To"],
            subject=subject or headers["Subject"],
            body=content,
            cc=cc,
            bcc=bcc,
            thread_id=email.thread_id,
            in_reply_to=headers.get("In-Reply-To"),
            references=headers.get("References"),
        )

    def reply_to_email(
        self,
        email: EmailContext,
        content: str,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> dict[str, Any]:
        """Send *content* as a threaded reply to *email*."""
        return self.send(self._reply_outbound(email, content, cc=cc, bcc=bcc))

    def forward_email(
        self,
        email: EmailContext,
        to: str,
        content: str | None = None,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> dict[str, Any]:
        """Forward *email* to *to*, with optional leading *content*."""
        outbound = OutboundEmail(
            to=to,
            subject=forward_subject(email.subject),
            body=build_forward_body(email, content),
            cc=cc,
            bcc=bcc,
        )
        return self.send(outbound)

    def draft_email(
        self,
        email: EmailContext,
        content: str,
        subject: str | None = None,
        to: str | None = None,
        cc: str | None = None,
        bcc: str | None = None,
    ) -> dict[str, Any]:
        """Save a threaded reply to *email* as a draft without sending it.

        Returns:
            The Gmail API response dict for the created draft.
        """
        outbound = self._reply_outbound(email, content, cc=cc, bcc=bcc, to=to, subject=subject)
        result: dict[str, Any] = (
            self._service.users()
            .drafts()
            .create(userId="me", body={"message": self._encode(outbound)})
            .execute()
        )
        return result

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def get_message(self, message_id: str) -> ParsedMessage:
        """Fetch a single Gmail message and parse it into a ``ParsedMessage``.

        Args:
            message_id: The Gmail message ID to fetch.

        Returns:
            The parsed message with headers and both body variants.
        """
        msg: dict[str, Any] = (
            self._service.users().messages().get(userId="me", id=message_id, format="raw").execute()
        )
        return parse_raw_message(msg)
