"""Tests for the GmailClient Gmail API wrapper."""

from __future__ import annotations

import base64
from email import message_from_bytes
from email.message import EmailMessage, Message
from typing import Any
from unittest.mock import MagicMock

from inbox_assistant.domain.models import EmailContext
from inbox_assistant.email.client import GmailClient
from inbox_assistant.email.models import OutboundEmail

FROM_EMAIL = "me@x.com"
THREAD_ID = "thread_xyz789"
MESSAGE_ID_HEADER = "<msg789@mail.gmail.com>"


def _make_client(service: MagicMock | None = None) -> tuple[GmailClient, MagicMock]:
    service = service or MagicMock()
    return GmailClient(service=service, from_email=FROM_EMAIL), service


def _email(**overrides: Any) -> EmailContext:
    defaults: dict[str, Any] = {
        "from_": "Ana <ana@example.com>",
        "to": FROM_EMAIL,
        "subject": "Project kickoff",
        "header_message_id": MESSAGE_ID_HEADER,
        "message_id": "msg_1",
        "thread_id": THREAD_ID,
        "text_plain": "Can we meet Tuesday?",
        "content": "Can we meet Tuesday?",
        "date": "Tue, 7 Jan 2025 10:00:00 +0000",
    }
    defaults.update(overrides)
    return EmailContext(**defaults)


def _decode(payload: dict[str, Any]) -> Message:
    return message_from_bytes(base64.urlsafe_b64decode(payload["raw"]))


def _sent_payload(service: MagicMock) -> dict[str, Any]:
    return service.users().messages().send.call_args.kwargs["body"]


def _modify_body(service: MagicMock) -> dict[str, Any]:
    call = service.users().threads().modify.call_args
    assert call.kwargs["id"] == THREAD_ID
    return call.kwargs["body"]


class TestThreadLabels:
    def test_label_thread_adds_label(self) -> None:
        client, service = _make_client()
        client.label_thread(THREAD_ID, "Label_7")
        assert _modify_body(service) == {"addLabelIds": ["Label_7"]}

    def test_archive_removes_inbox(self) -> None:
        client, service = _make_client()
        client.archive_thread(THREAD_ID)
        assert _modify_body(service) == {"removeLabelIds": ["INBOX"]}

    def test_mark_read_and_unread(self) -> None:
        client, service = _make_client()
        client.mark_read(THREAD_ID)
        assert _modify_body(service) == {"removeLabelIds": ["UNREAD"]}
        client.mark_unread(THREAD_ID)
        assert _modify_body(service) == {"addLabelIds": ["UNREAD"]}

    def test_mark_spam_moves_out_of_inbox(self) -> None:
        client, service = _make_client()
        client.mark_spam(THREAD_ID)
        assert _modify_body(service) == {"addLabelIds": ["SPAM"], "removeLabelIds": ["INBOX"]}


class TestGetOrCreateLabel:
    def test_system_label_returned_as_is(self) -> None:
        client, service = _make_client()
        assert client.get_or_create_label("inbox") == "INBOX"
        service.users().labels().list.assert_not_called()

    def test_existing_label_matched_case_insensitively_and_cached(self) -> None:
        client, service = _make_client()
        service.users().labels().list().execute.return_value = {
            "labels": [{"id": "Label_3", "name": "Acme"}]
        }

        assert client.get_or_create_label("acme") == "Label_3"
        assert client.get_or_create_label("ACME") == "Label_3"
        assert service.users().labels().list().execute.call_count == 1
        service.users().labels().create.assert_not_called()

    def test_missing_label_is_created(self) -> None:
        client, service = _make_client()
        service.users().labels().list().execute.return_value = {"labels": []}
        service.users().labels().create().execute.return_value = {"id": "Label_9", "name": "Invoices"}

        assert client.get_or_create_label(" Invoices ") == "Label_9"
        assert service.users().labels().create.call_args.kwargs["body"]["name"] == "Invoices"


class TestSending:
    def test_send_encodes_headers(self) -> None:
        client, service = _make_client()

        client.send(OutboundEmail(to="bob@x.com", subject="Hi", body="Hello", cc="c@x.com", bcc="b@x.com"))

        message = _decode(_sent_payload(service))
        assert message["From"] == FROM_EMAIL
        assert message["To"] == "bob@x.com"
        assert message["Cc"] == "c@x.com"
        assert message["Bcc"] == "b@x.com"
        assert "threadId" not in _sent_payload(service)

    def test_reply_is_threaded(self) -> None:
        client, service = _make_client()

        client.reply_to_email(_email(references="<root@x.com>"), "Tuesday works.")

        payload = _sent_payload(service)
        message = _decode(payload)
        assert payload["threadId"] == THREAD_ID
        assert message["To"] == "Ana <ana@example.com>"
        assert message["Subject"] == "Re: Project kickoff"
        assert message["In-Reply-To"] == MESSAGE_ID_HEADER
        assert message["References"] == f"<root@x.com> {MESSAGE_ID_HEADER}"
        assert "Tuesday works." in message.get_payload(decode=True).decode()

    def test_reply_uses_reply_to_when_present(self) -> None:
        client, service = _make_client()

        client.reply_to_email(_email(reply_to="team@example.com"), "ok")

        assert _decode(_sent_payload(service))["To"] == "team@example.com"

    def test_forward_quotes_original(self) -> None:
        client, service = _make_client()

        client.forward_email(_email(), "ops@x.com", content="FYI")

        message = _decode(_sent_payload(service))
        body = message.get_payload(decode=True).decode()
        assert message["To"] == "ops@x.com"
        assert message["Subject"] == "Fwd: Project kickoff"
        assert body.startswith("FYI")
        assert "---------- Forwarded message ---------" in body
        assert "Can we meet Tuesday?" in body

    def test_draft_creates_threaded_draft(self) -> None:
        client, service = _make_client()

        client.draft_email(_email(), "Draft reply", subject="Custom subject")

        body = service.users().drafts().create.call_args.kwargs["body"]
        message = _decode(body["message"])
        assert body["message"]["threadId"] == THREAD_ID
        assert message["Subject"] == "Custom subject"
        service.users().messages().send.assert_not_called()


class TestGetMessage:
    def test_fetches_raw_and_parses(self) -> None:
        mime = EmailMessage()
        mime.set_content("Hello there")
        mime["From"] = "ana@example.com"
        mime["To"] = FROM_EMAIL
        mime["Subject"] = "Hi"
        mime["Message-ID"] = MESSAGE_ID_HEADER
        client, service = _make_client()
        service.users().messages().get().execute.return_value = {
            "id": "msg_1",
            "threadId": THREAD_ID,
            "raw": base64.urlsafe_b64encode(mime.as_bytes()).decode(),
            "snippet": "Hello there",
            "labelIds": ["INBOX"],
        }

        message = client.get_message("msg_1")

        assert service.users().messages().get.call_args.kwargs == {
            "userId": "me",
            "id": "msg_1",
            "format": "raw",
        }
        assert message.thread_id == THREAD_ID
        assert message.headers.message_id == MESSAGE_ID_HEADER
        assert message.text_plain is not None
        assert message.text_plain.strip() == "Hello there"
