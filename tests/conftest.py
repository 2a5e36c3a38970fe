"""Shared pytest fixtures for the inbox assistant test suite."""

import sqlite3
from collections.abc import Iterator
from unittest.mock import MagicMock

import pytest

from inbox_assistant.config import Settings
from inbox_assistant.domain.models import (
    EmailContext,
    MessageHeaders,
    ParsedMessage,
    UserAIFields,
    UserContext,
)


@pytest.fixture
def sample_message() -> ParsedMessage:
    """A representative newsletter message for testing."""
    return ParsedMessage(
        id="msg_001",
        thread_id="thread_001",
        headers=MessageHeaders(
            from_="Weekly News <newsletter@example.com>",
            to="me@x.com",
            subject="This week in Python",
            date="Mon, 6 Jan 2025 09:00:00 +0000",
            message_id="<news-001@example.com>",
        ),
        snippet="Top stories this week",
        text_plain="Top stories this week\n\nUnsubscribe at any time.",
        label_ids=("INBOX", "UNREAD"),
    )


@pytest.fixture
def sample_email() -> EmailContext:
    """The execution-context email for an invoice message."""
    return EmailContext(
        from_="billing@acme.com",
        to="me@x.com",
        subject="Invoice #1042",
        header_message_id="<inv-1042@acme.com>",
        message_id="msg_002",
        thread_id="thread_002",
        snippet="Your invoice is attached",
        text_plain="Your invoice for January is attached.",
        content="Your invoice for January is attached.",
    )


@pytest.fixture
def sample_user() -> UserContext:
    """A mailbox owner with a personal Anthropic key."""
    return UserContext(
        id="me",
        email="me@x.com",
        about="I run a small design studio.",
        ai=UserAIFields(ai_provider="anthropic", ai_api_key="sk-ant-test"),
    )


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any ``.env`` file."""
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def db_conn() -> Iterator[sqlite3.Connection]:
    """An in-memory SQLite connection."""
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    yield conn
    conn.close()


@pytest.fixture
def gmail() -> MagicMock:
    """A mock ``GmailClient``."""
    client = MagicMock()
    client.get_or_create_label.return_value = "Label_1"
    return client


@pytest.fixture
def anyio_backend() -> str:
    """The code under test uses asyncio APIs, so run async tests on asyncio."""
    return "asyncio"
