"""Sentry SDK initialization with structlog-sentry bridge.

Provides:
- ``init_sentry(dsn)``: Initialize Sentry SDK.  No-op when *dsn* is empty.
- ``drop_known_api_errors``: ``before_send`` hook that discards events for
  expected provider/Gmail failures, including ones raised via log events.
- ``get_sentry_processor()``: Return a structlog processor that forwards
  ERROR-level log events to Sentry.
"""

from __future__ import annotations

import logging
from typing import Any

import sentry_sdk
import structlog
from sentry_sdk.integrations.logging import LoggingIntegration
from structlog_sentry import SentryProcessor

from inbox_assistant.observability.errors import is_known_api_error


def drop_known_api_errors(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """Return ``None`` for events caused by a known API error.

    Args:
        event: The Sentry event about to be sent.
        hint: Sentry hint; carries ``exc_info`` for exception events.

    Returns:
        The unchanged *event*, or ``None`` to drop it.
    """
    exc_info = hint.get("exc_info")
    if exc_info and exc_info[1] is not None and is_known_api_error(exc_info[1]):
        return None
    return event


def init_sentry(dsn: str, environment: str = "development") -> None:
    """Initialize Sentry SDK with the given *dsn*.

    When *dsn* is empty the function returns immediately -- no network calls,
    no SDK initialization.  Safe to call unconditionally at startup.

    Args:
        dsn: Sentry DSN string.  Empty string disables Sentry.
        environment: Environment tag attached to every event.
    """
    if not dsn:
        return

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=0.1,
        send_default_pii=False,
        before_send=drop_known_api_errors,
        integrations=[
            # structlog-sentry owns log capture
            LoggingIntegration(event_level=None, level=None),
        ],
    )


def get_sentry_processor() -> structlog.types.Processor:
    """Return a structlog processor that forwards ERROR events to Sentry.

    Insert this into the structlog processor chain **after** ``add_log_level``
    and **before** the renderer.

    Returns:
        A ``SentryProcessor`` instance configured for ERROR-level capture.
    """
    return SentryProcessor(event_level=logging.ERROR)
