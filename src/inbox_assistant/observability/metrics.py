"""Prometheus metrics instrumentation for the inbox assistant.

Provides:
- ``setup_metrics(app)``: Attach prometheus-fastapi-instrumentator to a FastAPI app,
  exposing ``/metrics`` with HTTP request duration/count plus the counters below.
- ``RULES_MATCHED``: Counter of messages handled by a static rule.
- ``ACTIONS_EXECUTED``: Counter of action items by type and outcome.
- ``LLM_CALLS`` / ``LLM_TOKENS``: Counters of gateway calls and token usage.

Counters are updated where the event happens, never by polling storage.
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

RULES_MATCHED: Counter = Counter(
    "assistant_rules_matched_total",
    "Messages for which a static rule matched",
    ["mode"],
)

ACTIONS_EXECUTED: Counter = Counter(
    "assistant_actions_executed_total",
    "Action items processed by the executor",
    ["action_type", "outcome"],
)

LLM_CALLS: Counter = Counter(
    "assistant_llm_calls_total",
    "LLM gateway calls by provider, call shape and result",
    ["provider", "shape", "result"],
)

LLM_TOKENS: Counter = Counter(
    "assistant_llm_tokens_total",
    "Tokens consumed by successful LLM calls",
    ["provider", "model"],
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
