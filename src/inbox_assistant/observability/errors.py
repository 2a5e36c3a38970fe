"""Classification of provider and Gmail API failures.

Providers do not expose stable typed error codes for every failure, so
classification is structural: it matches known substrings in provider error
messages and Gmail ``reason`` codes.  Classified errors are expected,
user-caused conditions (bad key, exhausted quota, rate limits) and are kept
out of Sentry; everything else is reported with full context.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any

import anthropic
import sentry_sdk
import structlog
from googleapiclient.errors import HttpError

from inbox_assistant.domain.errors import ProviderAPIError

logger = structlog.get_logger()


class ErrorKind(StrEnum):
    """Normalized failure categories."""

    PROVIDER_QUOTA = "provider_quota"
    PROVIDER_RATE_LIMIT = "provider_rate_limit"
    PROVIDER_INVALID_KEY = "provider_invalid_key"
    PROVIDER_INVALID_MODEL = "provider_invalid_model"
    PROVIDER_INSUFFICIENT_BALANCE = "provider_insufficient_balance"
    GMAIL_PERMISSION = "gmail_permission"
    GMAIL_RATE_LIMIT = "gmail_rate_limit"
    GMAIL_QUOTA = "gmail_quota"


class ErrorType(StrEnum):
    """Specific known failures, as shown to the user in error banners."""

    INCORRECT_OPENAI_API_KEY = "Incorrect OpenAI API key"
    INVALID_OPENAI_MODEL = "Invalid OpenAI model"
    OPENAI_API_KEY_DEACTIVATED = "OpenAI API key deactivated"
    OPENAI_QUOTA_EXCEEDED = "OpenAI quota exceeded"
    ANTHROPIC_INSUFFICIENT_BALANCE = "Anthropic insufficient balance"
    OLLAMA_INVALID_API_KEY = "Ollama invalid API key"
    OLLAMA_RATE_LIMIT = "Ollama rate limit"
    OLLAMA_QUOTA_EXCEEDED = "Ollama quota exceeded"
    GMAIL_INSUFFICIENT_PERMISSIONS = "Gmail insufficient permissions"
    GMAIL_RATE_LIMIT_EXCEEDED = "Gmail rate limit exceeded"
    GMAIL_QUOTA_EXCEEDED = "Gmail quota exceeded"

    @property
    def kind(self) -> ErrorKind:
        return _ERROR_KINDS[self]


_ERROR_KINDS: dict[ErrorType, ErrorKind] = {
    ErrorType.INCORRECT_OPENAI_API_KEY: ErrorKind.PROVIDER_INVALID_KEY,
    ErrorType.INVALID_OPENAI_MODEL: ErrorKind.PROVIDER_INVALID_MODEL,
    ErrorType.OPENAI_API_KEY_DEACTIVATED: ErrorKind.PROVIDER_INVALID_KEY,
    ErrorType.OPENAI_QUOTA_EXCEEDED: ErrorKind.PROVIDER_QUOTA,
    ErrorType.ANTHROPIC_INSUFFICIENT_BALANCE: ErrorKind.PROVIDER_INSUFFICIENT_BALANCE,
    ErrorType.OLLAMA_INVALID_API_KEY: ErrorKind.PROVIDER_INVALID_KEY,
    ErrorType.OLLAMA_RATE_LIMIT: ErrorKind.PROVIDER_RATE_LIMIT,
    ErrorType.OLLAMA_QUOTA_EXCEEDED: ErrorKind.PROVIDER_QUOTA,
    ErrorType.GMAIL_INSUFFICIENT_PERMISSIONS: ErrorKind.GMAIL_PERMISSION,
    ErrorType.GMAIL_RATE_LIMIT_EXCEEDED: ErrorKind.GMAIL_RATE_LIMIT,
    ErrorType.GMAIL_QUOTA_EXCEEDED: ErrorKind.GMAIL_QUOTA,
}


# ---------------------------------------------------------------------------
# Gmail
# ---------------------------------------------------------------------------


def _gmail_reasons(error: BaseException) -> list[str]:
    """Return every ``reason`` a Gmail API error carries.

    Gmail puts the legacy reason (``insufficientPermissions``) under
    ``error.errors`` and may add a ``google.rpc.ErrorInfo`` reason
    (``ACCESS_TOKEN_SCOPE_INSUFFICIENT``) under ``error.details``.  The
    legacy reasons come first.
    """
    entries: list[Any] = []
    if isinstance(error, HttpError):
        try:
            payload = json.loads(error.content)
        except (TypeError, ValueError):
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            entries.extend(payload["error"].get("errors") or [])
        details = getattr(error, "error_details", None)
        if isinstance(details, list):
            entries.extend(details)
    else:
        errors = getattr(error, "errors", None)
        if isinstance(errors, list):
            entries.extend(errors)
    return [str(e["reason"]) for e in entries if isinstance(e, dict) and e.get("reason")]


def is_gmail_insufficient_permissions_error(error: BaseException) -> bool:
    return "insufficientPermissions" in _gmail_reasons(error)


def is_gmail_rate_limit_exceeded_error(error: BaseException) -> bool:
    return "rateLimitExceeded" in _gmail_reasons(error)


def is_gmail_quota_exceeded_error(error: BaseException) -> bool:
    return "quotaExceeded" in _gmail_reasons(error)


# ---------------------------------------------------------------------------
# LLM providers
# ---------------------------------------------------------------------------


def _is_api_call_error(error: BaseException) -> bool:
    return isinstance(error, (ProviderAPIError, anthropic.APIError))


def _message(error: BaseException) -> str:
    return str(getattr(error, "message", None) or error)


def is_openai_quota_exceeded_error(error: BaseException) -> bool:
    """OpenAI quota errors are about the user's own key, not our credentials."""
    if getattr(error, "code", None) == "insufficient_quota":
        return True
    return _is_api_call_error(error) and "You exceeded your current quota" in _message(error)


def is_incorrect_openai_api_key_error(error: BaseException) -> bool:
    return "Incorrect API key provided" in _message(error)


def is_invalid_openai_model_error(error: BaseException) -> bool:
    return "does not exist or you do not have access to it" in _message(error)


def is_openai_api_key_deactivated_error(error: BaseException) -> bool:
    return "this API key has been deactivated" in _message(error)


def is_anthropic_insufficient_balance_error(error: BaseException) -> bool:
    return "Your credit balance is too low to access the Anthropic API" in _message(error)


def is_ollama_invalid_api_key_error(error: BaseException) -> bool:
    message = _message(error)
    return "Invalid API key" in message or "Authentication failed" in message


def is_ollama_rate_limit_error(error: BaseException) -> bool:
    message = _message(error)
    return "Rate limit exceeded" in message or "Too many requests" in message


def is_ollama_quota_exceeded_error(error: BaseException) -> bool:
    message = _message(error)
    return "Quota exceeded" in message or "Usage limit exceeded" in message


# Message-based checks only apply to provider call errors.
_API_CALL_CHECKS: tuple[tuple[Any, ErrorType], ...] = (
    (is_incorrect_openai_api_key_error, ErrorType.INCORRECT_OPENAI_API_KEY),
    (is_invalid_openai_model_error, ErrorType.INVALID_OPENAI_MODEL),
    (is_openai_api_key_deactivated_error, ErrorType.OPENAI_API_KEY_DEACTIVATED),
    (is_anthropic_insufficient_balance_error, ErrorType.ANTHROPIC_INSUFFICIENT_BALANCE),
    (is_ollama_invalid_api_key_error, ErrorType.OLLAMA_INVALID_API_KEY),
    (is_ollama_rate_limit_error, ErrorType.OLLAMA_RATE_LIMIT),
    (is_ollama_quota_exceeded_error, ErrorType.OLLAMA_QUOTA_EXCEEDED),
)

_GMAIL_CHECKS: tuple[tuple[Any, ErrorType], ...] = (
    (is_gmail_insufficient_permissions_error, ErrorType.GMAIL_INSUFFICIENT_PERMISSIONS),
    (is_gmail_rate_limit_exceeded_error, ErrorType.GMAIL_RATE_LIMIT_EXCEEDED),
    (is_gmail_quota_exceeded_error, ErrorType.GMAIL_QUOTA_EXCEEDED),
)


def classify_error(error: BaseException) -> ErrorType | None:
    """Map a raw provider or Gmail exception to a known :class:`ErrorType`.

    Args:
        error: The exception raised by a provider SDK, an HTTP backend, or
            the Gmail API client.

    Returns:
        The matching ``ErrorType``, or ``None`` when the error is not a
        known, expected condition.
    """
    if is_openai_quota_exceeded_error(error):
        return ErrorType.OPENAI_QUOTA_EXCEEDED

    if _is_api_call_error(error):
        for check, error_type in _API_CALL_CHECKS:
            if check(error):
                return error_type

    for check, error_type in _GMAIL_CHECKS:
        if check(error):
            return error_type

    return None


def is_known_api_error(error: BaseException) -> bool:
    """Return ``True`` for expected errors that must not reach Sentry."""
    return classify_error(error) is not None


def capture_exception(
    error: BaseException,
    extra: dict[str, Any] | None = None,
    user_email: str | None = None,
) -> None:
    """Report *error* to Sentry unless it is a known, user-caused error.

    Args:
        error: The exception to report.
        extra: Additional context attached to the Sentry event.
        user_email: Email of the affected user, attached as the Sentry user.
    """
    error_type = classify_error(error)
    if error_type is not None:
        logger.warning(
            "known_api_error",
            error_type=error_type.name,
            user_email=user_email,
            error=str(error),
            **(extra or {}),
        )
        return

    scope_kwargs: dict[str, Any] = {}
    if user_email:
        scope_kwargs["user"] = {"email": user_email}
    if extra:
        scope_kwargs["extras"] = extra
    sentry_sdk.capture_exception(error, **scope_kwargs)
