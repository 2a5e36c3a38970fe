"""Provider-agnostic LLM gateway.

``select_backend`` resolves a mailbox owner's AI settings into one backend
handle using a single precedence for every provider:

1. The owner's provider choice, or ``DEFAULT_PROVIDER`` when unset.
2. The owner's personal API key when present; otherwise the process-wide
   managed credential for that provider (Bedrock for Anthropic, the
   organization key for OpenAI, the configured server for Ollama); Groq has
   no managed credential.  No usable credential raises
   ``ConfigurationError`` before any request is made.
3. The owner's model when the backend can serve it, else the backend's
   default model.

``LLMGateway`` exposes the three call shapes on top of that selection.  Each
successful call appends exactly one usage record.  Provider failures are
classified: known ones become a user-visible error banner, unknown ones go
to Sentry.  The original exception is always re-raised.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

import structlog
from pydantic import SecretStr

from inbox_assistant.config import Settings
from inbox_assistant.domain.errors import ConfigurationError, UnsupportedProviderError
from inbox_assistant.domain.models import UserAIFields
from inbox_assistant.llm.backends import BackendConfig, LLMBackend, create_backend
from inbox_assistant.llm.config import (
    DEFAULT_PROVIDER,
    HOSTED_OLLAMA_BASE_URL,
    BackendKind,
    Provider,
    resolve_model,
)
from inbox_assistant.llm.models import ObjectResult, T, TextStream, TokenUsage, Tool, ToolsResult
from inbox_assistant.observability.errors import capture_exception, classify_error
from inbox_assistant.observability.metrics import LLM_CALLS, LLM_TOKENS

logger = structlog.get_logger()


class UsageSink(Protocol):
    def save_ai_usage(
        self,
        *,
        email: str,
        provider: str,
        model: str,
        usage: TokenUsage,
        label: str,
    ) -> Any: ...


class ErrorMessageSink(Protocol):
    def add_user_error_message(self, user_email: str, error_type: str, message: str) -> None: ...


@dataclass(frozen=True)
class SelectedBackend:
    """The resolved provider, model and backend handle for one request."""

    provider: Provider
    model: str
    kind: BackendKind
    handle: LLMBackend


def _secret(value: SecretStr | str | None) -> str:
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return value or ""


def resolve_backend_config(user_ai: UserAIFields, settings: Settings) -> tuple[Provider, BackendConfig]:
    """Resolve *user_ai* into a provider and a ``BackendConfig``.

    Raises:
        UnsupportedProviderError: If the provider name is unknown.
        ConfigurationError: If no personal or managed credential is usable.
    """
    try:
        provider = Provider(user_ai.ai_provider) if user_ai.ai_provider else DEFAULT_PROVIDER
    except ValueError:
        raise UnsupportedProviderError(user_ai.ai_provider or "") from None

    personal_key = (user_ai.ai_api_key or "").strip()

    if provider == Provider.OPEN_AI:
        key = personal_key or _secret(settings.openai_api_key)
        if not key:
            msg = "OpenAI requires an API key and no managed OpenAI key is configured"
            raise ConfigurationError(msg)
        kind = BackendKind.OPEN_AI
        return provider, BackendConfig(
            kind=kind, model=resolve_model(kind, user_ai.ai_model), api_key=SecretStr(key)
        )

    if provider == Provider.ANTHROPIC:
        if personal_key:
            kind = BackendKind.ANTHROPIC
            return provider, BackendConfig(
                kind=kind,
                model=resolve_model(kind, user_ai.ai_model),
                api_key=SecretStr(personal_key),
            )
        access_key = _secret(settings.bedrock_access_key)
        secret_key = _secret(settings.bedrock_secret_key)
        if not access_key or not secret_key:
            msg = "Anthropic requires an API key and Bedrock credentials are not configured"
            raise ConfigurationError(msg)
        kind = BackendKind.BEDROCK
        return provider, BackendConfig(
            kind=kind,
            model=resolve_model(kind, user_ai.ai_model),
            aws_access_key=SecretStr(access_key),
            aws_secret_key=SecretStr(secret_key),
            aws_region=settings.bedrock_region,
        )

    if provider == Provider.GROQ:
        if not personal_key:
            msg = "Groq requires an API key"
            raise ConfigurationError(msg)
        kind = BackendKind.GROQ
        return provider, BackendConfig(
            kind=kind, model=resolve_model(kind, user_ai.ai_model), api_key=SecretStr(personal_key)
        )

    # Ollama: the hosted service needs a key; a self-hosted server may not.
    key = personal_key or _secret(settings.ollama_api_key)
    base_url = settings.ollama_base_url or HOSTED_OLLAMA_BASE_URL
    if not key and base_url.rstrip("/") == HOSTED_OLLAMA_BASE_URL:
        msg = "Hosted Ollama requires an API key"
        raise ConfigurationError(msg)
    kind = BackendKind.OLLAMA
    return provider, BackendConfig(
        kind=kind,
        model=resolve_model(kind, user_ai.ai_model),
        api_key=SecretStr(key) if key else None,
        base_url=base_url,
    )


def select_backend(
    user_ai: UserAIFields,
    settings: Settings,
    factory: Callable[[BackendConfig], LLMBackend] = create_backend,
) -> SelectedBackend:
    """Return the provider, model and backend handle for *user_ai*.

    Raises:
        ConfigurationError: If no usable credential resolves.  Raised before
            any provider request is issued.
    """
    provider, config = resolve_backend_config(user_ai, settings)
    return SelectedBackend(
        provider=provider,
        model=config.model,
        kind=config.kind,
        handle=factory(config),
    )


class LLMGateway:
    """Issue LLM calls on behalf of a mailbox owner.

    Args:
        settings: Application settings holding the managed credentials.
        usage_sink: Receives one usage record per successful call.
        error_sink: Receives user-visible messages for known provider errors.
        backend_factory: Builds a backend from a ``BackendConfig``.
    """

    def __init__(
        self,
        settings: Settings,
        usage_sink: UsageSink,
        error_sink: ErrorMessageSink,
        backend_factory: Callable[[BackendConfig], LLMBackend] = create_backend,
    ) -> None:
        self._settings = settings
        self._usage_sink = usage_sink
        self._error_sink = error_sink
        self._backend_factory = backend_factory

    def select_backend(self, user_ai: UserAIFields) -> SelectedBackend:
        return select_backend(user_ai, self._settings, self._backend_factory)

    def _record_usage(
        self,
        selected: SelectedBackend,
        usage: TokenUsage,
        *,
        user_email: str,
        label: str,
        shape: str,
    ) -> None:
        LLM_CALLS.labels(provider=selected.provider, shape=shape, result="success").inc()
        LLM_TOKENS.labels(provider=selected.provider, model=selected.model).inc(usage.total_tokens)
        self._usage_sink.save_ai_usage(
            email=user_email,
            provider=selected.provider.value,
            model=selected.model,
            usage=usage,
            label=label,
        )

    def handle_error(
        self,
        error: Exception,
        selected: SelectedBackend,
        *,
        user_email: str,
        label: str,
        shape: str,
    ) -> None:
        """Classify *error*, notify the user or report it.  Never raises."""
        LLM_CALLS.labels(provider=selected.provider, shape=shape, result="error").inc()
        error_type = classify_error(error)
        extra = {"provider": selected.provider.value, "model": selected.model, "label": label}
        if error_type is None:
            logger.warning("llm_call_failed", error=str(error), **extra)
            capture_exception(error, extra=extra, user_email=user_email)
            return

        logger.warning("llm_call_known_error", error_type=error_type.name, **extra)
        self._error_sink.add_user_error_message(
            user_email, error_type.value, str(getattr(error, "message", None) or error)
        )

    async def chat_completion_object(
        self,
        *,
        user_ai: UserAIFields,
        prompt: str,
        schema: type[T],
        user_email: str,
        usage_label: str,
        system: str | None = None,
        schema_name: str = "result",
        schema_description: str = "",
    ) -> ObjectResult[T]:
        """Generate an object validated against *schema*.

        Raises:
            ConfigurationError: If no backend can be selected.
            pydantic.ValidationError: If the output does not fit *schema*.
            Exception: Any provider error, after classification.
        """
        selected = self.select_backend(user_ai)
        try:
            result = await selected.handle.generate_object(
                prompt,
                system,
                schema,
                schema_name=schema_name,
                schema_description=schema_description,
            )
        except Exception as exc:
            self.handle_error(exc, selected, user_email=user_email, label=usage_label, shape="object")
            raise

        self._record_usage(
            selected, result.usage, user_email=user_email, label=usage_label, shape="object"
        )
        return result

    async def chat_completion_stream(
        self,
        *,
        user_ai: UserAIFields,
        prompt: str,
        user_email: str,
        usage_label: str,
        system: str | None = None,
        on_finish: Callable[[str], Awaitable[None]] | None = None,
    ) -> TextStream:
        """Start a streaming generation.

        Nothing is sent to the provider until the returned stream is
        iterated.  Usage is recorded when the stream completes, followed by
        ``on_finish`` with the full text.
        """
        selected = self.select_backend(user_ai)

        async def complete(text: str, usage: TokenUsage) -> None:
            self._record_usage(
                selected, usage, user_email=user_email, label=usage_label, shape="stream"
            )
            if on_finish is not None:
                await on_finish(text)

        async def fail(error: Exception) -> None:
            self.handle_error(error, selected, user_email=user_email, label=usage_label, shape="stream")

        return TextStream(
            events=selected.handle.stream_text(prompt, system),
            on_complete=complete,
            on_error=fail,
        )

    async def chat_completion_tools(
        self,
        *,
        user_ai: UserAIFields,
        prompt: str,
        tools: dict[str, Tool],
        label: str,
        user_email: str,
        system: str | None = None,
        max_steps: int = 1,
    ) -> ToolsResult:
        """Run a tool-calling generation where the model must call a tool.

        Usage across all steps is recorded once.
        """
        selected = self.select_backend(user_ai)
        try:
            result = await selected.handle.generate_with_tools(
                prompt, system, tools, max_steps=max_steps
            )
        except Exception as exc:
            self.handle_error(exc, selected, user_email=user_email, label=label, shape="tools")
            raise

        self._record_usage(selected, result.usage, user_email=user_email, label=label, shape="tools")
        return result
