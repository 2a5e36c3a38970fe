"""LLM backends and the factory that builds one from a resolved selection."""

from __future__ import annotations

from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, SecretStr

from inbox_assistant.llm.backends.anthropic import AnthropicBackend
from inbox_assistant.llm.backends.base import LLMBackend
from inbox_assistant.llm.backends.ollama import OllamaBackend
from inbox_assistant.llm.backends.openai_compat import OpenAICompatibleBackend
from inbox_assistant.llm.config import GROQ_BASE_URL, OPENAI_BASE_URL, BackendKind


class BackendConfig(BaseModel):
    """A resolved backend selection: kind, model and the credential to use.

    Only the credential fields relevant to ``kind`` are set.
    """

    model_config = ConfigDict(frozen=True)

    kind: BackendKind
    model: str
    api_key: SecretStr | None = None
    base_url: str | None = None
    aws_access_key: SecretStr | None = None
    aws_secret_key: SecretStr | None = None
    aws_region: str | None = None


def _secret(value: SecretStr | None) -> str:
    return value.get_secret_value() if value is not None else ""


def _openai(config: BackendConfig) -> LLMBackend:
    return OpenAICompatibleBackend(
        "openai", config.base_url or OPENAI_BASE_URL, _secret(config.api_key), config.model
    )


def _groq(config: BackendConfig) -> LLMBackend:
    return OpenAICompatibleBackend(
        "groq", config.base_url or GROQ_BASE_URL, _secret(config.api_key), config.model
    )


def _anthropic(config: BackendConfig) -> LLMBackend:
    return AnthropicBackend.direct(_secret(config.api_key), config.model)


def _bedrock(config: BackendConfig) -> LLMBackend:
    return AnthropicBackend.bedrock(
        _secret(config.aws_access_key),
        _secret(config.aws_secret_key),
        config.aws_region or "us-west-2",
        config.model,
    )


def _ollama(config: BackendConfig) -> LLMBackend:
    return OllamaBackend(config.base_url or "", config.model, _secret(config.api_key) or None)


BACKEND_FACTORIES: dict[BackendKind, Callable[[BackendConfig], LLMBackend]] = {
    BackendKind.OPEN_AI: _openai,
    BackendKind.ANTHROPIC: _anthropic,
    BackendKind.BEDROCK: _bedrock,
    BackendKind.GROQ: _groq,
    BackendKind.OLLAMA: _ollama,
}


def create_backend(config: BackendConfig) -> LLMBackend:
    """Build the backend handle for *config*."""
    return BACKEND_FACTORIES[config.kind](config)


__all__ = [
    "BACKEND_FACTORIES",
    "AnthropicBackend",
    "BackendConfig",
    "LLMBackend",
    "OllamaBackend",
    "OpenAICompatibleBackend",
    "create_backend",
]
