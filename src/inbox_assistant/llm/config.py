"""Provider and model configuration for the LLM gateway."""

from enum import StrEnum


class Provider(StrEnum):
    """LLM providers a mailbox owner can select."""

    OPEN_AI = "openai"
    ANTHROPIC = "anthropic"
    GROQ = "groq"
    OLLAMA = "ollama"


class BackendKind(StrEnum):
    """Concrete backends a provider selection resolves to.

    ``BEDROCK`` serves the ``anthropic`` provider when the owner has no
    personal Anthropic key and managed AWS credentials are configured.
    """

    OPEN_AI = "openai"
    ANTHROPIC = "anthropic"
    BEDROCK = "bedrock"
    GROQ = "groq"
    OLLAMA = "ollama"


class Model:
    """Model identifiers used as per-backend defaults."""

    GPT_4O = "gpt-4o"
    GPT_4O_MINI = "gpt-4o-mini"
    CLAUDE_3_5_SONNET_ANTHROPIC = "claude-3-5-sonnet-20241022"
    CLAUDE_3_5_SONNET_BEDROCK = "anthropic.claude-3-5-sonnet-20241022-v2:0"
    LLAMA_3_70B_GROQ = "llama-3.3-70b-versatile"
    OLLAMA_MODEL = "llama3.1"


DEFAULT_PROVIDER = Provider.ANTHROPIC

DEFAULT_MODELS: dict[BackendKind, str] = {
    BackendKind.OPEN_AI: Model.GPT_4O,
    BackendKind.ANTHROPIC: Model.CLAUDE_3_5_SONNET_ANTHROPIC,
    BackendKind.BEDROCK: Model.CLAUDE_3_5_SONNET_BEDROCK,
    BackendKind.GROQ: Model.LLAMA_3_70B_GROQ,
    BackendKind.OLLAMA: Model.OLLAMA_MODEL,
}

# Model id prefixes each backend accepts.  An empty tuple accepts any model
# not claimed by another vendor's prefix.
_MODEL_PREFIXES: dict[BackendKind, tuple[str, ...]] = {
    BackendKind.OPEN_AI: ("gpt-", "o1", "o3", "o4", "chatgpt-"),
    BackendKind.ANTHROPIC: ("claude-",),
    BackendKind.BEDROCK: ("anthropic.", "us.anthropic.", "eu.anthropic.", "apac.anthropic."),
    BackendKind.GROQ: (),
    BackendKind.OLLAMA: (),
}

_VENDOR_ONLY_PREFIXES = ("claude-", "anthropic.", "us.anthropic.", "eu.anthropic.")

OPENAI_BASE_URL = "https://api.openai.com/v1"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"
HOSTED_OLLAMA_BASE_URL = "https://api.ollama.com"


def is_model_compatible(kind: BackendKind, model: str) -> bool:
    """Return ``True`` when *model* can be served by the *kind* backend."""
    prefixes = _MODEL_PREFIXES[kind]
    if prefixes:
        return model.startswith(prefixes)
    if kind == BackendKind.GROQ:
        return not model.startswith(_VENDOR_ONLY_PREFIXES + ("gpt-4", "gpt-3"))
    return True


def resolve_model(kind: BackendKind, requested: str | None) -> str:
    """Return *requested* when compatible with *kind*, else the default model."""
    if requested and is_model_compatible(kind, requested):
        return requested
    return DEFAULT_MODELS[kind]
