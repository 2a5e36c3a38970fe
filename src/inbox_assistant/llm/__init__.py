"""Provider-agnostic LLM gateway, backends, and prompt templates."""

from inbox_assistant.llm.config import BackendKind, Model, Provider
from inbox_assistant.llm.gateway import (
    ErrorMessageSink,
    LLMGateway,
    SelectedBackend,
    UsageSink,
    resolve_backend_config,
    select_backend,
)
from inbox_assistant.llm.models import (
    ObjectResult,
    TextStream,
    TokenUsage,
    Tool,
    ToolCall,
    ToolResult,
    ToolsResult,
)
from inbox_assistant.llm.prompts import ARGS_USER_PROMPT, build_args_system_prompt

__all__ = [
    "ARGS_USER_PROMPT",
    "BackendKind",
    "ErrorMessageSink",
    "LLMGateway",
    "Model",
    "ObjectResult",
    "Provider",
    "SelectedBackend",
    "TextStream",
    "TokenUsage",
    "Tool",
    "ToolCall",
    "ToolResult",
    "ToolsResult",
    "UsageSink",
    "build_args_system_prompt",
    "resolve_backend_config",
    "select_backend",
]
