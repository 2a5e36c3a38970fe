"""Abstract base class for LLM backends.

Every backend exposes the same three call shapes.  The multi-step tool loop
lives here; backends only implement a single tool step and the messages
that feed tool results back to the model, since each provider shapes those
messages differently.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import BaseModel

from inbox_assistant.domain.errors import ProviderAPIError
from inbox_assistant.llm.models import (
    ObjectResult,
    StreamEvent,
    T,
    TokenUsage,
    Tool,
    ToolCall,
    ToolResult,
    ToolsResult,
)

logger = structlog.get_logger()

DEFAULT_MAX_TOKENS = 4096


@dataclass(frozen=True)
class RawToolCall:
    """A tool call as returned by the provider, before validation."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class ToolStep:
    """One model turn of a tool-calling conversation."""

    calls: list[RawToolCall]
    text: str
    usage: TokenUsage
    assistant_message: dict[str, Any] = field(default_factory=dict)


def serialize_tool_output(output: Any) -> str:
    """Render a tool's return value as text for the next model turn."""
    if isinstance(output, str):
        return output
    if isinstance(output, BaseModel):
        return output.model_dump_json()
    return json.dumps(output, default=str)


def validate_tool_call(call: RawToolCall, tools: dict[str, Tool]) -> tuple[ToolCall, BaseModel]:
    """Validate *call* against its tool's parameter model.

    Raises:
        ValueError: If the model called a tool that was not offered.
        pydantic.ValidationError: If the arguments do not fit the schema.
    """
    tool = tools.get(call.name)
    if tool is None:
        msg = f"Model called unknown tool '{call.name}'"
        raise ValueError(msg)
    parsed = tool.parameters.model_validate(call.arguments)
    return ToolCall(id=call.id, name=call.name, args=parsed.model_dump()), parsed


class LLMBackend(ABC):
    """Uniform capability interface over one provider's API.

    Args:
        model: The model id every request of this handle uses.
    """

    provider = "llm"

    def __init__(self, model: str) -> None:
        self.model = model

    @abstractmethod
    async def generate_object(
        self,
        prompt: str,
        system: str | None,
        schema: type[T],
        *,
        schema_name: str = "result",
        schema_description: str = "",
    ) -> ObjectResult[T]:
        """Generate one object constrained to *schema*.

        Raises:
            pydantic.ValidationError: If the model output does not fit *schema*.
        """
        ...

    @abstractmethod
    def stream_text(self, prompt: str, system: str | None) -> AsyncIterator[StreamEvent]:
        """Yield ``TextDelta`` events followed by one ``StreamFinish``."""
        ...

    @abstractmethod
    def initial_messages(self, prompt: str) -> list[dict[str, Any]]:
        """Return the opening conversation for a tool-calling request."""
        ...

    @abstractmethod
    async def tool_step(
        self,
        messages: list[dict[str, Any]],
        system: str | None,
        tools: dict[str, Tool],
    ) -> ToolStep:
        """Run one model turn that is required to call a tool."""
        ...

    @abstractmethod
    def tool_result_messages(
        self,
        step: ToolStep,
        results: list[ToolResult],
    ) -> list[dict[str, Any]]:
        """Return the messages that append *step* and its tool *results*."""
        ...

    async def generate_with_tools(
        self,
        prompt: str,
        system: str | None,
        tools: dict[str, Tool],
        *,
        max_steps: int = 1,
    ) -> ToolsResult:
        """Run a tool-calling conversation of at most *max_steps* model turns.

        Each turn must call a tool.  Tools with an ``execute`` coroutine are
        run in call order and their outputs sent back to the model; the chain
        stops at *max_steps*, when a later turn calls no tool, or when a
        called tool has no ``execute``.

        Raises:
            ProviderAPIError: If the first turn calls no tool.
            ValueError: If the model calls a tool that was not offered.
        """
        messages = self.initial_messages(prompt)
        calls: list[ToolCall] = []
        results: list[ToolResult] = []
        usage = TokenUsage()
        text = ""
        steps = 0

        while steps < max(max_steps, 1):
            step = await self.tool_step(messages, system, tools)
            steps += 1
            usage = usage + step.usage
            text = step.text
            if not step.calls:
                if steps == 1:
                    logger.warning("tool_call_missing", provider=self.provider, model=self.model)
                    raise ProviderAPIError(self.provider, "Model did not call a tool")
                break

            step_results: list[ToolResult] = []
            finished = False
            for raw_call in step.calls:
                call, parsed = validate_tool_call(raw_call, tools)
                calls.append(call)
                tool = tools[call.name]
                if tool.execute is None:
                    finished = True
                    continue
                output = await tool.execute(parsed)
                step_results.append(ToolResult(call_id=call.id, name=call.name, output=output))

            results.extend(step_results)
            if finished or not step_results:
                break
            messages = messages + self.tool_result_messages(step, step_results)

        logger.debug("tool_chain_finished", model=self.model, steps=steps, calls=len(calls))
        return ToolsResult(
            tool_calls=calls,
            tool_results=results,
            text=text,
            usage=usage,
            steps=steps,
        )
