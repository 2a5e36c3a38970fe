"""Result and stream types shared by every LLM backend.

These types define the gateway's three call shapes:
- Structured generation returns an ``ObjectResult``
- Tool calling returns a ``ToolsResult``
- Streaming returns a ``TextStream``
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T", bound=BaseModel)


class TokenUsage(BaseModel):
    """Token consumption of one LLM call (summed across tool steps)."""

    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


@dataclass(frozen=True)
class ObjectResult(Generic[T]):
    """A schema-validated object produced by structured generation."""

    object: T
    usage: TokenUsage


@dataclass(frozen=True)
class Tool:
    """A tool the model may call.

    Args:
        name: Tool name exposed to the model.
        description: What the tool does, shown to the model.
        parameters: Pydantic model describing (and validating) the arguments.
        execute: Optional coroutine run with the validated arguments.  A tool
            without ``execute`` ends the tool chain when the model calls it.
    """

    name: str
    description: str
    parameters: type[BaseModel]
    execute: Callable[[Any], Awaitable[Any]] | None = None

    def json_schema(self) -> dict[str, Any]:
        return self.parameters.model_json_schema()


@dataclass(frozen=True)
class ToolCall:
    """A validated tool invocation requested by the model."""

    id: str
    name: str
    args: dict[str, Any]


@dataclass(frozen=True)
class ToolResult:
    """The output of running a tool's ``execute`` for one call."""

    call_id: str
    name: str
    output: Any


@dataclass(frozen=True)
class ToolsResult:
    """Outcome of a tool-calling generation, across all steps."""

    tool_calls: list[ToolCall]
    tool_results: list[ToolResult]
    text: str
    usage: TokenUsage
    steps: int


@dataclass(frozen=True)
class TextDelta:
    """A chunk of generated text."""

    text: str


@dataclass(frozen=True)
class StreamFinish:
    """Final stream event carrying the usage of the whole generation."""

    usage: TokenUsage


StreamEvent = TextDelta | StreamFinish


@dataclass
class TextStream:
    """A lazy, single-pass sequence of generated text chunks.

    Iterating the stream drives the underlying provider request.  When the
    provider signals completion, ``on_complete`` runs exactly once with the
    full text and the final usage; a provider failure runs ``on_error`` and
    re-raises.  The stream cannot be iterated a second time.
    """

    events: AsyncIterator[StreamEvent]
    on_complete: Callable[[str, TokenUsage], Awaitable[None]]
    on_error: Callable[[Exception], Awaitable[None]]
    text: str | None = None
    usage: TokenUsage | None = None
    _consumed: bool = field(default=False, init=False, repr=False)

    def __aiter__(self) -> AsyncIterator[str]:
        if self._consumed:
            msg = "TextStream can only be consumed once"
            raise RuntimeError(msg)
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        parts: list[str] = []
        usage = TokenUsage()
        try:
            async for event in self.events:
                if isinstance(event, TextDelta):
                    parts.append(event.text)
                    yield event.text
                else:
                    usage = event.usage
        except Exception as exc:
            await self.on_error(exc)
            raise

        self.text = "".join(parts)
        self.usage = usage
        await self.on_complete(self.text, usage)

    async def collect(self) -> str:
        """Consume the whole stream and return the full text."""
        return "".join([chunk async for chunk in self])
