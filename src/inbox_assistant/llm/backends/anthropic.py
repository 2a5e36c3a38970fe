"""Anthropic backends: direct API and the managed Bedrock fallback.

Both use the ``anthropic`` SDK, whose direct and Bedrock clients share the
Messages API.  Structured generation forces a single tool call whose input
schema is the requested pydantic model.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from anthropic import AsyncAnthropic, AsyncAnthropicBedrock

from inbox_assistant.llm.backends.base import (
    DEFAULT_MAX_TOKENS,
    LLMBackend,
    RawToolCall,
    ToolStep,
    serialize_tool_output,
)
from inbox_assistant.llm.models import (
    ObjectResult,
    StreamEvent,
    StreamFinish,
    T,
    TextDelta,
    TokenUsage,
    Tool,
    ToolResult,
)


def _usage(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=usage.input_tokens or 0,
        completion_tokens=usage.output_tokens or 0,
    )


def _tool_definition(name: str, description: str, schema: dict[str, Any]) -> dict[str, Any]:
    return {"name": name, "description": description, "input_schema": schema}


class AnthropicBackend(LLMBackend):
    """Messages API backend over an ``AsyncAnthropic``-compatible client.

    Args:
        client: An ``AsyncAnthropic`` or ``AsyncAnthropicBedrock`` instance.
        model: The model id.
        max_tokens: Output token limit for every request.
    """

    provider = "anthropic"

    def __init__(self, client: Any, model: str, max_tokens: int = DEFAULT_MAX_TOKENS) -> None:
        super().__init__(model)
        self._client = client
        self._max_tokens = max_tokens

    @classmethod
    def direct(cls, api_key: str, model: str) -> AnthropicBackend:
        return cls(AsyncAnthropic(api_key=api_key), model)

    @classmethod
    def bedrock(
        cls,
        access_key: str,
        secret_key: str,
        region: str,
        model: str,
    ) -> AnthropicBackend:
        client = AsyncAnthropicBedrock(
            aws_access_key=access_key,
            aws_secret_key=secret_key,
            aws_region=region,
        )
        return cls(client, model)

    def _request(self, messages: list[dict[str, Any]], system: str | None) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self._max_tokens,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        return kwargs

    async def generate_object(
        self,
        prompt: str,
        system: str | None,
        schema: type[T],
        *,
        schema_name: str = "result",
        schema_description: str = "",
    ) -> ObjectResult[T]:
        response = await self._client.messages.create(
            **self._request([{"role": "user", "content": prompt}], system),
            tools=[
                _tool_definition(
                    schema_name,
                    schema_description or f"Respond with a {schema_name} object.",
                    schema.model_json_schema(),
                )
            ],
            tool_choice={"type": "tool", "name": schema_name},
        )
        payload: dict[str, Any] = {}
        for block in response.content:
            if block.type == "tool_use":
                payload = dict(block.input)
                break
        return ObjectResult(object=schema.model_validate(payload), usage=_usage(response))

    async def stream_text(self, prompt: str, system: str | None) -> AsyncIterator[StreamEvent]:
        request = self._request([{"role": "user", "content": prompt}], system)
        async with self._client.messages.stream(**request) as stream:
            async for text in stream.text_stream:
                yield TextDelta(text)
            final = await stream.get_final_message()
        yield StreamFinish(_usage(final))

    def initial_messages(self, prompt: str) -> list[dict[str, Any]]:
        return [{"role": "user", "content": prompt}]

    async def tool_step(
        self,
        messages: list[dict[str, Any]],
        system: str | None,
        tools: dict[str, Tool],
    ) -> ToolStep:
        response = await self._client.messages.create(
            **self._request(messages, system),
            tools=[
                _tool_definition(tool.name, tool.description, tool.json_schema())
                for tool in tools.values()
            ],
            tool_choice={"type": "any"},
        )

        calls: list[RawToolCall] = []
        texts: list[str] = []
        content: list[dict[str, Any]] = []
        for block in response.content:
            if block.type == "tool_use":
                calls.append(RawToolCall(id=block.id, name=block.name, arguments=dict(block.input)))
                content.append(
                    {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
                )
            elif block.type == "text":
                texts.append(block.text)
                content.append({"type": "text", "text": block.text})

        return ToolStep(
            calls=calls,
            text="".join(texts),
            usage=_usage(response),
            assistant_message={"role": "assistant", "content": content},
        )

    def tool_result_messages(
        self,
        step: ToolStep,
        results: list[ToolResult],
    ) -> list[dict[str, Any]]:
        return [
            step.assistant_message,
            {
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": result.call_id,
                        "content": serialize_tool_output(result.output),
                    }
                    for result in results
                ],
            },
        ]
