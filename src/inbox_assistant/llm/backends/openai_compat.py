"""OpenAI-compatible chat completions backend (OpenAI and Groq).

Talks to ``/chat/completions`` over ``httpx``.  Structured generation forces
a single function call whose parameters are the requested pydantic schema;
streaming reads the server-sent event stream and asks for a final usage
chunk.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from inbox_assistant.domain.errors import ProviderAPIError
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

# Provider SDK default: long read timeout for slow generations.
DEFAULT_TIMEOUT = httpx.Timeout(600.0, connect=10.0)


def _usage(payload: dict[str, Any] | None) -> TokenUsage:
    if not payload:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=payload.get("prompt_tokens") or 0,
        completion_tokens=payload.get("completion_tokens") or 0,
    )


def _function(name: str, description: str, parameters: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {"name": name, "description": description, "parameters": parameters},
    }


def _parse_arguments(raw: str | dict[str, Any] | None) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    parsed = json.loads(raw)
    return parsed if isinstance(parsed, dict) else {}


class OpenAICompatibleBackend(LLMBackend):
    """Backend for providers exposing the OpenAI chat completions API.

    Args:
        provider: Provider name used in error reports (``openai``, ``groq``).
        base_url: API root, e.g. ``https://api.openai.com/v1``.
        api_key: Bearer token for the provider.
        model: The model id.
        transport: Optional ``httpx`` transport (tests use ``MockTransport``).
    """

    def __init__(
        self,
        provider: str,
        base_url: str,
        api_key: str,
        model: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        super().__init__(model)
        self.provider = provider
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._transport = transport
        self._max_tokens = max_tokens

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=DEFAULT_TIMEOUT,
            transport=self._transport,
        )

    def _error(self, response: httpx.Response) -> ProviderAPIError:
        message = response.text
        code: str | None = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = body["error"].get("message") or message
            code = body["error"].get("code")
        return ProviderAPIError(self.provider, message, status_code=response.status_code, code=code)

    def _messages(self, messages: list[dict[str, Any]], system: str | None) -> list[dict[str, Any]]:
        if system:
            return [{"role": "system", "content": system}, *messages]
        return messages

    async def _complete(self, payload: dict[str, Any]) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.post("/chat/completions", json=payload)
        if response.status_code >= 400:
            raise self._error(response)
        result: dict[str, Any] = response.json()
        return result

    async def generate_object(
        self,
        prompt: str,
        system: str | None,
        schema: type[T],
        *,
        schema_name: str = "result",
        schema_description: str = "",
    ) -> ObjectResult[T]:
        data = await self._complete(
            {
                "model": self.model,
                "max_tokens": self._max_tokens,
                "messages": self._messages([{"role": "user", "content": prompt}], system),
                "tools": [
                    _function(
                        schema_name,
                        schema_description or f"Respond with a {schema_name} object.",
                        schema.model_json_schema(),
                    )
                ],
                "tool_choice": {"type": "function", "function": {"name": schema_name}},
            }
        )
        message = data["choices"][0]["message"]
        tool_calls = message.get("tool_calls") or []
        arguments = _parse_arguments(tool_calls[0]["function"]["arguments"]) if tool_calls else {}
        return ObjectResult(object=schema.model_validate(arguments), usage=_usage(data.get("usage")))

    async def stream_text(self, prompt: str, system: str | None) -> AsyncIterator[StreamEvent]:
        payload = {
            "model": self.model,
            "max_tokens": self._max_tokens,
            "messages": self._messages([{"role": "user", "content": prompt}], system),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        usage = TokenUsage()
        async with self._client() as client, client.stream(
            "POST", "/chat/completions", json=payload
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                raise self._error(response)
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:") :].strip()
                if data == "[DONE]":
                    break
                chunk = json.loads(data)
                for choice in chunk.get("choices") or []:
                    text = (choice.get("delta") or {}).get("content")
                    if text:
                        yield TextDelta(text)
                # Groq reports usage under x_groq on the last chunk.
                chunk_usage = chunk.get("usage") or (chunk.get("x_groq") or {}).get("usage")
                if chunk_usage:
                    usage = _usage(chunk_usage)
        yield StreamFinish(usage)

    def initial_messages(self, prompt: str) -> list[dict[str, Any]]:
        return [{"role": "user", "content": prompt}]

    async def tool_step(
        self,
        messages: list[dict[str, Any]],
        system: str | None,
        tools: dict[str, Tool],
    ) -> ToolStep:
        data = await self._complete(
            {
                "model": self.model,
                "max_tokens": self._max_tokens,
                "messages": self._messages(messages, system),
                "tools": [
                    _function(tool.name, tool.description, tool.json_schema())
                    for tool in tools.values()
                ],
                "tool_choice": "required",
            }
        )
        message = data["choices"][0]["message"]
        calls = [
            RawToolCall(
                id=call["id"],
                name=call["function"]["name"],
                arguments=_parse_arguments(call["function"].get("arguments")),
            )
            for call in message.get("tool_calls") or []
        ]
        assistant = {"role": "assistant", "content": message.get("content")}
        if message.get("tool_calls"):
            assistant["tool_calls"] = message["tool_calls"]
        return ToolStep(
            calls=calls,
            text=message.get("content") or "",
            usage=_usage(data.get("usage")),
            assistant_message=assistant,
        )

    def tool_result_messages(
        self,
        step: ToolStep,
        results: list[ToolResult],
    ) -> list[dict[str, Any]]:
        return [
            step.assistant_message,
            *[
                {
                    "role": "tool",
                    "tool_call_id": result.call_id,
                    "content": serialize_tool_output(result.output),
                }
                for result in results
            ],
        ]
