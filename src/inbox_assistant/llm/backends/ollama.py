"""Ollama backend over the native ``/api/chat`` endpoint.

Structured generation passes the JSON schema as ``format``; streaming reads
newline-delimited JSON chunks.  Ollama has no way to force a tool call, so a
tool step may come back with text only, which ends the chain.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from inbox_assistant.domain.errors import ProviderAPIError
from inbox_assistant.llm.backends.base import LLMBackend, RawToolCall, ToolStep, serialize_tool_output
from inbox_assistant.llm.backends.openai_compat import DEFAULT_TIMEOUT
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


def _usage(payload: dict[str, Any]) -> TokenUsage:
    return TokenUsage(
        prompt_tokens=payload.get("prompt_eval_count") or 0,
        completion_tokens=payload.get("eval_count") or 0,
    )


class OllamaBackend(LLMBackend):
    """Backend for a hosted or self-hosted Ollama server.

    Args:
        base_url: Server root, e.g. ``https://api.ollama.com``.
        model: The model id.
        api_key: Optional bearer token (required by the hosted service).
        transport: Optional ``httpx`` transport (tests use ``MockTransport``).
    """

    provider = "ollama"

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(model)
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=DEFAULT_TIMEOUT,
            transport=self._transport,
        )

    def _error(self, response: httpx.Response) -> ProviderAPIError:
        message = response.text
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            message = str(body["error"])
        return ProviderAPIError(self.provider, message, status_code=response.status_code)

    def _messages(self, messages: list[dict[str, Any]], system: str | None) -> list[dict[str, Any]]:
        if system:
            return [{"role": "system", "content": system}, *messages]
        return messages

    async def _chat(self, payload: dict[str, Any]) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.post("/api/chat", json=payload)
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
        data = await self._chat(
            {
                "model": self.model,
                "messages": self._messages([{"role": "user", "content": prompt}], system),
                "format": schema.model_json_schema(),
                "stream": False,
            }
        )
        content = (data.get("message") or {}).get("content") or "{}"
        return ObjectResult(object=schema.model_validate_json(content), usage=_usage(data))

    async def stream_text(self, prompt: str, system: str | None) -> AsyncIterator[StreamEvent]:
        payload = {
            "model": self.model,
            "messages": self._messages([{"role": "user", "content": prompt}], system),
            "stream": True,
        }
        usage = TokenUsage()
        async with self._client() as client, client.stream("POST", "/api/chat", json=payload) as response:
            if response.status_code >= 400:
                await response.aread()
                raise self._error(response)
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                chunk = json.loads(line)
                if chunk.get("error"):
                    raise ProviderAPIError(self.provider, str(chunk["error"]))
                text = (chunk.get("message") or {}).get("content")
                if text:
                    yield TextDelta(text)
                if chunk.get("done"):
                    usage = _usage(chunk)
                    break
        yield StreamFinish(usage)

    def initial_messages(self, prompt: str) -> list[dict[str, Any]]:
        return [{"role": "user", "content": prompt}]

    async def tool_step(
        self,
        messages: list[dict[str, Any]],
        system: str | None,
        tools: dict[str, Tool],
    ) -> ToolStep:
        data = await self._chat(
            {
                "model": self.model,
                "messages": self._messages(messages, system),
                "tools": [
                    {
                        "type": "function",
                        "function": {
                            "name": tool.name,
                            "description": tool.description,
                            "parameters": tool.json_schema(),
                        },
                    }
                    for tool in tools.values()
                ],
                "stream": False,
            }
        )
        message = data.get("message") or {}
        calls = []
        for index, call in enumerate(message.get("tool_calls") or []):
            function = call.get("function") or {}
            arguments = function.get("arguments") or {}
            if isinstance(arguments, str):
                arguments = json.loads(arguments)
            calls.append(
                RawToolCall(id=call.get("id") or f"call_{index}", name=function.get("name", ""), arguments=arguments)
            )
        return ToolStep(
            calls=calls,
            text=message.get("content") or "",
            usage=_usage(data),
            assistant_message={
                "role": "assistant",
                "content": message.get("content") or "",
                "tool_calls": message.get("tool_calls") or [],
            },
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
                    "tool_name": result.name,
                    "content": serialize_tool_output(result.output),
                }
                for result in results
            ],
        ]
