"""Tests for the Anthropic, OpenAI-compatible and Ollama backends."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from pydantic import BaseModel, ValidationError

from inbox_assistant.domain.errors import ProviderAPIError
from inbox_assistant.llm.backends import BackendConfig, create_backend
from inbox_assistant.llm.backends.anthropic import AnthropicBackend
from inbox_assistant.llm.backends.ollama import OllamaBackend
from inbox_assistant.llm.backends.openai_compat import OpenAICompatibleBackend
from inbox_assistant.llm.config import BackendKind
from inbox_assistant.llm.models import StreamFinish, TextDelta, TokenUsage, Tool


class LabelArgs(BaseModel):
    label: str


def _recording_transport(responses: list[httpx.Response]) -> tuple[httpx.MockTransport, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responses[len(requests) - 1]

    return httpx.MockTransport(handler), requests


async def _events(stream: AsyncIterator[Any]) -> list[Any]:
    return [event async for event in stream]


# ---------------------------------------------------------------------------
# OpenAI-compatible
# ---------------------------------------------------------------------------


class TestOpenAICompatibleBackend:
    @pytest.mark.anyio()
    async def test_generate_object_forces_function_call(self) -> None:
        transport, requests = _recording_transport(
            [
                httpx.Response(
                    200,
                    json={
                        "choices": [
                            {
                                "message": {
                                    "content": None,
                                    "tool_calls": [
                                        {
                                            "id": "call_1",
                                            "type": "function",
                                            "function": {"name": "Invoices", "arguments": '{"label": "Acme"}'},
                                        }
                                    ],
                                }
                            }
                        ],
                        "usage": {"prompt_tokens": 20, "completion_tokens": 4},
                    },
                )
            ]
        )
        backend = OpenAICompatibleBackend("openai", "https://api.test/v1", "sk-test", "gpt-4o", transport=transport)

        result = await backend.generate_object("Label it", "Be brief", LabelArgs, schema_name="Invoices")

        assert result.object == LabelArgs(label="Acme")
        assert result.usage == TokenUsage(prompt_tokens=20, completion_tokens=4)
        request = requests[0]
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["tool_choice"] == {"type": "function", "function": {"name": "Invoices"}}
        assert body["messages"][0] == {"role": "system", "content": "Be brief"}

    @pytest.mark.anyio()
    async def test_error_response_raises_provider_error(self) -> None:
        transport, _ = _recording_transport(
            [
                httpx.Response(
                    429,
                    json={"error": {"message": "You exceeded your current quota", "code": "insufficient_quota"}},
                )
            ]
        )
        backend = OpenAICompatibleBackend("openai", "https://api.test/v1", "sk", "gpt-4o", transport=transport)

        with pytest.raises(ProviderAPIError) as exc_info:
            await backend.generate_object("x", None, LabelArgs)

        assert exc_info.value.status_code == 429
        assert exc_info.value.code == "insufficient_quota"
        assert exc_info.value.provider == "openai"

    @pytest.mark.anyio()
    async def test_invalid_arguments_fail_validation(self) -> None:
        transport, _ = _recording_transport(
            [
                httpx.Response(
                    200,
                    json={
                        "choices": [
                            {"message": {"tool_calls": [{"id": "c", "function": {"name": "r", "arguments": "{}"}}]}}
                        ]
                    },
                )
            ]
        )
        backend = OpenAICompatibleBackend("groq", "https://api.test/v1", "gsk", "llama", transport=transport)

        with pytest.raises(ValidationError):
            await backend.generate_object("x", None, LabelArgs)

    @pytest.mark.anyio()
    async def test_stream_text_reads_sse_and_usage(self) -> None:
        lines = [
            'data: {"choices": [{"delta": {"content": "Hel"}}]}',
            "",
            'data: {"choices": [{"delta": {"content": "lo"}}]}',
            "",
            'data: {"choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 2}}',
            "",
            "data: [DONE]",
            "",
        ]
        transport, requests = _recording_transport(
            [httpx.Response(200, content="\n".join(lines).encode())]
        )
        backend = OpenAICompatibleBackend("openai", "https://api.test/v1", "sk", "gpt-4o", transport=transport)

        events = await _events(backend.stream_text("Hi", None))

        assert events == [
            TextDelta("Hel"),
            TextDelta("lo"),
            StreamFinish(TokenUsage(prompt_tokens=3, completion_tokens=2)),
        ]
        assert json.loads(requests[0].content)["stream_options"] == {"include_usage": True}

    @pytest.mark.anyio()
    async def test_tool_step_requires_a_tool(self) -> None:
        transport, requests = _recording_transport(
            [
                httpx.Response(
                    200,
                    json={
                        "choices": [
                            {
                                "message": {
                                    "content": "",
                                    "tool_calls": [
                                        {"id": "c1", "function": {"name": "pick", "arguments": '{"label": "A"}'}}
                                    ],
                                }
                            }
                        ]
                    },
                )
            ]
        )
        backend = OpenAICompatibleBackend("openai", "https://api.test/v1", "sk", "gpt-4o", transport=transport)
        tools = {"pick": Tool(name="pick", description="Pick", parameters=LabelArgs)}

        result = await backend.generate_with_tools("Choose", None, tools)

        assert json.loads(requests[0].content)["tool_choice"] == "required"
        assert result.tool_calls[0].args == {"label": "A"}
        assert result.steps == 1


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------


class TestOllamaBackend:
    @pytest.mark.anyio()
    async def test_generate_object_sends_schema_as_format(self) -> None:
        transport, requests = _recording_transport(
            [
                httpx.Response(
                    200,
                    json={
                        "message": {"role": "assistant", "content": '{"label": "Acme"}'},
                        "prompt_eval_count": 9,
                        "eval_count": 4,
                    },
                )
            ]
        )
        backend = OllamaBackend("http://localhost:11434", "llama3.1", transport=transport)

        result = await backend.generate_object("Label it", None, LabelArgs)

        assert result.object.label == "Acme"
        assert result.usage.total_tokens == 13
        body = json.loads(requests[0].content)
        assert body["format"] == LabelArgs.model_json_schema()
        assert body["stream"] is False
        assert "Authorization" not in requests[0].headers

    @pytest.mark.anyio()
    async def test_api_key_is_sent_as_bearer(self) -> None:
        transport, requests = _recording_transport(
            [httpx.Response(200, json={"message": {"content": '{"label": "x"}'}})]
        )
        backend = OllamaBackend("https://api.ollama.com", "llama3.1", "ol-key", transport=transport)

        await backend.generate_object("x", None, LabelArgs)

        assert requests[0].headers["Authorization"] == "Bearer ol-key"

    @pytest.mark.anyio()
    async def test_error_body_becomes_provider_error(self) -> None:
        transport, _ = _recording_transport([httpx.Response(401, json={"error": "Invalid API key"})])
        backend = OllamaBackend("https://api.ollama.com", "llama3.1", "bad", transport=transport)

        with pytest.raises(ProviderAPIError, match="Invalid API key"):
            await backend.generate_object("x", None, LabelArgs)

    @pytest.mark.anyio()
    async def test_stream_text_reads_ndjson(self) -> None:
        lines = [
            json.dumps({"message": {"content": "Hi "}, "done": False}),
            json.dumps({"message": {"content": "there"}, "done": False}),
            json.dumps({"message": {"content": ""}, "done": True, "prompt_eval_count": 5, "eval_count": 2}),
        ]
        transport, _ = _recording_transport([httpx.Response(200, content="\n".join(lines).encode())])
        backend = OllamaBackend("http://localhost:11434", "llama3.1", transport=transport)

        events = await _events(backend.stream_text("Hi", None))

        assert events == [
            TextDelta("Hi "),
            TextDelta("there"),
            StreamFinish(TokenUsage(prompt_tokens=5, completion_tokens=2)),
        ]

    @pytest.mark.anyio()
    async def test_text_only_first_step_raises(self) -> None:
        transport, _ = _recording_transport(
            [httpx.Response(200, json={"message": {"content": "I think Finance."}, "done": True})]
        )
        backend = OllamaBackend("http://localhost:11434", "llama3.1", transport=transport)
        tools = {"pick": Tool(name="pick", description="Pick", parameters=LabelArgs)}

        with pytest.raises(ProviderAPIError, match="did not call a tool") as exc_info:
            await backend.generate_with_tools("Choose", None, tools, max_steps=3)

        assert exc_info.value.provider == "ollama"

    @pytest.mark.anyio()
    async def test_text_only_later_step_ends_chain(self) -> None:
        transport, requests = _recording_transport(
            [
                httpx.Response(
                    200,
                    json={
                        "message": {
                            "tool_calls": [{"function": {"name": "lookup", "arguments": {"label": "vendor"}}}]
                        }
                    },
                ),
                httpx.Response(200, json={"message": {"content": "Labelled as Acme."}}),
            ]
        )
        backend = OllamaBackend("http://localhost:11434", "llama3.1", transport=transport)
        lookup = AsyncMock(return_value="Acme")
        tools = {"lookup": Tool(name="lookup", description="Look up", parameters=LabelArgs, execute=lookup)}

        result = await backend.generate_with_tools("Choose", None, tools, max_steps=3)

        assert [c.name for c in result.tool_calls] == ["lookup"]
        assert result.text == "Labelled as Acme."
        assert result.steps == 2
        assert len(requests) == 2


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------


def _tool_use(name: str, arguments: dict[str, Any], call_id: str = "toolu_1") -> SimpleNamespace:
    return SimpleNamespace(type="tool_use", id=call_id, name=name, input=arguments)


def _response(*blocks: SimpleNamespace, input_tokens: int = 10, output_tokens: int = 5) -> SimpleNamespace:
    return SimpleNamespace(
        content=list(blocks),
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


class _FakeMessageStream:
    def __init__(self, chunks: list[str]) -> None:
        self._chunks = chunks

    async def __aenter__(self) -> _FakeMessageStream:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    @property
    async def text_stream(self) -> AsyncIterator[str]:
        for chunk in self._chunks:
            yield chunk

    async def get_final_message(self) -> SimpleNamespace:
        return _response(input_tokens=6, output_tokens=len(self._chunks))


class TestAnthropicBackend:
    @pytest.mark.anyio()
    async def test_generate_object_forces_named_tool(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=_response(_tool_use("Invoices", {"label": "Acme"})))
        backend = AnthropicBackend(client, "claude-3-5-sonnet-20241022")

        result = await backend.generate_object("Label it", None, LabelArgs, schema_name="Invoices")

        assert result.object.label == "Acme"
        assert result.usage == TokenUsage(prompt_tokens=10, completion_tokens=5)
        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["tool_choice"] == {"type": "tool", "name": "Invoices"}
        assert kwargs["tools"][0]["input_schema"] == LabelArgs.model_json_schema()
        assert "system" not in kwargs

    @pytest.mark.anyio()
    async def test_stream_text_yields_chunks_then_usage(self) -> None:
        client = MagicMock()
        client.messages.stream = MagicMock(return_value=_FakeMessageStream(["Good ", "morning"]))
        backend = AnthropicBackend(client, "claude-3-5-sonnet-20241022")

        events = await _events(backend.stream_text("Greet", "Be kind"))

        assert events == [
            TextDelta("Good "),
            TextDelta("morning"),
            StreamFinish(TokenUsage(prompt_tokens=6, completion_tokens=2)),
        ]
        assert client.messages.stream.call_args.kwargs["system"] == "Be kind"

    @pytest.mark.anyio()
    async def test_tool_chain_runs_execute_and_feeds_results_back(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(
            side_effect=[
                _response(_tool_use("lookup", {"label": "vendor"}, "t1")),
                _response(_tool_use("finish", {"label": "Acme"}, "t2")),
            ]
        )
        backend = AnthropicBackend(client, "claude-3-5-sonnet-20241022")
        lookup = AsyncMock(return_value={"vendor": "Acme"})
        tools = {
            "lookup": Tool(name="lookup", description="Look up", parameters=LabelArgs, execute=lookup),
            "finish": Tool(name="finish", description="Done", parameters=LabelArgs),
        }

        result = await backend.generate_with_tools("Go", None, tools, max_steps=5)

        assert [c.name for c in result.tool_calls] == ["lookup", "finish"]
        assert result.steps == 2
        assert result.usage.total_tokens == 30
        lookup.assert_awaited_once_with(LabelArgs(label="vendor"))
        assert client.messages.create.await_args_list[0].kwargs["tool_choice"] == {"type": "any"}
        second_messages = client.messages.create.await_args_list[1].kwargs["messages"]
        assert second_messages[-1]["content"][0] == {
            "type": "tool_result",
            "tool_use_id": "t1",
            "content": '{"vendor": "Acme"}',
        }

    @pytest.mark.anyio()
    async def test_tool_chain_stops_at_max_steps(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=_response(_tool_use("lookup", {"label": "x"})))
        backend = AnthropicBackend(client, "claude-3-5-sonnet-20241022")
        tools = {"lookup": Tool(name="lookup", description="", parameters=LabelArgs, execute=AsyncMock(return_value="ok"))}

        result = await backend.generate_with_tools("Go", None, tools, max_steps=2)

        assert result.steps == 2
        assert client.messages.create.await_count == 2
        assert len(result.tool_results) == 2

    @pytest.mark.anyio()
    async def test_unknown_tool_raises(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=_response(_tool_use("nope", {})))
        backend = AnthropicBackend(client, "claude-3-5-sonnet-20241022")

        with pytest.raises(ValueError, match="unknown tool"):
            await backend.generate_with_tools("Go", None, {"pick": Tool("pick", "", LabelArgs)})


class TestCreateBackend:
    def test_openai_and_groq_use_openai_compatible_backend(self) -> None:
        openai = create_backend(BackendConfig(kind=BackendKind.OPEN_AI, model="gpt-4o", api_key="sk"))
        groq = create_backend(BackendConfig(kind=BackendKind.GROQ, model="llama", api_key="gsk"))

        assert isinstance(openai, OpenAICompatibleBackend)
        assert openai.provider == "openai"
        assert isinstance(groq, OpenAICompatibleBackend)
        assert groq.provider == "groq"

    def test_anthropic_and_bedrock_use_anthropic_backend(self) -> None:
        direct = create_backend(BackendConfig(kind=BackendKind.ANTHROPIC, model="claude-3", api_key="sk-ant"))
        bedrock = create_backend(
            BackendConfig(
                kind=BackendKind.BEDROCK,
                model="anthropic.claude",
                aws_access_key="AKIA",
                aws_secret_key="secret",
                aws_region="us-east-1",
            )
        )

        assert isinstance(direct, AnthropicBackend)
        assert isinstance(bedrock, AnthropicBackend)
        assert bedrock.model == "anthropic.claude"

    def test_ollama_backend(self) -> None:
        backend = create_backend(
            BackendConfig(kind=BackendKind.OLLAMA, model="llama3.1", base_url="http://localhost:11434")
        )
        assert isinstance(backend, OllamaBackend)
