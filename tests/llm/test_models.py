"""Tests for token usage accounting and text streams."""

from __future__ import annotations

from collections.abc import AsyncIterator
from unittest.mock import AsyncMock

import pytest

from inbox_assistant.llm.models import StreamEvent, StreamFinish, TextDelta, TextStream, TokenUsage


async def _events(*events: StreamEvent) -> AsyncIterator[StreamEvent]:
    for event in events:
        yield event


class TestTokenUsage:
    def test_total_and_addition(self) -> None:
        usage = TokenUsage(prompt_tokens=10, completion_tokens=2) + TokenUsage(
            prompt_tokens=5, completion_tokens=3
        )
        assert usage == TokenUsage(prompt_tokens=15, completion_tokens=5)
        assert usage.total_tokens == 20


class TestTextStream:
    @pytest.mark.anyio()
    async def test_on_complete_runs_once_with_text_and_usage(self) -> None:
        on_complete = AsyncMock()
        on_error = AsyncMock()
        usage = TokenUsage(prompt_tokens=1, completion_tokens=2)
        stream = TextStream(
            events=_events(TextDelta("a"), TextDelta("b"), StreamFinish(usage)),
            on_complete=on_complete,
            on_error=on_error,
        )

        assert await stream.collect() == "ab"

        on_complete.assert_awaited_once_with("ab", usage)
        on_error.assert_not_awaited()
        assert stream.usage == usage

    @pytest.mark.anyio()
    async def test_second_iteration_raises(self) -> None:
        stream = TextStream(events=_events(TextDelta("a")), on_complete=AsyncMock(), on_error=AsyncMock())
        await stream.collect()

        with pytest.raises(RuntimeError):
            stream.__aiter__()

    @pytest.mark.anyio()
    async def test_failure_runs_on_error_and_reraises(self) -> None:
        async def failing() -> AsyncIterator[StreamEvent]:
            yield TextDelta("partial")
            raise ConnectionError("dropped")

        on_complete = AsyncMock()
        on_error = AsyncMock()
        stream = TextStream(events=failing(), on_complete=on_complete, on_error=on_error)

        with pytest.raises(ConnectionError):
            await stream.collect()

        on_error.assert_awaited_once()
        on_complete.assert_not_awaited()
        assert stream.text is None
