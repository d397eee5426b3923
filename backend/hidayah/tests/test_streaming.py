"""
Tests for the streaming adapter and SSE framing.
"""

import json

import pytest

from .conftest import FakeProvider
from ..core.exceptions import GenerationError
from ..core.streaming import STREAM_ERROR_MESSAGE, StreamEvent, stream_answer
from ..utils.prompts import STREAMING_SYSTEM_PROMPT


CHUNKS = ["## Patience\n\n", "Seek help through patience ", "and prayer (2:153).\n\n", "Those who persevere (103:3)."]


async def collect(events):
    return [event async for event in events]


class TestStreamAnswer:
    """Tests for stream_answer."""

    @pytest.mark.asyncio
    async def test_event_order(self, sample_verses):
        provider = FakeProvider(chunks=CHUNKS)
        events = await collect(stream_answer(provider, "patience?", sample_verses))

        types = [e.type for e in events]
        assert types == ["context"] + ["text"] * len(CHUNKS) + ["done"]

    @pytest.mark.asyncio
    async def test_context_event_carries_verses(self, sample_verses):
        provider = FakeProvider(chunks=CHUNKS)
        events = await collect(stream_answer(provider, "patience?", sample_verses))

        context = events[0].data
        assert [(v["surah"], v["ayah"]) for v in context] == [(2, 153), (2, 155), (103, 3)]
        assert context[0]["ref"] == "(2:153)"
        assert context[0]["arabic"].startswith("يَا")

    @pytest.mark.asyncio
    async def test_done_matches_concatenated_text(self, sample_verses):
        provider = FakeProvider(chunks=CHUNKS)
        events = await collect(stream_answer(provider, "patience?", sample_verses))

        text = "".join(e.data for e in events if e.type == "text")
        done = events[-1].data
        assert done["fullContent"] == text == "".join(CHUNKS)
        assert done["citations"] == [{"surah": 2, "ayah": 153}, {"surah": 103, "ayah": 3}]

    @pytest.mark.asyncio
    async def test_citation_split_across_chunks(self, sample_verses):
        provider = FakeProvider(chunks=["Patience (2:", "153) matters."])
        events = await collect(stream_answer(provider, "patience?", sample_verses))

        assert events[-1].data["citations"] == [{"surah": 2, "ayah": 153}]

    @pytest.mark.asyncio
    async def test_upstream_failure_emits_error_instead_of_done(self, sample_verses):
        provider = FakeProvider(chunks=["Patience "], stream_error=GenerationError("connection reset"))
        events = await collect(stream_answer(provider, "patience?", sample_verses))

        assert [e.type for e in events] == ["context", "text", "error"]
        assert events[-1].data == STREAM_ERROR_MESSAGE
        assert provider.stream_closed

    @pytest.mark.asyncio
    async def test_prompt_shape(self, sample_verses):
        provider = FakeProvider(chunks=CHUNKS)
        await collect(stream_answer(provider, "patience?", sample_verses, max_tokens=2000, temperature=0.3))

        call = provider.stream_calls[0]
        assert call["messages"][0].content == STREAMING_SYSTEM_PROMPT
        assert call["messages"][-1].content.startswith("QUESTION: patience?")
        assert call["temperature"] == 0.3
        assert call["max_tokens"] == 2000

    @pytest.mark.asyncio
    async def test_consumer_close_closes_upstream(self, sample_verses):
        provider = FakeProvider(chunks=CHUNKS)
        events = stream_answer(provider, "patience?", sample_verses)

        assert (await events.__anext__()).type == "context"
        assert (await events.__anext__()).type == "text"
        await events.aclose()

        assert provider.stream_closed

    @pytest.mark.asyncio
    async def test_disconnect_abandons_stream(self, sample_verses):
        provider = FakeProvider(chunks=CHUNKS)
        polls = []

        async def is_disconnected():
            polls.append(True)
            return len(polls) > 1

        events = await collect(stream_answer(provider, "patience?", sample_verses, is_disconnected=is_disconnected))

        assert [e.type for e in events] == ["context", "text"]
        assert provider.stream_closed


class TestStreamEvent:
    """Tests for SSE framing."""

    def test_sse_framing(self):
        frame = StreamEvent("text", "Patience (2:153)").to_sse()

        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        assert json.loads(frame[len("data: "):]) == {"type": "text", "data": "Patience (2:153)"}

    def test_non_ascii_preserved(self):
        frame = StreamEvent("text", "الصبر").to_sse()
        assert "الصبر" in frame
