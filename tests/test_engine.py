"""
Unit tests for engine helpers, serialization and the Gemini binding.
"""
import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from conftest import FakeEmbedder, FakeEngine
from budgetbot.src.core.engine import GeminiEngine, GenerationOptions, SerializedEngine, _chunk_text, drain, embed_text
from budgetbot.src.core.errors import GenerationFailure


async def _tokens(*items):
    for item in items:
        yield item


class TestHelpers:
    @pytest.mark.asyncio
    async def test_drain_forwards_and_joins(self):
        seen = []

        completion = await drain(_tokens("a", "b", "c"), seen.append)

        assert completion.text == "abc"
        assert seen == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_embed_text(self):
        embedder = FakeEmbedder(vocabulary=["rent"])

        assert await embed_text(embedder, "Rent and more rent") == [2.0]
        assert embedder.queries == ["Rent and more rent"]

    def test_chunk_text(self):
        assert _chunk_text(SimpleNamespace(content="hi")) == "hi"
        assert _chunk_text(SimpleNamespace(content=[{"type": "text", "text": "a"}, "b"])) == "ab"
        assert _chunk_text(SimpleNamespace(content=None)) == ""


class TestSerializedEngine:
    @pytest.mark.asyncio
    async def test_calls_never_overlap(self, options):
        inner = FakeEngine("one two three", "four five six", delay=0.01)
        engine = SerializedEngine(inner)

        results = await asyncio.gather(engine.complete("p1", options), engine.complete("p2", options))

        assert inner.max_active == 1
        assert [r.text for r in results] == ["one two three", "four five six"]

    @pytest.mark.asyncio
    async def test_stream_holds_lock_until_closed(self, options):
        engine = SerializedEngine(FakeEngine(["a", "b", "c"]))
        stream = engine.stream("p", options)

        assert await stream.__anext__() == "a"
        assert engine.busy
        await stream.aclose()
        assert not engine.busy

    @pytest.mark.asyncio
    async def test_stream_and_complete_queue(self, options):
        inner = FakeEngine("first answer", "rewrite", delay=0.01)
        engine = SerializedEngine(inner)

        async def consume():
            return [t async for t in engine.stream("p1", options)]

        streamed, completed = await asyncio.gather(consume(), engine.complete("p2", options))

        assert inner.max_active == 1
        assert "".join(streamed) == "first answer"
        assert completed.text == "rewrite"


class TestGeminiEngine:
    """Tests for the LangChain binding with the chat model mocked."""

    @staticmethod
    def _fake_llm(*chunks, error=None):
        llm = MagicMock()
        llm.stops = []

        async def astream(messages, stop=None):
            llm.stops.append(stop)
            llm.messages = messages
            for chunk in chunks:
                yield SimpleNamespace(content=chunk)
            if error is not None:
                raise error

        llm.astream = astream
        return llm

    @pytest.mark.asyncio
    async def test_stream_yields_text(self):
        llm = self._fake_llm("You ", "", "spent $5.")
        options = GenerationOptions(max_tokens=16, stop=("<end_of_turn>",))

        with patch("langchain_google_genai.ChatGoogleGenerativeAI", return_value=llm) as chat_cls:
            engine = GeminiEngine(model="test-model")
            tokens = [t async for t in engine.stream("prompt text", options)]
            await engine.complete("again", options)

        assert tokens == ["You ", "spent $5."]
        assert llm.stops == [["<end_of_turn>"], ["<end_of_turn>"]]
        assert llm.messages[0].content == "again"
        chat_cls.assert_called_once()
        assert chat_cls.call_args.kwargs["model"] == "test-model"
        assert chat_cls.call_args.kwargs["max_output_tokens"] == 16

    @pytest.mark.asyncio
    async def test_one_model_per_sampling_config(self):
        with patch("langchain_google_genai.ChatGoogleGenerativeAI", side_effect=lambda **_: self._fake_llm("x")) as chat_cls:
            engine = GeminiEngine(model="test-model")
            await engine.complete("p", GenerationOptions(max_tokens=8))
            await engine.complete("p", GenerationOptions(max_tokens=8))
            await engine.complete("p", GenerationOptions(max_tokens=8, temperature=0.7))

        assert chat_cls.call_count == 2

    @pytest.mark.asyncio
    async def test_errors_become_generation_failure(self):
        llm = self._fake_llm("partial", error=RuntimeError("quota exceeded"))

        with patch("langchain_google_genai.ChatGoogleGenerativeAI", return_value=llm):
            with pytest.raises(GenerationFailure, match="quota exceeded"):
                await GeminiEngine(model="test-model").complete("p", GenerationOptions(max_tokens=8))
