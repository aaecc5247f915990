"""
Unit tests for TokenSink and CompletionController.
"""
import pytest

from conftest import FakeEngine
from budgetbot.config.prompt_templates import GENERATION_ERROR_MESSAGE
from budgetbot.config.settings import settings
from budgetbot.src.core.chat_memory import ChatMemory
from budgetbot.src.core.completion import CompletionController, TokenSink
from budgetbot.src.core.errors import GenerationFailure
from budgetbot.src.core.models import ConversationTurn, Prompt, Segment
from budgetbot.src.core.prompt_format import GEMMA

PROMPT = Prompt(segments=(Segment("user", "How much did I spend on groceries?"),), user_query="How much did I spend on groceries?")


class TestTokenSink:
    """Tests for batching and stop detection."""

    def test_batches_in_order(self):
        partials = []
        sink = TokenSink(partials.append, batch_size=2)
        for token in ["a", "b", "c", "d", "e"]:
            sink.push(token)
        sink.flush()

        assert partials == ["ab", "cd", "e"]
        assert sink.text == "abcde"
        assert sink.token_count == 5

    def test_stop_sequence_split_across_tokens(self):
        """Test a stop arriving in pieces is never forwarded."""
        partials = []
        sink = TokenSink(partials.append, batch_size=1, stops=("<end_of_turn>",))
        for token in ["Hello", "<end_of", "_turn>trailing"]:
            sink.push(token)
        sink.flush()

        assert sink.stopped
        assert sink.text == "Hello"
        assert partials == ["Hello"]

    def test_earliest_stop_wins(self):
        sink = TokenSink(None, stops=("<end_of_turn>", "[Stopped]"))
        sink.push("A[Stopped]B<end_of_turn>")

        assert sink.text == "A"

    def test_pushes_after_stop_ignored(self):
        sink = TokenSink(None, stops=("STOP",))
        sink.push("xSTOP")
        sink.push("more")

        assert sink.text == "x"
        assert sink.token_count == 1

    def test_held_back_prefix_released_on_flush(self):
        """Test text that only looked like a stop prefix is forwarded at the end."""
        partials = []
        sink = TokenSink(partials.append, stops=("<end_of_turn>",))
        sink.push("a <")
        sink.flush()

        assert "".join(partials) == "a <"

    def test_leak_tokens_dropped_from_partials(self):
        partials = []
        sink = TokenSink(partials.append, leaks=("<eos>",))
        for token in ["Total $5.", "<e", "os>", " done"]:
            sink.push(token)
        sink.flush()

        assert partials == ["Total $5.", " done"]
        assert sink.text == "Total $5.<eos> done"


class TestCompletionController:
    @pytest.fixture
    def memory(self, store):
        return ChatMemory(store)

    @pytest.mark.asyncio
    async def test_streams_cleans_and_persists(self, store, memory):
        engine = FakeEngine(["You ", "spent ", "$54.20.", "<end_of_turn>", "<start_of_turn>user\n", "ignored"])
        partials = []

        reply = await CompletionController(engine, memory, prompt_format=GEMMA).generate(PROMPT, on_partial=partials.append)

        assert reply == "You spent $54.20."
        assert "".join(partials) == "You spent $54.20."
        assert engine.yielded == 4
        assert store.turns == [
            ConversationTurn("user", "How much did I spend on groceries?"),
            ConversationTurn("assistant", "You spent $54.20."),
        ]

    @pytest.mark.asyncio
    async def test_streamed_text_matches_stored_reply(self, memory):
        engine = FakeEngine(["Total $5.", "<eos>", " done"])
        partials = []

        reply = await CompletionController(engine, memory, prompt_format=GEMMA).generate(PROMPT, on_partial=partials.append)

        assert reply == "Total $5. done"
        assert partials == ["Total $5.", " done"]

    @pytest.mark.asyncio
    async def test_rendered_prompt_and_options(self, memory):
        engine = FakeEngine("Fine.")

        await CompletionController(engine, memory, prompt_format=GEMMA).generate(PROMPT, max_tokens=64)

        prompt, options = engine.calls[0]
        assert prompt == GEMMA.render(PROMPT)
        assert options.max_tokens == 64
        assert options.temperature == settings.TEMPERATURE
        assert options.stop == GEMMA.stop_sequences

    @pytest.mark.asyncio
    async def test_batching(self, memory):
        engine = FakeEngine(["a", "b", "c"])
        partials = []

        await CompletionController(engine, memory, prompt_format=GEMMA, flush_token_count=2).generate(PROMPT, on_partial=partials.append)

        assert partials == ["ab", "c"]

    @pytest.mark.asyncio
    async def test_failure_returns_error_and_persists_nothing(self, store, memory, failing_engine):
        reply = await CompletionController(failing_engine, memory, prompt_format=GEMMA).generate(PROMPT)

        assert reply == GENERATION_ERROR_MESSAGE
        assert store.turns == []

    @pytest.mark.asyncio
    async def test_mid_stream_failure(self, store, memory):
        engine = FakeEngine((["Partial ", "answer"], GenerationFailure("connection reset")))

        reply = await CompletionController(engine, memory, prompt_format=GEMMA).generate(PROMPT)

        assert reply == GENERATION_ERROR_MESSAGE
        assert store.turns == []
