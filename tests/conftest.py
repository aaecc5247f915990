"""
Shared fixtures: in-memory store, deterministic embedder and a scripted
generation engine.
"""
import asyncio
import os

# Required settings must exist before any budgetbot import
os.environ.setdefault("GOOGLE_API_KEY", "test-google-key")
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("ENV", "prod")

import pytest

from budgetbot.src.core.engine import GenerationOptions, drain
from budgetbot.src.core.errors import GenerationFailure
from budgetbot.src.core.models import ConversationTurn, Unit


class InMemoryStore:
    """Dict-backed ``Store`` with increasing insertion sequence numbers."""

    def __init__(self):
        self.units = []
        self.turns = []
        self.flags = {}
        self._seq = 0

    async def put_unit(self, text, vector):
        unit_id = f"u{self._seq}"
        self.units.append(Unit(id=unit_id, text=text, vector=tuple(float(x) for x in vector), seq=self._seq))
        self._seq += 1
        return unit_id

    async def list_units(self):
        return list(self.units)

    async def delete_unit(self, unit_id):
        self.units = [u for u in self.units if u.id != unit_id]

    async def clear_units(self):
        self.units = []

    async def append_turn(self, role, text):
        self.turns.append(ConversationTurn(role=role, text=text))

    async def list_turns(self, limit):
        if limit <= 0:
            return []
        return list(self.turns[-limit:])

    async def clear_turns(self):
        self.turns = []

    async def get_flag(self, key):
        return self.flags.get(key)

    async def set_flag(self, key, value):
        self.flags[key] = value

    async def clear_flags(self):
        self.flags = {}


class FakeEmbedder:
    """
    Bag-of-keywords embedder.

    Each dimension counts one vocabulary word (case-insensitive).  Texts
    listed in *vectors* get that exact vector instead.
    """

    def __init__(self, vocabulary=(), vectors=None):
        self.vocabulary = [w.lower() for w in vocabulary]
        self.vectors = dict(vectors or {})
        self.queries = []
        self.documents = []

    def _vector(self, text):
        if text in self.vectors:
            return list(self.vectors[text])
        lowered = text.lower()
        return [float(lowered.count(word)) for word in self.vocabulary]

    def embed_documents(self, texts):
        self.documents.extend(texts)
        return [self._vector(t) for t in texts]

    def embed_query(self, text):
        self.queries.append(text)
        return self._vector(text)


class FakeEngine:
    """
    Scripted ``GenerationEngine``.

    Each call consumes the next reply: a string (streamed word by word),
    a list of tokens, or an exception (raised after any tokens listed
    before it in a ``(tokens, exc)`` tuple).
    """

    def __init__(self, *replies, delay=0.0):
        self.replies = list(replies)
        self.delay = delay
        self.calls = []
        self.yielded = 0
        self.active = 0
        self.max_active = 0

    def _next_reply(self):
        if not self.replies:
            return ["ok"], None
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            return [], reply
        if isinstance(reply, tuple):
            return list(reply[0]), reply[1]
        if isinstance(reply, str):
            words = reply.split(" ")
            return [w if i == len(words) - 1 else w + " " for i, w in enumerate(words)], None
        return list(reply), None

    async def stream(self, prompt, options):
        self.calls.append((prompt, options))
        tokens, exc = self._next_reply()
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            for token in tokens:
                await asyncio.sleep(self.delay)
                self.yielded += 1
                yield token
            if exc is not None:
                raise exc
        finally:
            self.active -= 1

    async def complete(self, prompt, options, on_token=None):
        return await drain(self.stream(prompt, options), on_token)

    @property
    def prompts(self):
        return [p for p, _ in self.calls]


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def embedder():
    return FakeEmbedder(vocabulary=["account", "balance", "october", "groceries", "transaction"])


@pytest.fixture
def failing_engine():
    return FakeEngine(GenerationFailure("engine offline"))


@pytest.fixture
def options():
    return GenerationOptions(max_tokens=32)
