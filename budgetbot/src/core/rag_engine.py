"""
BudgetBot - RAG Engine
=======================
Orchestrates the query-time pipeline behind ``answer_query``.

Architecture (OOP)
------------------
``ChatMemory``
    Bounded, ordered conversation turns from the store.

``QueryRewriter``
    Standalone rewrite of vague follow-ups (soft-fails to the original).

``Retriever``
    rewrite → embed → cosine search over the ``VectorIndex``.

``assemble``
    Pure prompt construction: system (first turn only) + history +
    context block + original query.

``CompletionController``
    Streams the completion, cleans it, persists the exchange.

``RAGManager``
    Flow:
        1. Fetch history → last ``HISTORY_LIMIT`` turns
        2. Retrieve → rewrite if vague, embed, search (top-K, threshold)
        3. Build prompt → system (first turn) + context + history
        4. Generate → stream partials, stop at next-turn boundary
        5. Save → user query + cleaned reply to chat memory
        6. Return answer

All steps run as one sequential chain per request.  Rewrite and answer
generations share one ``SerializedEngine`` so at most one is in flight.

Usage:
    from budgetbot.src.core.rag_engine import RAGManager
    rag = RAGManager(store, embedder, GeminiEngine())
    answer = await rag.answer_query("How much did I spend in October?", on_partial=print)
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from budgetbot.config.prompt_templates import GENERATION_ERROR_MESSAGE, SYSTEM_INSTRUCTIONS
from budgetbot.config.settings import settings
from budgetbot.src.core.assembler import assemble
from budgetbot.src.core.chat_memory import ChatMemory
from budgetbot.src.core.completion import CompletionController, PartialCallback
from budgetbot.src.core.engine import Embedder, GenerationEngine, SerializedEngine
from budgetbot.src.core.models import Prompt, RetrievalCandidate
from budgetbot.src.core.prompt_format import PromptFormat, get_prompt_format
from budgetbot.src.core.retriever import RetrievalResult, Retriever
from budgetbot.src.core.rewriter import QueryRewriter
from budgetbot.src.core.vector_index import VectorIndex
from budgetbot.src.database.store import Store
from budgetbot.src.utils.logger import get_logger
from budgetbot.src.utils.text_utils import preview

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Answer:
    text: str
    retrieval_query: str
    candidates: tuple[RetrievalCandidate, ...]
    prompt: Prompt
    failed: bool


class RAGManager:
    """
    Orchestrates the full RAG pipeline: memory → retrieve → assemble → generate.

    Parameters
    ----------
    store
        An opened ``Store`` (units, turns, flags).
    embedder
        An ``Embedder``-compatible object for query embedding.
    engine
        The generation engine.  Wrapped in ``SerializedEngine`` unless
        it already is one.
    rewrite_engine
        Optional separate engine for query rewriting.  Defaults to
        *engine* (same lock).
    prompt_format
        Overrides ``settings.PROMPT_FORMAT``.
    system_instructions
        Overrides ``SYSTEM_INSTRUCTIONS``.
    history_limit
        Overrides ``settings.HISTORY_LIMIT``.
    retriever
        Optional custom ``Retriever``.
    """

    __slots__ = ("_memory", "_index", "_engine", "_format", "_retriever", "_controller", "_system", "_history_limit")

    def __init__(
        self,
        store: Store,
        embedder: Embedder,
        engine: GenerationEngine,
        rewrite_engine: GenerationEngine | None = None,
        prompt_format: PromptFormat | None = None,
        system_instructions: str | None = None,
        history_limit: int | None = None,
        retriever: Retriever | None = None,
    ) -> None:
        self._engine = engine if isinstance(engine, SerializedEngine) else SerializedEngine(engine)
        self._format = prompt_format or get_prompt_format(settings.PROMPT_FORMAT)
        self._memory = ChatMemory(store)
        self._index = VectorIndex(store)
        self._system = SYSTEM_INSTRUCTIONS if system_instructions is None else system_instructions
        self._history_limit = settings.HISTORY_LIMIT if history_limit is None else history_limit

        if rewrite_engine is not None and not isinstance(rewrite_engine, SerializedEngine):
            rewrite_engine = SerializedEngine(rewrite_engine)
        rewriter = QueryRewriter(rewrite_engine or self._engine, prompt_format=self._format)
        self._retriever = retriever or Retriever(self._index, embedder, rewriter)
        self._controller = CompletionController(self._engine, self._memory, prompt_format=self._format)


    @property
    def memory(self) -> ChatMemory:
        return self._memory


    @property
    def index(self) -> VectorIndex:
        return self._index


    async def answer(self, query: str, on_partial: PartialCallback | None = None, max_tokens: int | None = None) -> Answer:
        """Run the pipeline and return the reply with its retrieval trace."""
        t_start = time.perf_counter()

        # ── 1. Fetch windowed history ─────────────────────────────────
        history = await self._memory.recent(self._history_limit)
        logger.info("[RAG] History fetched: %d turn(s).", len(history))

        # ── 2. Retrieve ───────────────────────────────────────────────
        t_search = time.perf_counter()
        retrieval: RetrievalResult = await self._retriever.retrieve(query, history)
        search_ms = (time.perf_counter() - t_search) * 1000

        # ── 3. Build prompt ───────────────────────────────────────────
        prompt = assemble(query, history, retrieval.candidates, self._system)

        # ── 4-5. Generate, stream, persist ────────────────────────────
        t_llm = time.perf_counter()
        text = await self._controller.generate(prompt, max_tokens=max_tokens, on_partial=on_partial)
        llm_ms = (time.perf_counter() - t_llm) * 1000

        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[RAG] '%s' answered in %.1fms (retrieve=%.1f, llm=%.1f).", preview(query), total_ms, search_ms, llm_ms)

        return Answer(text=text, retrieval_query=retrieval.retrieval_query, candidates=retrieval.candidates, prompt=prompt, failed=text == GENERATION_ERROR_MESSAGE)


    async def answer_query(self, query: str, on_partial: PartialCallback | None = None) -> str:
        """Single entry point: retrieval, assembly and generation for *query*."""
        answer = await self.answer(query, on_partial=on_partial)
        return answer.text


    async def reset_session(self) -> None:
        """Forget the conversation so the next query is a first turn."""
        await self._memory.clear()
