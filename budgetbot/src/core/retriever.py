"""
BudgetBot - Retriever
======================
rewrite → embed → search.  "Nothing relevant" is an empty result, not
an error; downstream stages render a placeholder for it.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass

from budgetbot.config.settings import settings
from budgetbot.src.core.engine import Embedder, embed_text
from budgetbot.src.core.models import ConversationTurn, RetrievalCandidate
from budgetbot.src.core.rewriter import QueryRewriter, RewriteResult
from budgetbot.src.core.vector_index import VectorIndex
from budgetbot.src.utils.logger import get_logger
from budgetbot.src.utils.text_utils import preview

logger = get_logger(__name__)

_DEFAULT = object()


@dataclass(frozen=True, slots=True)
class RetrievalResult:
    original_query: str
    retrieval_query: str
    rewrite: RewriteResult
    candidates: tuple[RetrievalCandidate, ...]


class Retriever:
    """
    Parameters
    ----------
    index
        The ``VectorIndex`` to search.
    embedder
        Embedding model used for the retrieval query.
    rewriter
        ``QueryRewriter`` applied before embedding.
    top_k
        Overrides ``settings.SEARCH_TOP_K``.
    threshold
        Overrides ``settings.RELEVANCE_THRESHOLD``; pass ``None`` to
        disable the cutoff.
    """

    __slots__ = ("_index", "_embedder", "_rewriter", "_top_k", "_threshold")

    def __init__(self, index: VectorIndex, embedder: Embedder, rewriter: QueryRewriter, top_k: int | None = None, threshold: float | None | object = _DEFAULT) -> None:
        self._index = index
        self._embedder = embedder
        self._rewriter = rewriter
        self._top_k = settings.SEARCH_TOP_K if top_k is None else top_k
        self._threshold: float | None = settings.RELEVANCE_THRESHOLD if threshold is _DEFAULT else threshold  # type: ignore[assignment]


    async def retrieve(self, query: str, history: Sequence[ConversationTurn]) -> RetrievalResult:
        """Return the ranked units relevant to *query* given *history*."""
        rewrite = await self._rewriter.rewrite(query, history)
        retrieval_query = rewrite.or_else(query)

        t_embed = time.perf_counter()
        vector = await embed_text(self._embedder, retrieval_query)
        embed_ms = (time.perf_counter() - t_embed) * 1000

        candidates = await self._index.search(vector, self._top_k, self._threshold)
        if not candidates:
            logger.warning("[RETRIEVE] No unit cleared the threshold for '%s'.", preview(retrieval_query))

        logger.info("[RETRIEVE] %d candidate(s) for '%s' (embed=%.1fms).", len(candidates), preview(retrieval_query), embed_ms)
        return RetrievalResult(original_query=query, retrieval_query=retrieval_query, rewrite=rewrite, candidates=tuple(candidates))
