"""
BudgetBot - VectorIndex
========================
Owns the lifetime of every ``Unit`` in a store and answers
nearest-neighbour queries with a linear cosine scan.

Search cost is O(N·d) per query for N units of dimension d, which is
fine for one person's documents.  There is no approximate index.

Ranking:
    1. Score every unit: ``cosine(query, unit.vector)``.
    2. Drop scores below *threshold* (``None`` keeps everything).
    3. Sort by score descending, ties newest-first.
    4. Keep the first *top_k*.
"""

from __future__ import annotations

from collections.abc import Sequence

from budgetbot.src.core.models import RetrievalCandidate, Unit
from budgetbot.src.database.store import Store
from budgetbot.src.utils.logger import get_logger
from budgetbot.src.utils.similarity import cosine

logger = get_logger(__name__)


def rank(query_vector: Sequence[float], units: Sequence[Unit], top_k: int, threshold: float | None = None) -> list[RetrievalCandidate]:
    """Score, filter, order and cap *units* against *query_vector*."""
    if top_k <= 0:
        return []

    scored = [RetrievalCandidate(unit=u, score=cosine(query_vector, u.vector)) for u in units]
    if threshold is not None:
        scored = [c for c in scored if c.score >= threshold]

    scored.sort(key=lambda c: (-c.score, -c.unit.seq))
    return scored[:top_k]


class VectorIndex:
    """
    Unit storage plus similarity search over a ``Store``.

    Parameters
    ----------
    store
        An opened ``Store`` (injected).
    """

    __slots__ = ("_store", "_dim")

    def __init__(self, store: Store) -> None:
        self._store = store
        self._dim: int | None = None


    async def insert(self, text: str, vector: Sequence[float]) -> str:
        """
        Store a unit and return its id.

        Raises
        ------
        ValueError
            If *vector* is empty or its dimension differs from the
            units already in the index.
        """
        if not vector:
            raise ValueError("Cannot index an empty vector.")

        if self._dim is None:
            existing = await self._store.list_units()
            if existing:
                self._dim = len(existing[0].vector)
        if self._dim is not None and self._dim != len(vector):
            raise ValueError(f"Embedding dimension {len(vector)} does not match index dimension {self._dim}.")

        unit_id = await self._store.put_unit(text, vector)
        self._dim = len(vector)
        return unit_id


    async def all(self) -> list[Unit]:
        return await self._store.list_units()


    async def delete(self, unit_id: str) -> None:
        await self._store.delete_unit(unit_id)


    async def clear(self) -> None:
        await self._store.clear_units()
        self._dim = None


    async def search(self, query_vector: Sequence[float], top_k: int, threshold: float | None = None) -> list[RetrievalCandidate]:
        """Return at most *top_k* units scoring at or above *threshold*."""
        units = await self._store.list_units()
        results = rank(query_vector, units, top_k, threshold)

        logger.info("Search: %d unit(s) scanned, %d returned (top_k=%d, threshold=%s).", len(units), len(results), top_k, threshold)
        if results:
            logger.debug("Best score %.3f, worst kept %.3f.", results[0].score, results[-1].score)
        return results
