"""
BudgetBot - IngestionPipeline
==============================
Reads a source, chunks it with an explicitly chosen strategy, embeds the
units and stores them in the ``VectorIndex``.

Key design decisions:
    • **Dependency Injection** – receives the store + embedder.
    • **Explicit chunker** – the caller declares the input kind
      (``ChunkerKind``); file names are never sniffed.
    • **Batched embedding** – units are embedded ``_EMBED_BATCH_SIZE`` at a
      time via ``embed_documents`` in the default executor.
    • **One-time ledger load** – ``ingest_initial_data_if_needed`` is
      guarded by a persisted flag that is only set after every unit has
      been stored.
    • **No silent success** – a source that yields zero units raises
      ``IngestionError``.

Usage:
    from budgetbot.src.core.ingestor import IngestionPipeline
    pipeline = IngestionPipeline(store, embedder)
    summary = await pipeline.ingest_file(Path("notes.txt"), ChunkerKind.PARAGRAPH)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from pathlib import Path

from budgetbot.config.settings import settings
from budgetbot.src.core.chunker import ChunkerKind, get_chunker
from budgetbot.src.core.engine import Embedder
from budgetbot.src.core.errors import IngestionError
from budgetbot.src.core.vector_index import VectorIndex
from budgetbot.src.database.store import Store
from budgetbot.src.utils.logger import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[str], None]
IngestionSummary = dict[str, int | float | str | list[str]]

_EMBED_BATCH_SIZE = 64


def _noop(_: str) -> None:
    return None


class IngestionPipeline:
    """
    End-to-end ingestion: read → chunk → embed → store.

    Parameters
    ----------
    store
        An opened ``Store`` (injected).
    embedder
        An embedding model exposing ``embed_documents``.
    chunk_size
        Fixed-width window override.  Defaults to ``settings.CHUNK_SIZE``.
    """

    __slots__ = ("_store", "_index", "_embedder", "_chunk_size")

    def __init__(self, store: Store, embedder: Embedder, chunk_size: int | None = None) -> None:
        self._store = store
        self._index = VectorIndex(store)
        self._embedder = embedder
        self._chunk_size = chunk_size

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINTS
    # ══════════════════════════════════════════════════════════════════

    async def ingest_text(self, text: str, kind: ChunkerKind, on_progress: ProgressCallback | None = None, source: str = "<text>") -> IngestionSummary:
        """
        Chunk, embed and store *text*.

        Raises
        ------
        IngestionError
            If the source is empty or produces no units.
        """
        progress = on_progress or _noop
        t_start = time.perf_counter()

        if not text.strip():
            raise IngestionError(f"Source '{source}' is empty.")

        t_chunk = time.perf_counter()
        chunks = get_chunker(kind, self._chunk_size).chunk(text)
        chunk_ms = (time.perf_counter() - t_chunk) * 1000
        if not chunks:
            raise IngestionError(f"Source '{source}' produced no units.")

        logger.info("[INGEST] '%s' → %d unit(s) via %s in %.1fms.", source, len(chunks), kind.value, chunk_ms)
        progress(f"Processing {len(chunks)} data chunks...")

        t_embed = time.perf_counter()
        vectors = await self._embed(chunks)
        embed_ms = (time.perf_counter() - t_embed) * 1000

        ids: list[str] = []
        for i, (chunk, vector) in enumerate(zip(chunks, vectors), 1):
            progress(f"Storing chunk {i} of {len(chunks)}...")
            ids.append(await self._index.insert(chunk, vector))

        elapsed = time.perf_counter() - t_start
        logger.info("[INGEST] '%s' complete — embed: %.1fms, total: %.2fs.", source, embed_ms, elapsed)
        return self._summary(source, kind, ids, elapsed)


    async def ingest_file(self, path: Path, kind: ChunkerKind, on_progress: ProgressCallback | None = None) -> IngestionSummary:
        """Read *path* and ingest it as *kind*."""
        text = self._read_file(path)
        return await self.ingest_text(text, kind, on_progress=on_progress, source=path.name)


    async def ingest_initial_data_if_needed(self, ledger_path: Path | None = None, on_progress: ProgressCallback | None = None) -> bool:
        """
        Load the bundled ledger once.

        Returns ``True`` when data was ingested, ``False`` when the flag
        says it already was.  On failure the flag is left unset and the
        error propagates.
        """
        progress = on_progress or _noop
        flag = settings.INITIAL_DATA_FLAG

        if await self._store.get_flag(flag) == "true":
            progress("Profile data already loaded.")
            logger.info("[INGEST] Flag '%s' set — skipping initial load.", flag)
            return False

        path = ledger_path or settings.LEDGER_PATH
        progress("Loading bank profile...")
        try:
            await self.ingest_file(path, ChunkerKind.LEDGER, on_progress=progress)
        except IngestionError as exc:
            progress(f"Error: {exc}")
            raise

        await self._store.set_flag(flag, "true")
        progress("Bank profile successfully embedded.")
        return True


    async def reset(self) -> None:
        """Delete every unit and every flag so the next start re-ingests."""
        await self._index.clear()
        await self._store.clear_flags()
        logger.warning("[INGEST] RAG database and app flags have been reset.")

    # ══════════════════════════════════════════════════════════════════
    #  HELPERS
    # ══════════════════════════════════════════════════════════════════

    async def _embed(self, chunks: list[str]) -> list[list[float]]:
        loop = asyncio.get_running_loop()
        vectors: list[list[float]] = []
        for i in range(0, len(chunks), _EMBED_BATCH_SIZE):
            batch = chunks[i : i + _EMBED_BATCH_SIZE]
            try:
                vectors.extend(await loop.run_in_executor(None, self._embedder.embed_documents, batch))
            except Exception as exc:
                logger.error("Embedding batch %d–%d failed: %s", i, i + len(batch) - 1, exc)
                raise
        return vectors


    @staticmethod
    def _read_file(filepath: Path) -> str:
        """Read a text file (UTF-8, with a latin-1 fallback)."""
        try:
            try:
                return filepath.read_text(encoding="utf-8-sig")
            except UnicodeDecodeError:
                return filepath.read_text(encoding="latin-1")
        except OSError as exc:
            logger.error("Failed to read %s: %s", filepath, exc)
            raise IngestionError(f"Failed to read {filepath.name}: {exc}") from exc


    @staticmethod
    def _summary(source: str, kind: ChunkerKind, ids: list[str], elapsed: float) -> IngestionSummary:
        return {
            "source": source,
            "kind": kind.value,
            "total_chunks": len(ids),
            "unit_ids": ids,
            "elapsed_seconds": round(elapsed, 2),
        }
