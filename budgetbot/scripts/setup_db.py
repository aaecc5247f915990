"""
BudgetBot - Database Setup & Ingestion Script
==============================================
CLI entry point that orchestrates:
    1. Validate settings (fail-fast on a missing key or URI).
    2. Open the ``BudgetStore`` (optionally drop / reset first).
    3. Ingest the bundled ledger once, and any extra files given.
    4. Print a structured execution summary with timing breakdown.

Flags:
    --file PATH     Ingest a text file (repeatable).
    --kind KIND     Chunker for --file: paragraph (default) or fixed_width.
    --ledger PATH   Ledger JSON to load (default: settings.LEDGER_PATH).
    --drop          Drop the LanceDB table and clear app flags before ingesting.
    --reset         Clear all units AND app flags (full re-ingestion).
    --skip-ledger   Do not attempt the one-time ledger ingestion.
    --list          List stored units (id + preview) and exit.
    --show ID       Print one stored unit in full and exit.
    --delete ID     Delete one stored unit and exit.

Usage:
    python -m budgetbot.scripts.setup_db
    python -m budgetbot.scripts.setup_db --reset
    python -m budgetbot.scripts.setup_db --file notes.txt --kind paragraph
    python -m budgetbot.scripts.setup_db --list
    python -m budgetbot.scripts.setup_db --delete 3f2c9a...
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="setup_db", description="BudgetBot — Initialise the stores and run document ingestion.")
    parser.add_argument("--file", action="append", type=Path, default=[], help="Text file to ingest (repeatable).")
    parser.add_argument("--kind", choices=["paragraph", "fixed_width"], default="paragraph", help="Chunking strategy for --file inputs.")
    parser.add_argument("--ledger", type=Path, default=None, help="Ledger JSON path (defaults to settings.LEDGER_PATH).")
    parser.add_argument("--drop", action="store_true", default=False, help="Drop the LanceDB table and clear app flags (the ledger reloads).")
    parser.add_argument("--reset", action="store_true", default=False, help="Clear all units AND app flags (full clean re-ingestion).")
    parser.add_argument("--skip-ledger", action="store_true", default=False, help="Skip the one-time ledger ingestion.")

    manage = parser.add_mutually_exclusive_group()
    manage.add_argument("--list", action="store_true", default=False, help="List stored units with a text preview, then exit.")
    manage.add_argument("--show", metavar="ID", default=None, help="Print one stored unit in full, then exit.")
    manage.add_argument("--delete", metavar="ID", default=None, help="Delete one stored unit, then exit.")
    return parser.parse_args(argv)


# ── Main Orchestration ─────────────────────────────────────────────────

async def run(args: argparse.Namespace) -> int:
    from budgetbot.config.settings import settings
    from budgetbot.src.core.chunker import ChunkerKind
    from budgetbot.src.core.engine import build_embedder
    from budgetbot.src.core.errors import BudgetBotError
    from budgetbot.src.core.ingestor import IngestionPipeline
    from budgetbot.src.database.store import BudgetStore
    from budgetbot.src.utils.logger import get_logger

    logger = get_logger(__name__)

    if _wants_management(args):
        async with BudgetStore() as store:
            return await _manage_units(args, store)

    _print_header(settings)

    t_start = time.perf_counter()
    embedder = build_embedder()

    store = BudgetStore()
    await store.open()
    try:
        if args.drop:
            logger.warning("Dropping table '%s' as requested.", settings.LANCEDB_TABLE_NAME)
            await _drop_units(store)

        pipeline = IngestionPipeline(store, embedder)
        if args.reset:
            await pipeline.reset()

        total_chunks = 0
        sources = 0
        try:
            if not args.skip_ledger:
                if await pipeline.ingest_initial_data_if_needed(args.ledger, on_progress=logger.info):
                    sources += 1

            for path in args.file:
                summary = await pipeline.ingest_file(path, ChunkerKind(args.kind), on_progress=logger.debug)
                total_chunks += int(summary["total_chunks"])  # type: ignore[arg-type]
                sources += 1
        except BudgetBotError as exc:
            logger.error("Ingestion aborted: %s", exc)
            return 1

        _print_footer(sources, store.units.count(), time.perf_counter() - t_start)
        return 0
    finally:
        store.close()


# ── Unit management ────────────────────────────────────────────────────

def _wants_management(args: argparse.Namespace) -> bool:
    return args.list or args.show is not None or args.delete is not None


async def _drop_units(store) -> None:
    """Recreate an empty units table and forget the ingestion flags."""
    store.units.drop_table()
    store.units.open()
    await store.clear_flags()


async def _manage_units(args: argparse.Namespace, store) -> int:
    """Handle ``--list`` / ``--show`` / ``--delete`` against an opened store."""
    from budgetbot.src.core.vector_index import VectorIndex
    from budgetbot.src.utils.logger import get_logger
    from budgetbot.src.utils.text_utils import preview

    logger = get_logger(__name__)
    index = VectorIndex(store)
    units = await index.all()

    if args.list:
        for unit in units:
            print(f"  {unit.id}  {preview(unit.text)}")
        print(f"\n  {len(units)} unit(s) stored.")
        return 0

    unit_id = args.show if args.show is not None else args.delete
    unit = next((u for u in units if u.id == unit_id), None)
    if unit is None:
        logger.error("Unit '%s' not found.", unit_id)
        return 1

    if args.show is not None:
        print(unit.text)
        return 0

    await index.delete(unit.id)
    logger.info("Deleted unit '%s'.", unit.id)
    print(f"  Deleted unit {unit.id}.")
    return 0


def main() -> None:
    args = _parse_args()
    try:
        from budgetbot.config.settings import settings  # noqa: F401
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        sys.exit(1)

    sys.exit(asyncio.run(run(args)))


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: object) -> None:
    mongo_uri_val = settings.MONGO_URI.get_secret_value()  # type: ignore[attr-defined]
    mongo_masked = mongo_uri_val.split("@")[-1] if "@" in mongo_uri_val else mongo_uri_val

    print()
    print("=" * 60)
    print("  BUDGETBOT — Store Setup & Ingestion")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                   # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL}")       # type: ignore[attr-defined]
    print(f"  LanceDB path : {settings.LANCEDB_PATH}")          # type: ignore[attr-defined]
    print(f"  MongoDB      : {mongo_masked} (db: {settings.MONGO_DB_NAME})")  # type: ignore[attr-defined]
    print(f"  Ledger       : {settings.LEDGER_PATH}")           # type: ignore[attr-defined]
    print("=" * 60)
    print()


def _print_footer(sources: int, total_units: int, elapsed: float) -> None:
    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Sources ingested     : {sources}")
    print(f"  Units in table       : {total_units}")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
