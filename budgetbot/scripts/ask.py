"""
BudgetBot - Ask
================
Stream one answer to stdout.

Usage:
    python -m budgetbot.scripts.ask "How much did I spend on groceries in October?"
    python -m budgetbot.scripts.ask --new-session "What is my balance?"
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="ask", description="BudgetBot — ask a question about your finances.")
    parser.add_argument("query", help="The question to answer.")
    parser.add_argument("--new-session", action="store_true", default=False, help="Clear chat memory before asking.")
    return parser.parse_args(argv)


def _write(chunk: str) -> None:
    sys.stdout.write(chunk)
    sys.stdout.flush()


async def run(args: argparse.Namespace) -> int:
    from budgetbot.config.prompt_templates import GENERATION_ERROR_MESSAGE
    from budgetbot.src.core.engine import GeminiEngine, build_embedder
    from budgetbot.src.core.rag_engine import RAGManager
    from budgetbot.src.database.store import BudgetStore

    async with BudgetStore() as store:
        rag = RAGManager(store, build_embedder(), GeminiEngine())
        if args.new_session:
            await rag.reset_session()

        answer = await rag.answer_query(args.query, on_partial=_write)
        print()

    return 1 if answer == GENERATION_ERROR_MESSAGE else 0


def main() -> None:
    sys.exit(asyncio.run(run(_parse_args())))


if __name__ == "__main__":
    main()
