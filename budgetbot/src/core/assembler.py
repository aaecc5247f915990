"""
BudgetBot - Context Assembler
==============================
Pure, deterministic prompt construction.

Rules:
    • System instructions appear once, only when history is empty
      (first turn of the session).
    • Retrieved units become numbered ``Source Chunk`` entries in rank
      order; with no units, ``NO_CONTEXT_PLACEHOLDER`` stands in.
    • History turns follow in chronological order with their roles.
    • The current user turn carries the *original* query.  Rewriting
      only ever affects retrieval.
"""

from __future__ import annotations

from collections.abc import Sequence

from budgetbot.config.prompt_templates import CONTEXT_ENTRY_TEMPLATE, CONTEXT_SEPARATOR, CONTEXT_TEMPLATE, NO_CONTEXT_PLACEHOLDER
from budgetbot.config.settings import settings
from budgetbot.src.core.models import ConversationTurn, Prompt, RetrievalCandidate, Segment


def format_context(candidates: Sequence[RetrievalCandidate], char_limit: int | None = None) -> str:
    """Numbered context block, or the placeholder when *candidates* is empty."""
    if not candidates:
        return NO_CONTEXT_PLACEHOLDER

    limit = char_limit or settings.CONTEXT_CHAR_LIMIT
    return CONTEXT_SEPARATOR.join(
        CONTEXT_ENTRY_TEMPLATE.format(index=i, score=c.score, text=c.unit.text[:limit])
        for i, c in enumerate(candidates, 1)
    )


def assemble(query: str, history: Sequence[ConversationTurn], candidates: Sequence[RetrievalCandidate], system_instructions: str, char_limit: int | None = None) -> Prompt:
    segments: list[Segment] = []

    if not history:
        segments.append(Segment(role="system", text=system_instructions))

    segments.extend(Segment(role=turn.role, text=turn.text) for turn in history)

    user_turn = CONTEXT_TEMPLATE.format(context=format_context(candidates, char_limit), question=query)
    segments.append(Segment(role="user", text=user_turn))

    return Prompt(segments=tuple(segments), user_query=query)
