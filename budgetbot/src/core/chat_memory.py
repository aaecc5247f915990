"""
BudgetBot - ChatMemory
=======================
Bounded, ordered view over the conversation turns in a ``Store``.

Session reset is the surrounding application's job (``clear()`` at
session start); no automatic expiry happens here.
"""

from __future__ import annotations

from budgetbot.src.core.models import ROLES, ConversationTurn, Role
from budgetbot.src.database.store import Store
from budgetbot.src.utils.logger import get_logger

logger = get_logger(__name__)


class ChatMemory:
    __slots__ = ("_store",)

    def __init__(self, store: Store) -> None:
        self._store = store


    async def append(self, role: Role, text: str) -> None:
        if role not in ROLES:
            raise ValueError(f"Unknown role {role!r}; expected one of {sorted(ROLES)}.")
        await self._store.append_turn(role, text)


    async def recent(self, limit: int) -> list[ConversationTurn]:
        """The last *limit* turns, oldest first.  ``limit <= 0`` gives ``[]``."""
        if limit <= 0:
            return []
        turns = await self._store.list_turns(limit)
        logger.debug("[MEMORY] %d turn(s) loaded (limit=%d).", len(turns), limit)
        return turns


    async def clear(self) -> None:
        await self._store.clear_turns()
        logger.info("[MEMORY] Conversation cleared.")
