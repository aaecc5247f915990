"""
BudgetBot - Store
==================
The persistence capability consumed by the retrieval core, and the
``BudgetStore`` that implements it over LanceDB (units) and MongoDB
(turns + flags).

Lifecycle: ``BudgetStore(...)`` → ``await store.open()`` (connect,
create schema if absent) → ready.  The application root owns the
instance and passes it into ``VectorIndex``, ``ChatMemory`` and the
ingestion pipeline; nothing reaches it through module state.

Usage:
    async with BudgetStore() as store:
        index = VectorIndex(store)
        memory = ChatMemory(store)
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Protocol, TypeVar, runtime_checkable

from budgetbot.src.core.models import ConversationTurn, Role, Unit
from budgetbot.src.database.chat_store import ConversationStore
from budgetbot.src.database.vector_store import UnitTable
from budgetbot.src.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@runtime_checkable
class Store(Protocol):
    """Structural type for any backend the pipeline can persist to."""

    async def put_unit(self, text: str, vector: Sequence[float]) -> str: ...

    async def list_units(self) -> list[Unit]: ...

    async def delete_unit(self, unit_id: str) -> None: ...

    async def clear_units(self) -> None: ...

    async def append_turn(self, role: Role, text: str) -> None: ...

    async def list_turns(self, limit: int) -> list[ConversationTurn]: ...

    async def clear_turns(self) -> None: ...

    async def get_flag(self, key: str) -> str | None: ...

    async def set_flag(self, key: str, value: str) -> None: ...

    async def clear_flags(self) -> None: ...


class BudgetStore:
    """
    Composite store: ``UnitTable`` for units, ``ConversationStore`` for
    turns and flags.

    Parameters
    ----------
    units
        Optional custom ``UnitTable``.
    conversation
        Optional custom ``ConversationStore``.
    """

    __slots__ = ("_units", "_conversation", "_ready")

    def __init__(self, units: UnitTable | None = None, conversation: ConversationStore | None = None) -> None:
        self._units = units or UnitTable()
        self._conversation = conversation or ConversationStore()
        self._ready = False


    async def open(self) -> BudgetStore:
        await self._run(self._units.open)
        await self._conversation.open()
        self._ready = True
        logger.info("[STORE] Ready — %d unit(s) on disk.", self._units.count())
        return self


    def close(self) -> None:
        self._conversation.close()
        self._ready = False


    @property
    def ready(self) -> bool:
        return self._ready


    @property
    def units(self) -> UnitTable:
        return self._units


    async def __aenter__(self) -> BudgetStore:
        return await self.open()


    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


    @staticmethod
    async def _run(func: Callable[..., T], *args: object) -> T:
        """Run a blocking LanceDB call in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    # ── Units ──────────────────────────────────────────────────────────

    async def put_unit(self, text: str, vector: Sequence[float]) -> str:
        return await self._run(self._units.put, text, vector)


    async def list_units(self) -> list[Unit]:
        return await self._run(self._units.scan)


    async def delete_unit(self, unit_id: str) -> None:
        await self._run(self._units.delete, unit_id)


    async def clear_units(self) -> None:
        await self._run(self._units.clear)

    # ── Turns & flags ──────────────────────────────────────────────────

    async def append_turn(self, role: Role, text: str) -> None:
        await self._conversation.append_turn(role, text)


    async def list_turns(self, limit: int) -> list[ConversationTurn]:
        return await self._conversation.list_turns(limit)


    async def clear_turns(self) -> None:
        await self._conversation.clear_turns()


    async def get_flag(self, key: str) -> str | None:
        return await self._conversation.get_flag(key)


    async def set_flag(self, key: str, value: str) -> None:
        await self._conversation.set_flag(key, value)


    async def clear_flags(self) -> None:
        await self._conversation.clear_flags()
