"""
BudgetBot - ConversationStore
==============================
Async store for role-tagged conversation turns and one-off application
flags, backed by MongoDB via ``motor``.

Collection schemas::

    chat_memory: {"role": str, "text": str, "created_at": datetime}
    app_state:   {"key": str, "value": str, "updated_at": datetime}

Turn order is the ``_id`` order (ObjectIds are monotonic within one
client process), so ``recent`` sorts newest-first on ``_id``, limits,
then reverses.

The client is owned by the store instance (no module-level singleton)
and is created lazily from ``settings.MONGO_URI`` unless
one is injected.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

import motor.motor_asyncio
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from budgetbot.config.settings import settings
from budgetbot.src.core.errors import StoreFailure
from budgetbot.src.core.models import ROLES, ConversationTurn, Role
from budgetbot.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type aliases ───────────────────────────────────────────────────────
TurnDocument = dict[str, str | datetime]

# Newest first; _id breaks ties between turns stored in the same millisecond
_TURN_ORDER = [("created_at", DESCENDING), ("_id", DESCENDING)]


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Translate driver errors into ``StoreFailure``."""
    try:
        yield
    except PyMongoError as exc:
        logger.error("[STORE] MongoDB %s failed: %s", operation, exc)
        raise StoreFailure(f"MongoDB {operation} failed: {exc}") from exc


class ConversationStore:
    """
    Chat memory and flag persistence.

    Parameters
    ----------
    client
        Optional pre-built ``AsyncIOMotorClient``.  When omitted, one is
        created from ``settings.MONGO_URI`` on ``open()``.
    db_name
        Override the database name.  Defaults to ``settings.MONGO_DB_NAME``.
    """

    __slots__ = ("_client", "_owns_client", "_db_name", "_turns", "_flags")

    def __init__(self, client: motor.motor_asyncio.AsyncIOMotorClient | None = None, db_name: str | None = None) -> None:
        self._client = client
        self._owns_client = client is None
        self._db_name = db_name or settings.MONGO_DB_NAME
        self._turns = None
        self._flags = None


    async def open(self) -> None:
        """Connect, create indexes if absent, and bind the collections."""
        if self._client is None:
            self._client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_URI.get_secret_value())
            logger.info("MongoDB async client created for db '%s'.", self._db_name)

        db = self._client[self._db_name]
        turns = db[settings.MONGO_TURNS_COLLECTION]
        flags = db[settings.MONGO_FLAGS_COLLECTION]

        with _store_errors("open"):
            await flags.create_index("key", unique=True)
            await turns.create_index(_TURN_ORDER)

        self._turns = turns
        self._flags = flags
        logger.info("[STORE] Conversation store ready (db='%s').", self._db_name)


    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None
        self._turns = None
        self._flags = None


    def _require(self, collection: object | None) -> object:
        if collection is None:
            raise StoreFailure("Conversation store is not open. Call open() first.")
        return collection

    # ══════════════════════════════════════════════════════════════════
    #  TURNS
    # ══════════════════════════════════════════════════════════════════

    async def append_turn(self, role: Role, text: str) -> None:
        """Append one turn.  *role* must be ``user`` or ``assistant``."""
        if role not in ROLES:
            raise ValueError(f"Unknown role {role!r}; expected one of {sorted(ROLES)}.")
        turns = self._require(self._turns)

        document: TurnDocument = {"role": role, "text": text, "created_at": datetime.now(timezone.utc)}
        with _store_errors("append_turn"):
            await turns.insert_one(document)  # type: ignore[attr-defined]


    async def list_turns(self, limit: int) -> list[ConversationTurn]:
        """Return the most recent *limit* turns, oldest first."""
        if limit <= 0:
            return []
        turns = self._require(self._turns)

        with _store_errors("list_turns"):
            cursor = turns.find({}, {"role": 1, "text": 1}).sort(_TURN_ORDER).limit(limit)  # type: ignore[attr-defined]
            docs = await cursor.to_list(length=limit)

        docs.reverse()
        return [ConversationTurn(role=d["role"], text=d["text"]) for d in docs]


    async def clear_turns(self) -> None:
        turns = self._require(self._turns)
        with _store_errors("clear_turns"):
            result = await turns.delete_many({})  # type: ignore[attr-defined]
        logger.info("[STORE] Chat memory cleared (%d turns).", result.deleted_count)

    # ══════════════════════════════════════════════════════════════════
    #  FLAGS
    # ══════════════════════════════════════════════════════════════════

    async def get_flag(self, key: str) -> str | None:
        flags = self._require(self._flags)
        with _store_errors("get_flag"):
            doc = await flags.find_one({"key": key}, {"value": 1})  # type: ignore[attr-defined]
        if doc is None:
            return None
        return doc.get("value")


    async def set_flag(self, key: str, value: str) -> None:
        """Insert or replace a flag."""
        flags = self._require(self._flags)
        now = datetime.now(timezone.utc)
        with _store_errors("set_flag"):
            await flags.update_one({"key": key}, {"$set": {"value": value, "updated_at": now}}, upsert=True)  # type: ignore[attr-defined]


    async def clear_flags(self) -> None:
        flags = self._require(self._flags)
        with _store_errors("clear_flags"):
            await flags.delete_many({})  # type: ignore[attr-defined]
        logger.info("[STORE] App flags cleared.")
