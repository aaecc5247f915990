"""
BudgetBot - UnitTable
======================
Durable home of ledger units on top of LanceDB:
  • the units table is created from ``UNIT_SCHEMA``
  • units are inserted, enumerated and deleted by id
  • ``seq`` records insertion order for the similarity tie-break

LanceDB only stores rows here.  Similarity search is a linear cosine
scan owned by ``VectorIndex`` so scoring and the recency tie-break do
not depend on the backend.

Notes:
  • ``_get_connection()`` keeps one ``lancedb.DBConnection`` per
    directory.
  • Nothing touches disk until ``open()``; any other call on an
    unopened table raises ``StoreFailure``.
  • The local LanceDB API blocks, so ``BudgetStore`` runs these
    methods in the default executor.

Usage:
    from budgetbot.src.database.vector_store import UnitTable
    table = UnitTable(db_path="/tmp/lancedb")
    table.open()
    unit_id = table.put("October 2025 Transaction History ...", [0.1, 0.2, 0.3])
    units = table.scan()
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager

import lancedb
import pyarrow as pa

from budgetbot.config.settings import settings
from budgetbot.src.core.errors import StoreFailure
from budgetbot.src.core.models import Unit
from budgetbot.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
UnitRecord = dict[str, str | int | list[float]]

# ── LanceDB Table Schema ──────────────────────────────────────────────
UNIT_SCHEMA = pa.schema([
    pa.field("id", pa.utf8()),
    pa.field("text", pa.utf8()),
    pa.field("vector", pa.list_(pa.float64())),
    pa.field("seq", pa.int64()),
])

# ── Constants ──────────────────────────────────────────────────────────
_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}


def _get_connection(db_path: str) -> lancedb.DBConnection:
    """
    Connect to *db_path* once per process.

    Every ``UnitTable`` pointed at the same directory shares the cached
    connection; ``_DB_LOCK`` guards the cache.
    """
    if db_path not in _db_connection_cache:
        with _DB_LOCK:
            if db_path not in _db_connection_cache:
                logger.info("Opening new LanceDB connection: %s", db_path)
                _db_connection_cache[db_path] = lancedb.connect(db_path)
    return _db_connection_cache[db_path]


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Translate driver errors into ``StoreFailure``."""
    try:
        yield
    except StoreFailure:
        raise
    except Exception as exc:
        logger.error("[STORE] LanceDB %s failed: %s", operation, exc)
        raise StoreFailure(f"LanceDB {operation} failed: {exc}") from exc


class UnitTable:
    """
    Durable storage for ``Unit`` records in a LanceDB table.

    Parameters
    ----------
    db_path
        Override the database directory.  Defaults to ``settings.LANCEDB_PATH``.
    table_name
        Override the table name.  Defaults to ``settings.LANCEDB_TABLE_NAME``.
    """

    __slots__ = ("_db_path", "_table_name", "db", "table", "_next_seq", "_lock")

    def __init__(self, db_path: str | None = None, table_name: str | None = None) -> None:
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self.db: lancedb.DBConnection | None = None
        self.table: lancedb.table.Table | None = None
        self._next_seq: int = 0
        self._lock = threading.Lock()


    def open(self) -> None:
        """Open (or re-use) the LanceDB connection and create the table if absent."""
        with _store_errors("open"):
            self.db = _get_connection(self._db_path)

            self.table = self.db.create_table(self._table_name, schema=UNIT_SCHEMA, exist_ok=True)
            logger.info("Opened table '%s' (%d rows).", self._table_name, self.table.count_rows())

            seqs = self.table.to_arrow().column("seq").to_pylist()
            self._next_seq = max(seqs, default=-1) + 1


    @property
    def is_open(self) -> bool:
        return self.table is not None


    def _require_table(self) -> lancedb.table.Table:
        if self.table is None:
            raise StoreFailure("Unit table is not open. Call open() first.")
        return self.table


    def put(self, text: str, vector: Sequence[float]) -> str:
        """Persist one unit and return its new id."""
        table = self._require_table()
        unit_id = uuid.uuid4().hex

        with self._lock:
            seq = self._next_seq
            self._next_seq += 1

        record: UnitRecord = {"id": unit_id, "text": text, "vector": [float(x) for x in vector], "seq": seq}
        with _store_errors("insert"):
            table.add([record])

        logger.debug("[STORE] Unit %s stored (seq=%d, dim=%d).", unit_id, seq, len(vector))
        return unit_id


    def scan(self) -> list[Unit]:
        """Return every stored unit, oldest first."""
        table = self._require_table()
        with _store_errors("scan"):
            rows: list[UnitRecord] = table.to_arrow().to_pylist()

        rows.sort(key=lambda r: r["seq"])  # type: ignore[arg-type, return-value]
        return [Unit(id=str(r["id"]), text=str(r["text"]), vector=tuple(r["vector"]), seq=int(r["seq"])) for r in rows]  # type: ignore[arg-type]


    def delete(self, unit_id: str) -> None:
        table = self._require_table()
        with _store_errors("delete"):
            table.delete(f"id = {_quote(unit_id)}")
        logger.info("[STORE] Unit %s deleted.", unit_id)


    def clear(self) -> None:
        """Delete every row but keep the table and its schema."""
        table = self._require_table()
        with _store_errors("clear"):
            table.delete("id IS NOT NULL")
        logger.info("[STORE] Table '%s' cleared.", self._table_name)


    def count(self) -> int:
        """Return the total number of rows in the table."""
        if self.table is None:
            return 0
        with _store_errors("count"):
            return self.table.count_rows()


    def drop_table(self) -> None:
        """Drop the table entirely (used by ``setup_db --drop``)."""
        if self.db is None:
            logger.warning("No database connection; nothing to drop.")
            return
        try:
            self.db.drop_table(self._table_name)
            self.table = None
            logger.info("Dropped table '%s'.", self._table_name)
        except ValueError:
            logger.warning("Table '%s' not found; nothing to drop.", self._table_name)
        except OSError as exc:
            logger.error("Filesystem error dropping table '%s': %s", self._table_name, exc)
            raise StoreFailure(f"Could not drop table '{self._table_name}': {exc}") from exc


    def __repr__(self) -> str:
        return f"UnitTable(db='{self._db_path}', table='{self._table_name}', rows={self.count()})"
