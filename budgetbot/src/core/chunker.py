"""
BudgetBot - Chunkers
=====================
Turns a source into an ordered list of unit texts, each non-empty after
trimming.  The strategy is chosen explicitly by the caller through
``ChunkerKind``; nothing here inspects file names.

``ParagraphChunker``
    One unit per run of non-blank lines.  Line text is kept verbatim so
    re-joining the units with blank lines reproduces every non-blank
    line of the source.

``FixedWidthChunker``
    Consecutive windows of ``CHUNK_SIZE`` characters over the cleaned
    text.  Fallback for unstructured text.

``LedgerChunker``
    For a JSON ledger (profile + dated transactions under one or more
    accounts): one profile unit, then one unit per (account, month).
    Dates are anchored to noon before the month/day/year is derived so a
    timezone offset can never move a transaction across a day boundary.

Usage:
    from budgetbot.src.core.chunker import ChunkerKind, get_chunker
    units = get_chunker(ChunkerKind.PARAGRAPH).chunk(raw_text)
"""

from __future__ import annotations

import json
from datetime import date, datetime, time
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, Field, ValidationError, field_validator

from budgetbot.config.settings import settings
from budgetbot.src.core.errors import IngestionError
from budgetbot.src.utils.logger import get_logger
from budgetbot.src.utils.text_utils import clean_text

logger = get_logger(__name__)

_ANCHOR_TIME = time(hour=12)


class ChunkerKind(str, Enum):
    PARAGRAPH = "paragraph"
    FIXED_WIDTH = "fixed_width"
    LEDGER = "ledger"


class Chunker(Protocol):
    """Produce unit texts from a source."""

    def chunk(self, source: str) -> list[str]: ...


# ══════════════════════════════════════════════════════════════════════
#  PLAIN TEXT
# ══════════════════════════════════════════════════════════════════════


class ParagraphChunker:
    """Split on blank-line boundaries."""

    def chunk(self, source: str) -> list[str]:
        chunks: list[str] = []
        current: list[str] = []

        for line in source.splitlines():
            if line.strip():
                current.append(line)
            elif current:
                chunks.append("\n".join(current))
                current = []

        # Trailing run without a closing blank line
        if current:
            chunks.append("\n".join(current))

        logger.debug("Paragraph split → %d unit(s).", len(chunks))
        return chunks


class FixedWidthChunker:
    """
    Split into windows of *chunk_size* characters.

    Parameters
    ----------
    chunk_size
        Window width.  Defaults to ``settings.CHUNK_SIZE``.
    """

    __slots__ = ("_chunk_size",)

    def __init__(self, chunk_size: int | None = None) -> None:
        size = settings.CHUNK_SIZE if chunk_size is None else chunk_size
        if size < 1:
            raise ValueError(f"chunk_size must be ≥ 1, got {size}")
        self._chunk_size = size


    def chunk(self, source: str) -> list[str]:
        text = clean_text(source)
        size = self._chunk_size
        windows = (text[i : i + size] for i in range(0, len(text), size))
        chunks = [w for w in windows if w.strip()]
        logger.debug("Fixed-width split (%d chars) → %d unit(s).", size, len(chunks))
        return chunks


# ══════════════════════════════════════════════════════════════════════
#  LEDGER
# ══════════════════════════════════════════════════════════════════════


class LedgerEntry(BaseModel):
    date_transacted: str
    description: str
    amount: float
    balance: float

    @field_validator("date_transacted")
    @classmethod
    def _has_calendar_date(cls, v: str) -> str:
        anchor_date(v)
        return v


class LedgerAccount(BaseModel):
    account_name: str
    transactions: list[LedgerEntry] = Field(default_factory=list)


class LedgerProfile(BaseModel):
    full_name: str
    created_at: str


class Ledger(BaseModel):
    user_profile: LedgerProfile | None = None
    accounts: list[LedgerAccount]

    @field_validator("accounts", mode="before")
    @classmethod
    def _single_account_as_list(cls, v: object) -> object:
        if isinstance(v, dict):
            return [v]
        return v


def anchor_date(raw: str) -> datetime:
    """
    Parse the calendar-date part of *raw* and pin it to 12:00.

    ``"2025-10-03"``, ``"2025-10-03T23:30:00-07:00"`` and
    ``"2025-10-03T00:00:00Z"`` all land on October 3.
    """
    try:
        day = date.fromisoformat(raw.strip()[:10])
    except ValueError as exc:
        raise ValueError(f"Unparseable transaction date: {raw!r}") from exc
    return datetime.combine(day, _ANCHOR_TIME)


def format_long_date(moment: datetime) -> str:
    """``October 3, 2025``"""
    return f"{moment:%B} {moment.day}, {moment.year}"


def format_month(moment: datetime) -> str:
    """``October 2025``"""
    return f"{moment:%B} {moment.year}"


def format_entry(entry: LedgerEntry) -> str:
    moment = anchor_date(entry.date_transacted)
    return f"On {format_long_date(moment)}: {entry.description}, Amount: ${entry.amount:.2f}, Balance: ${entry.balance:.2f}"


class LedgerChunker:
    """Split a JSON ledger into profile and per-account monthly units."""

    def chunk(self, source: str) -> list[str]:
        ledger = self.parse(source)
        chunks: list[str] = []

        if ledger.user_profile is not None:
            profile = ledger.user_profile
            chunks.append(f"User Profile: Full Name: {profile.full_name}, Member Since: {profile.created_at}")

        for account in ledger.accounts:
            chunks.extend(self._account_chunks(account))

        logger.info("Ledger split → %d unit(s) across %d account(s).", len(chunks), len(ledger.accounts))
        return chunks


    @staticmethod
    def parse(source: str) -> Ledger:
        """Validate *source* as a ledger, raising ``IngestionError`` on bad input."""
        try:
            data = json.loads(source)
        except json.JSONDecodeError as exc:
            raise IngestionError(f"Ledger is not valid JSON: {exc}") from exc

        if not isinstance(data, dict) or not data.get("accounts"):
            raise IngestionError("Ledger is missing the required 'accounts' object.")

        try:
            return Ledger.model_validate(data)
        except ValidationError as exc:
            raise IngestionError(f"Ledger failed validation: {exc}") from exc


    @staticmethod
    def _account_chunks(account: LedgerAccount) -> list[str]:
        # Months keep first-appearance order
        by_month: dict[str, list[LedgerEntry]] = {}
        for entry in account.transactions:
            month = format_month(anchor_date(entry.date_transacted))
            by_month.setdefault(month, []).append(entry)

        return [
            f"{month} Transaction History for {account.account_name}:\n" + "\n".join(format_entry(e) for e in entries)
            for month, entries in by_month.items()
        ]


# ══════════════════════════════════════════════════════════════════════
#  SELECTION
# ══════════════════════════════════════════════════════════════════════


def get_chunker(kind: ChunkerKind, chunk_size: int | None = None) -> Chunker:
    """Return the chunker for an explicitly declared input kind."""
    if kind is ChunkerKind.PARAGRAPH:
        return ParagraphChunker()
    if kind is ChunkerKind.FIXED_WIDTH:
        return FixedWidthChunker(chunk_size)
    if kind is ChunkerKind.LEDGER:
        return LedgerChunker()
    raise ValueError(f"Unknown chunker kind: {kind!r}")
