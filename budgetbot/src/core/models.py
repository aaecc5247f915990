"""
BudgetBot - Data Model
=======================
Immutable records shared across the pipeline.

``Unit`` and ``ConversationTurn`` are persisted by the store;
``RetrievalCandidate`` and ``Prompt`` are derived per request and never
stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

Role = Literal["user", "assistant"]
SegmentRole = Literal["system", "user", "assistant"]

ROLES: frozenset[str] = frozenset({"user", "assistant"})


@dataclass(frozen=True, slots=True)
class Unit:
    """A retrievable piece of text and its embedding."""

    id: str
    text: str
    vector: tuple[float, ...]
    # Insertion order inside the owning index; larger is newer.
    seq: int = field(default=0, compare=False)


@dataclass(frozen=True, slots=True)
class ConversationTurn:
    role: Role
    text: str


@dataclass(frozen=True, slots=True)
class RetrievalCandidate:
    unit: Unit
    score: float


@dataclass(frozen=True, slots=True)
class Segment:
    role: SegmentRole
    text: str


@dataclass(frozen=True, slots=True)
class Prompt:
    """
    Ordered role-tagged segments ready for serialization.

    ``user_query`` is the literal utterance of the current turn, kept
    separately from the (context-augmented) last segment so the
    completion controller can persist exactly what the user typed.
    """

    segments: tuple[Segment, ...]
    user_query: str

    @property
    def has_system(self) -> bool:
        return any(s.role == "system" for s in self.segments)
