"""
BudgetBot - QueryRewriter
==========================
Turns an under-specified follow-up ("How much did I spend on that?")
into a standalone question using recent conversation history.

A query is *ambiguous* when it contains one of the configured vague
words as a whole word (case-insensitive) or is shorter than
``VAGUE_QUERY_MIN_LENGTH`` characters.  Only ambiguous queries with
non-empty history reach the engine.

The outcome is a value, never an exception:

``Unchanged``
    Rewriting was not attempted.
``Rewritten(text)``
    The engine produced an acceptable standalone question.
``RewriteFailed(reason)``
    The engine errored or returned something too short to use.

``result.or_else(query)`` yields the retrieval query in every case.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from budgetbot.config.prompt_templates import REWRITE_PROMPT, REWRITE_RESPONSE_PREFIX
from budgetbot.config.settings import settings
from budgetbot.src.core.engine import GenerationEngine, GenerationOptions
from budgetbot.src.core.models import ConversationTurn, Prompt, Segment
from budgetbot.src.core.prompt_format import PromptFormat, get_prompt_format
from budgetbot.src.utils.logger import get_logger
from budgetbot.src.utils.text_utils import preview, strip_quotes

logger = get_logger(__name__)

_ECHOED_PREFIX_RE = re.compile(r"^\s*rewritten\s+question\s*:\s*", re.IGNORECASE)


# ══════════════════════════════════════════════════════════════════════
#  RESULT TYPE
# ══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Unchanged:
    def or_else(self, original: str) -> str:
        return original


@dataclass(frozen=True, slots=True)
class Rewritten:
    text: str

    def or_else(self, original: str) -> str:
        return self.text


@dataclass(frozen=True, slots=True)
class RewriteFailed:
    reason: str

    def or_else(self, original: str) -> str:
        return original


RewriteResult = Unchanged | Rewritten | RewriteFailed


# ══════════════════════════════════════════════════════════════════════
#  REWRITER
# ══════════════════════════════════════════════════════════════════════


def build_vague_pattern(words: Iterable[str]) -> re.Pattern[str] | None:
    """Whole-word, case-insensitive alternation; longest phrases first."""
    cleaned = sorted({w.strip() for w in words if w.strip()}, key=len, reverse=True)
    if not cleaned:
        return None
    alternation = "|".join(r"\s+".join(re.escape(part) for part in w.split()) for w in cleaned)
    return re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)


class QueryRewriter:
    """
    Parameters
    ----------
    engine
        Generation engine used for the rewrite call (deterministic).
    prompt_format
        Role-delimiter convention of *engine*.
    vague_words, min_query_length, min_rewrite_length, history_turns, max_tokens
        Overrides for the matching ``settings`` fields.
    """

    __slots__ = ("_engine", "_format", "_vague_re", "_min_query_length", "_min_rewrite_length", "_history_turns", "_max_tokens")

    def __init__(
        self,
        engine: GenerationEngine,
        prompt_format: PromptFormat | None = None,
        vague_words: Iterable[str] | None = None,
        min_query_length: int | None = None,
        min_rewrite_length: int | None = None,
        history_turns: int | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._engine = engine
        self._format = prompt_format or get_prompt_format(settings.PROMPT_FORMAT)
        self._vague_re = build_vague_pattern(settings.VAGUE_WORDS if vague_words is None else vague_words)
        self._min_query_length = settings.VAGUE_QUERY_MIN_LENGTH if min_query_length is None else min_query_length
        self._min_rewrite_length = settings.MIN_REWRITE_LENGTH if min_rewrite_length is None else min_rewrite_length
        self._history_turns = settings.REWRITE_HISTORY_TURNS if history_turns is None else history_turns
        self._max_tokens = max_tokens or settings.REWRITE_MAX_TOKENS


    def is_ambiguous(self, query: str) -> bool:
        if len(query) < self._min_query_length:
            return True
        return bool(self._vague_re and self._vague_re.search(query))


    def build_prompt(self, query: str, history: Sequence[ConversationTurn]) -> str:
        recent = list(history)[-self._history_turns :] if self._history_turns > 0 else []
        history_text = "\n".join(f"{t.role}: {t.text}" for t in recent)
        instruction = REWRITE_PROMPT.format(history=history_text, question=query)
        prompt = Prompt(segments=(Segment(role="user", text=instruction),), user_query=query)
        return self._format.render(prompt, response_prefix=REWRITE_RESPONSE_PREFIX)


    async def rewrite(self, query: str, history: Sequence[ConversationTurn]) -> RewriteResult:
        """Rewrite *query* against *history* when it needs it."""
        if not history or not self.is_ambiguous(query):
            return Unchanged()

        logger.info("[REWRITE] Vague query detected, attempting rewrite: '%s'", preview(query))
        options = GenerationOptions(max_tokens=self._max_tokens, temperature=0.0, stop=(self._format.end_of_turn, "\n"))

        try:
            completion = await self._engine.complete(self.build_prompt(query, history), options)
        except Exception as exc:
            logger.warning("[REWRITE] Rewrite failed, using original query: %s", exc)
            return RewriteFailed(reason=str(exc))

        # Newline is a stop sequence; keep only the first line if the engine ran past it
        first_line = self._format.clean(completion.text).split("\n", 1)[0]
        candidate = strip_quotes(_ECHOED_PREFIX_RE.sub("", first_line))
        if len(candidate) <= self._min_rewrite_length:
            logger.warning("[REWRITE] Rewrite too short (%d chars), using original query.", len(candidate))
            return RewriteFailed(reason=f"rewrite too short: {candidate!r}")

        logger.info("[REWRITE] '%s' → '%s'", preview(query), preview(candidate))
        return Rewritten(text=candidate)
