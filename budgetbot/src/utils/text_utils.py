"""
BudgetBot - Text Utilities
===========================
Helper functions for text cleaning and normalisation.

These utilities are consumed by the chunkers, the query rewriter and
the completion controller, and should remain stateless and
side-effect-free.
"""

from __future__ import annotations

import re
import unicodedata


# ── Patterns ───────────────────────────────────────────────────────────
# C0/C1 controls other than tab and line breaks, plus invisible format marks
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")

_QUOTE_CHARS = "\"'`“”‘’«»"
_RE_WHITESPACE = re.compile(r"\s+")
_RE_INLINE_SPACE = re.compile(r"[^\S\n]+")
_RE_BLANK_RUN = re.compile(r"\n{3,}")


# ── Public API ─────────────────────────────────────────────────────────

def clean_text(text: str) -> str:
    """
    Normalise a ledger export before it is split into units.

    The text is NFC-composed, invisible characters (BOM, zero-width
    joiners, soft hyphens) are dropped, inline whitespace collapses to
    single spaces, every line is trimmed and blank runs shrink to one
    empty line.  Line structure is otherwise preserved so paragraph
    chunking still sees its boundaries.
    """
    composed = _NON_PRINTABLE_RE.sub("", unicodedata.normalize("NFC", text))
    trimmed = "\n".join(_RE_INLINE_SPACE.sub(" ", line).strip() for line in composed.splitlines())
    return _RE_BLANK_RUN.sub("\n\n", trimmed).strip()


def strip_quotes(text: str) -> str:
    """Remove surrounding whitespace and wrapping quote characters."""
    previous = None
    while previous != text:
        previous = text
        text = text.strip().strip(_QUOTE_CHARS)
    return text


def preview(text: str, width: int = 50) -> str:
    """Single-line, truncated rendering of *text* for log messages."""
    flat = _RE_WHITESPACE.sub(" ", text).strip()
    return flat if len(flat) <= width else flat[: width - 1] + "…"
