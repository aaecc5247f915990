"""
BudgetBot - Error Taxonomy
===========================

``IngestionError``
    Empty or unreadable source, no units produced.  The caller must not
    mark ingestion complete.
``StoreFailure``
    Persistence unavailable.  Fatal to the current operation.
``GenerationFailure``
    Raised by engine bindings.  The completion controller turns it into
    ``GENERATION_ERROR_MESSAGE``; it never crosses the retrieval or
    assembly layers.

Rewrite failures are not exceptions: see ``RewriteFailed`` in
``budgetbot.src.core.rewriter``.
"""


class BudgetBotError(Exception):
    """Base class for all BudgetBot errors."""


class IngestionError(BudgetBotError):
    """A source document produced no units or could not be read."""


class StoreFailure(BudgetBotError):
    """The persistent store rejected or failed an operation."""


class GenerationFailure(BudgetBotError):
    """The generation engine failed to produce a completion."""
