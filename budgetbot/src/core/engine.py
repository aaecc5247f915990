"""
BudgetBot - Engine Bindings
============================
The two external capabilities the pipeline consumes, and the Gemini
bindings for them.

``Embedder``
    Any LangChain-compatible embedding model (``embed_documents`` /
    ``embed_query``).  Calls are blocking, so ``embed_text`` runs them
    in the default executor.

``GenerationEngine``
    ``stream(prompt, options)`` yields token strings lazily, once, in
    order; ``complete(prompt, options, on_token)`` drains the stream and
    returns the full text.  Bindings raise ``GenerationFailure`` on any
    engine error.

``SerializedEngine``
    Wraps an engine so at most one generation (rewrite or answer) is in
    flight at a time.  The engine holds mutable inference state.

``GeminiEngine``
    ``ChatGoogleGenerativeAI`` binding.  One model instance is cached per
    distinct sampling configuration.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from budgetbot.config.settings import settings
from budgetbot.src.core.errors import GenerationFailure
from budgetbot.src.utils.logger import get_logger

logger = get_logger(__name__)

TokenCallback = Callable[[str], None]


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    max_tokens: int
    temperature: float = 0.0
    top_p: float | None = None
    top_k: int | None = None
    stop: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class Completion:
    text: str


# ══════════════════════════════════════════════════════════════════════
#  PROTOCOLS
# ══════════════════════════════════════════════════════════════════════


@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]: ...

    def embed_query(self, text: str) -> list[float]: ...


@runtime_checkable
class GenerationEngine(Protocol):
    def stream(self, prompt: str, options: GenerationOptions) -> AsyncIterator[str]: ...

    async def complete(self, prompt: str, options: GenerationOptions, on_token: TokenCallback | None = None) -> Completion: ...


async def embed_text(embedder: Embedder, text: str) -> list[float]:
    """Embed one query string without blocking the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, embedder.embed_query, text)


async def drain(tokens: AsyncIterator[str], on_token: TokenCallback | None = None) -> Completion:
    """Consume a token stream, forwarding each token, and return the full text."""
    parts: list[str] = []
    async with aclosing(tokens):  # type: ignore[type-var]
        async for token in tokens:
            parts.append(token)
            if on_token is not None:
                on_token(token)
    return Completion(text="".join(parts))


# ══════════════════════════════════════════════════════════════════════
#  SERIALIZATION
# ══════════════════════════════════════════════════════════════════════


class SerializedEngine:
    """Queue generations against one engine in issue order."""

    __slots__ = ("_engine", "_lock")

    def __init__(self, engine: GenerationEngine) -> None:
        self._engine = engine
        self._lock = asyncio.Lock()


    @property
    def busy(self) -> bool:
        return self._lock.locked()


    async def stream(self, prompt: str, options: GenerationOptions) -> AsyncIterator[str]:
        # The lock is held until the consumer finishes or closes the stream
        async with self._lock:
            async with aclosing(self._engine.stream(prompt, options)) as tokens:  # type: ignore[type-var]
                async for token in tokens:
                    yield token


    async def complete(self, prompt: str, options: GenerationOptions, on_token: TokenCallback | None = None) -> Completion:
        async with self._lock:
            return await self._engine.complete(prompt, options, on_token)


# ══════════════════════════════════════════════════════════════════════
#  GEMINI BINDINGS
# ══════════════════════════════════════════════════════════════════════


def _chunk_text(chunk: object) -> str:
    """Extract plain text from a LangChain message chunk."""
    content = getattr(chunk, "content", chunk)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(p if isinstance(p, str) else str(p.get("text", "")) for p in content if isinstance(p, (str, dict)))
    return ""


class GeminiEngine:
    """
    Generation engine backed by ``ChatGoogleGenerativeAI``.

    Parameters
    ----------
    model
        Override the model id.  Defaults to ``settings.LLM_MODEL``.
    """

    __slots__ = ("_model", "_models")

    def __init__(self, model: str | None = None) -> None:
        self._model = model or settings.LLM_MODEL
        self._models: dict[tuple[float, float | None, int | None, int], object] = {}


    def _llm_for(self, options: GenerationOptions) -> object:
        key = (options.temperature, options.top_p, options.top_k, options.max_tokens)
        if key not in self._models:
            from langchain_google_genai import ChatGoogleGenerativeAI

            self._models[key] = ChatGoogleGenerativeAI(model=self._model, temperature=options.temperature, top_p=options.top_p, top_k=options.top_k, max_output_tokens=options.max_tokens, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
            logger.info("LLM initialised: %s (temperature=%.1f, max_tokens=%d)", self._model, options.temperature, options.max_tokens)
        return self._models[key]


    async def stream(self, prompt: str, options: GenerationOptions) -> AsyncIterator[str]:
        from langchain_core.messages import HumanMessage

        llm = self._llm_for(options)
        try:
            async for chunk in llm.astream([HumanMessage(content=prompt)], stop=list(options.stop) or None):  # type: ignore[attr-defined]
                text = _chunk_text(chunk)
                if text:
                    yield text
        except GenerationFailure:
            raise
        except Exception as exc:
            logger.exception("[ENGINE] %s streaming call failed.", self._model)
            raise GenerationFailure(f"{self._model} failed: {exc}") from exc


    async def complete(self, prompt: str, options: GenerationOptions, on_token: TokenCallback | None = None) -> Completion:
        return await drain(self.stream(prompt, options), on_token)


def build_embedder() -> Embedder:
    """Create the Gemini embedding model from settings."""
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    logger.info("Embedder initialised: %s", settings.EMBEDDING_MODEL)
    return embedder
