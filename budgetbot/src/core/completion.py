"""
BudgetBot - Completion Controller
==================================
Drives the generation engine for one assembled prompt:

    1. Render the prompt in the engine's format.
    2. Consume the engine's one-pass token stream through a ``TokenSink``
       that accumulates text and flushes batches to ``on_partial``.
    3. Stop consuming as soon as a stop sequence shows up.
    4. Clean leaked delimiters and run-on ``user`` turns.
    5. Persist the user query and the reply, in that order, once.

Any engine failure yields ``GENERATION_ERROR_MESSAGE`` and persists
nothing.  Store failures propagate.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import aclosing

from budgetbot.config.prompt_templates import GENERATION_ERROR_MESSAGE
from budgetbot.config.settings import settings
from budgetbot.src.core.chat_memory import ChatMemory
from budgetbot.src.core.engine import GenerationEngine, GenerationOptions
from budgetbot.src.core.models import Prompt
from budgetbot.src.core.prompt_format import PromptFormat, get_prompt_format
from budgetbot.src.utils.logger import get_logger

logger = get_logger(__name__)

PartialCallback = Callable[[str], None]


class TokenSink:
    """
    Accumulates streamed tokens and forwards them in batches.

    Tokens are forwarded in arrival order, *batch_size* at a time.  Once
    the accumulated text contains a stop sequence the sink marks itself
    ``stopped``; only text before the stop is ever forwarded.  Leaked
    delimiter tokens (*leaks*) are dropped from forwarded batches, so the
    streamed text matches the cleaned reply apart from a trailing
    ``user:`` fragment and surrounding whitespace.
    """

    __slots__ = ("_on_partial", "_batch_size", "_stops", "_leaks", "_text", "_forwarded", "_pending", "stopped", "token_count")

    def __init__(self, on_partial: PartialCallback | None, batch_size: int = 1, stops: Sequence[str] = (), leaks: Sequence[str] = ()) -> None:
        self._on_partial = on_partial
        self._batch_size = max(1, batch_size)
        self._stops = tuple(s for s in stops if s)
        self._leaks = tuple(t for t in leaks if t)
        self._text = ""
        self._forwarded = 0
        self._pending = 0
        self.stopped = False
        self.token_count = 0


    @property
    def text(self) -> str:
        return self._text


    def push(self, token: str) -> None:
        if self.stopped:
            return
        self.token_count += 1
        self._text += token
        self._pending += 1

        stop_at = self._find_stop()
        if stop_at is not None:
            self._text = self._text[:stop_at]
            self.stopped = True
            self.flush()
        elif self._pending >= self._batch_size:
            self._forward(self._safe_end())


    def flush(self) -> None:
        """Forward everything accumulated but not yet forwarded."""
        self._forward(len(self._text))


    def _forward(self, end: int) -> None:
        chunk = self._text[self._forwarded : end]
        self._pending = 0
        if not chunk:
            return
        self._forwarded = end
        for leak in self._leaks:
            chunk = chunk.replace(leak, "")
        if chunk and self._on_partial is not None:
            self._on_partial(chunk)


    def _safe_end(self) -> int:
        # Hold back a suffix that may still grow into a stop or leak token
        hold = 0
        for marker in (*self._stops, *self._leaks):
            for k in range(min(len(marker) - 1, len(self._text)), hold, -1):
                if self._text.endswith(marker[:k]):
                    hold = k
                    break
        return len(self._text) - hold


    def _find_stop(self) -> int | None:
        # Search from just before the forwarded boundary so a stop split across tokens is still seen
        start = max(0, self._forwarded - max((len(s) for s in self._stops), default=0))
        hits = [idx for s in self._stops if (idx := self._text.find(s, start)) != -1]
        return min(hits) if hits else None


class CompletionController:
    """
    Parameters
    ----------
    engine
        The (serialized) generation engine.
    memory
        ``ChatMemory`` receiving the finished exchange.
    prompt_format
        Serialization for *engine*.  Defaults to ``settings.PROMPT_FORMAT``.
    flush_token_count
        Overrides ``settings.FLUSH_TOKEN_COUNT``.
    """

    __slots__ = ("_engine", "_memory", "_format", "_flush_count")

    def __init__(self, engine: GenerationEngine, memory: ChatMemory, prompt_format: PromptFormat | None = None, flush_token_count: int | None = None) -> None:
        self._engine = engine
        self._memory = memory
        self._format = prompt_format or get_prompt_format(settings.PROMPT_FORMAT)
        self._flush_count = flush_token_count or settings.FLUSH_TOKEN_COUNT


    def options(self, max_tokens: int | None = None) -> GenerationOptions:
        return GenerationOptions(
            max_tokens=max_tokens or settings.MAX_TOKENS,
            temperature=settings.TEMPERATURE,
            top_p=settings.TOP_P,
            top_k=settings.TOP_K,
            stop=self._format.stop_sequences,
        )


    async def generate(self, prompt: Prompt, max_tokens: int | None = None, on_partial: PartialCallback | None = None) -> str:
        """Generate, stream, clean and persist the reply to *prompt*."""
        rendered = self._format.render(prompt)
        options = self.options(max_tokens)
        sink = TokenSink(on_partial, self._flush_count, options.stop, self._format.leak_tokens)

        t_llm = time.perf_counter()
        try:
            await self._consume(self._engine.stream(rendered, options), sink)
        except Exception:
            logger.exception("[GENERATE] LLM completion failed.")
            return GENERATION_ERROR_MESSAGE
        sink.flush()
        llm_ms = (time.perf_counter() - t_llm) * 1000

        reply = self._format.clean(sink.text)
        logger.info("[GENERATE] %d token(s) in %.1fms (%d chars, stopped=%s).", sink.token_count, llm_ms, len(reply), sink.stopped)

        await self._memory.append("user", prompt.user_query)
        await self._memory.append("assistant", reply)
        return reply


    @staticmethod
    async def _consume(tokens: AsyncIterator[str], sink: TokenSink) -> None:
        async with aclosing(tokens):  # type: ignore[type-var]
            async for token in tokens:
                sink.push(token)
                if sink.stopped:
                    break
