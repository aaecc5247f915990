"""
BudgetBot - Prompt Formats
===========================
Serializers from a ``Prompt`` to the single text sequence a generation
engine expects.  Each format also owns the stop sequences that halt
generation at the next-turn boundary and the cleanup of delimiter
tokens that leak past it.

Formats are keyed by engine type (``settings.PROMPT_FORMAT``):

``gemma``
    ``<bos><start_of_turn>user\\n…<end_of_turn><start_of_turn>model\\n``.
    Gemma has no system role, so system text is folded into the next
    user turn.
``chatml``
    ``<|im_start|>system\\n…<|im_end|>\\n<|im_start|>assistant\\n``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from budgetbot.src.core.models import Prompt

# An invented "user:" turn closing the reply: on its own line or after a
# sentence end, a single short line, then nothing but whitespace
_TRAILING_USER_RE = re.compile(r"(?:\n|(?<=[.!?])[ \t]+)[ \t]*user[ \t]*(?::[^\n]{0,120})?\s*\Z", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class PromptFormat:
    name: str
    bos: str
    turn_open: str
    turn_close: str
    user_role: str
    assistant_role: str
    system_role: str | None
    extra_stops: tuple[str, ...] = ()
    extra_leaks: tuple[str, ...] = ()


    def _turn(self, role: str, text: str) -> str:
        return f"{self.turn_open}{role}\n{text}{self.turn_close}"


    def render(self, prompt: Prompt, response_prefix: str = "") -> str:
        """Serialize *prompt* and open the assistant turn."""
        parts: list[str] = [self.bos]
        pending_system: str | None = None

        for segment in prompt.segments:
            if segment.role == "system":
                if self.system_role is not None:
                    parts.append(self._turn(self.system_role, segment.text))
                else:
                    pending_system = segment.text
                continue

            text = segment.text
            if segment.role == "user":
                if pending_system is not None:
                    text = f"{pending_system}\n\n{text}"
                    pending_system = None
                parts.append(self._turn(self.user_role, text))
            else:
                parts.append(self._turn(self.assistant_role, text))

        parts.append(f"{self.turn_open}{self.assistant_role}\n{response_prefix}")
        return "".join(parts)


    @property
    def end_of_turn(self) -> str:
        return self.turn_close.strip()


    @property
    def turn_openers(self) -> tuple[str, ...]:
        return (f"{self.turn_open}{self.user_role}", f"{self.turn_open}{self.assistant_role}")


    @property
    def stop_sequences(self) -> tuple[str, ...]:
        return (self.end_of_turn, *self.turn_openers, *self.extra_stops)


    @property
    def leak_tokens(self) -> tuple[str, ...]:
        """Delimiters that must never reach the user, wherever they appear."""
        candidates = (self.end_of_turn, self.turn_open.strip(), self.bos, *self.extra_leaks, *self.extra_stops)
        return tuple(t for t in candidates if t)


    def clean(self, text: str) -> str:
        """
        Remove what the engine emitted past the end of its turn.

        1. Cut at the first next-turn opener.
        2. Drop any leaked delimiter tokens.
        3. Drop a trailing ``user:`` fragment.
        """
        cut = len(text)
        for opener in self.turn_openers:
            idx = text.find(opener)
            if idx != -1:
                cut = min(cut, idx)
        text = text[:cut]

        for token in self.leak_tokens:
            text = text.replace(token, "")

        text = _TRAILING_USER_RE.sub("", text)
        return text.strip()


GEMMA = PromptFormat(
    name="gemma",
    bos="<bos>",
    turn_open="<start_of_turn>",
    turn_close="<end_of_turn>",
    user_role="user",
    assistant_role="model",
    system_role=None,
    extra_stops=("[Stopped]",),
    extra_leaks=("<end_of_text>", "<eos>"),
)

CHATML = PromptFormat(
    name="chatml",
    bos="",
    turn_open="<|im_start|>",
    turn_close="<|im_end|>\n",
    user_role="user",
    assistant_role="assistant",
    system_role="system",
    extra_leaks=("<|endoftext|>",),
)

PROMPT_FORMATS: dict[str, PromptFormat] = {f.name: f for f in (GEMMA, CHATML)}


def get_prompt_format(name: str) -> PromptFormat:
    try:
        return PROMPT_FORMATS[name]
    except KeyError:
        raise ValueError(f"Unknown prompt format {name!r}; expected one of {sorted(PROMPT_FORMATS)}.") from None
