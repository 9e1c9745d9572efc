# chuk_ai_turn_orchestrator/thinking.py
"""
Split raw model output into a visible answer and reasoning disclosure.

Reasoning arrives either out of band (reported by the engine) or in band
as ``<think>...</think>`` blocks. Some models omit the opening tag and
only emit ``</think>``; others emit reasoning before any tag at all while
streaming.
"""

from __future__ import annotations

import re

from chuk_ai_turn_orchestrator.models.preview import ReasoningSplit

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

_THINK_BLOCK = re.compile(r"<think>(.*?)</think>", re.DOTALL)
_UNCLOSED_THINK = re.compile(r"<think>(.*)", re.DOTALL)


def _normalized(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def split_reasoning(
    raw_text: str,
    preferred_reasoning: str | None = None,
    streaming: bool = False,
) -> ReasoningSplit:
    """
    Split ``raw_text`` into answer and reasoning.

    Args:
        raw_text: Accumulated or final model output.
        preferred_reasoning: Engine-reported reasoning; used verbatim when non-blank.
        streaming: The stream is still in progress. Untagged text is then
            treated as in-progress reasoning.

    Returns:
        ReasoningSplit with a trimmed answer and ``None`` for blank reasoning.
    """
    answer = raw_text
    reasoning = _normalized(preferred_reasoning)

    if reasoning is None:
        blocks = _THINK_BLOCK.findall(answer)
        if blocks:
            parts = [block.strip() for block in blocks]
            reasoning = _normalized("\n\n".join(p for p in parts if p))
            answer = _THINK_BLOCK.sub("", answer).strip()

        unclosed = _UNCLOSED_THINK.search(answer)
        if unclosed:
            trailing = unclosed.group(1).strip()
            if trailing:
                reasoning = _normalized("\n\n".join(p for p in (reasoning, trailing) if p))
            answer = answer[: unclosed.start()].strip()

        if reasoning is None and streaming and THINK_OPEN not in answer and THINK_CLOSE not in answer:
            return ReasoningSplit(answer="", reasoning=_normalized(answer))

        if reasoning is None and THINK_CLOSE in answer:
            before, _, after = answer.partition(THINK_CLOSE)
            reasoning = _normalized(before)
            answer = after

    return ReasoningSplit(answer=answer.strip(), reasoning=_normalized(reasoning))


def has_visible_content(answer: str, reasoning: str | None) -> bool:
    """True when either the answer or the reasoning is non-blank."""
    if answer.strip():
        return True
    return bool(reasoning and reasoning.strip())
