"""
Completion policy.

Maps raw session telemetry to a Completed/Incomplete verdict. Chat sessions
are judged by the number of turns in the log, voice sessions by the time
between becoming active and the end signal. Both are crude on purpose: the
end of a conversation is only detected heuristically, so the verdict uses a
metric that is cheap to audit.
"""

from __future__ import annotations

from typing import Callable, Sequence

from .models import Modality, SessionResult, Turn


__all__ = [
    "MIN_TURNS_FOR_COMPLETE",
    "MIN_SECONDS_FOR_COMPLETE",
    "CLOSING_PHRASES",
    "ClosingPredicate",
    "evaluate",
    "contains_closing_phrase",
]


# At least three back-and-forth exchanges
MIN_TURNS_FOR_COMPLETE = 6

MIN_SECONDS_FOR_COMPLETE = 60.0

CLOSING_PHRASES: tuple[str, ...] = (
    "thank you for your time",
    "that concludes",
    "best of luck",
)

ClosingPredicate = Callable[[str], bool]


def evaluate(
    modality: Modality,
    turns: Sequence[Turn] | None = None,
    elapsed_seconds: float | None = None,
) -> SessionResult:
    """
    Compute the completion verdict for a session that is ending.

    Args:
        modality: Chat or voice.
        turns: Full conversation log at the moment of ending (chat).
        elapsed_seconds: Seconds between becoming active and the end signal (voice).

    Returns:
        COMPLETED when the modality threshold is met, INCOMPLETE otherwise.
        Missing telemetry counts as zero.
    """
    if modality == Modality.CHAT:
        count = len(turns) if turns is not None else 0
        if count >= MIN_TURNS_FOR_COMPLETE:
            return SessionResult.COMPLETED
        return SessionResult.INCOMPLETE

    elapsed = elapsed_seconds or 0.0
    if elapsed >= MIN_SECONDS_FOR_COMPLETE:
        return SessionResult.COMPLETED
    return SessionResult.INCOMPLETE


def contains_closing_phrase(text: str, phrases: Sequence[str] = CLOSING_PHRASES) -> bool:
    """Return True when assistant text sounds like the interviewer wrapping up."""
    if not text:
        return False
    text_lower = text.lower()
    return any(phrase in text_lower for phrase in phrases)
