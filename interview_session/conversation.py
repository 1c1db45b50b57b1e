"""
Conversation log for chat interviews.

Append-only record of exchanged turns. The whole log is handed to the chat
transport on every user turn so the interviewer model always sees the
complete history.
"""

import logging
from typing import Iterator

from .models import Speaker, Turn


__all__ = ["ConversationLog"]


logger = logging.getLogger(__name__)


class ConversationLog:
    """
    Ordered, append-only sequence of turns.

    The log writes into the list it is given, which is normally
    ``InterviewSession.turns``, so the session always reflects the log.
    Turns are never reordered, edited or removed.

    Example:
        >>> log = ConversationLog()
        >>> log.append(Speaker.ASSISTANT, "Hello! First question: ...")
        >>> log.append(Speaker.USER, "I have worked as an usher for two years.")
        >>> len(log)
        2
        >>> log.history()[1]
        {'role': 'user', 'content': 'I have worked as an usher for two years.'}
    """

    def __init__(self, turns: list[Turn] | None = None) -> None:
        self._turns: list[Turn] = turns if turns is not None else []

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    @property
    def turns(self) -> tuple[Turn, ...]:
        """Snapshot of the log."""
        return tuple(self._turns)

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def append(self, speaker: Speaker, text: str) -> Turn:
        """
        Append a turn to the end of the log.

        Args:
            speaker: USER or ASSISTANT.
            text: Turn content.

        Returns:
            The appended turn.
        """
        turn = Turn(speaker=speaker, text=text)
        self._turns.append(turn)
        logger.debug("Appended %s turn (log size %d)", speaker.value, len(self._turns))
        return turn

    def history(self) -> list[dict[str, str]]:
        """Full history in chat-completion message format."""
        return [{"role": turn.speaker.value, "content": turn.text} for turn in self._turns]
