"""
Question-stepped voice interview.

The recorded alternative to the live voice widget: each role question is
played back as speech, the candidate records an answer, and the answer is
transcribed into that question's slot. The candidate may move back to
re-record, may only move forward once the current question has an answer,
and can submit once every question is answered.

Only one playback or transcription runs at a time. Provider failures are
kept on ``last_error`` and leave the current position and every stored
answer untouched.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import BaseModel, Field

from .errors import EmptyResultError, InterviewError
from .models import RoleContext
from .transport import SpeechToText, TextToSpeech


__all__ = ["QuestionResponse", "VoiceQuestionRunner"]


logger = logging.getLogger(__name__)


class QuestionResponse(BaseModel):
    """One question with the candidate's transcribed answer."""

    index: int = Field(..., ge=0, description="Zero-based question position")
    question: str = Field(..., min_length=1)
    response: str = Field(..., min_length=1, description="Transcribed answer")

    model_config = {"frozen": True}


class VoiceQuestionRunner:
    """
    Steps a candidate through a role's questions with recorded answers.

    Example:
        >>> runner = VoiceQuestionRunner(role, stt=api, tts=api)
        >>> audio = await runner.play_question()
        >>> await runner.answer(recorded_bytes, filename="answer.webm")
        >>> runner.next_question()
        ...
        >>> responses = runner.submit()
    """

    def __init__(self, role: RoleContext, stt: SpeechToText, tts: TextToSpeech) -> None:
        """
        Args:
            role: Role whose ``interview_questions`` are asked, in order.
            stt: Transcribes recorded answers.
            tts: Speaks each question.

        Raises:
            ValueError: If the role has no questions.
        """
        questions = [q.strip() for q in role.interview_questions if q and q.strip()]
        if not questions:
            raise ValueError(f"Role {role.role_id} has no interview questions.")

        self._role = role
        self._stt = stt
        self._tts = tts
        self._questions: tuple[str, ...] = tuple(questions)
        self._responses: list[Optional[str]] = [None] * len(questions)
        self._index = 0
        self._busy = False
        self._submitted = False
        self._last_error: Optional[InterviewError] = None

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def questions(self) -> tuple[str, ...]:
        return self._questions

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_question(self) -> str:
        return self._questions[self._index]

    @property
    def current_response(self) -> Optional[str]:
        return self._responses[self._index]

    @property
    def responses(self) -> tuple[Optional[str], ...]:
        """Answer slot per question, None where unanswered."""
        return tuple(self._responses)

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def is_last_question(self) -> bool:
        return self._index == len(self._questions) - 1

    @property
    def is_complete(self) -> bool:
        """True once every question has an answer."""
        return all(response is not None for response in self._responses)

    @property
    def is_submitted(self) -> bool:
        return self._submitted

    @property
    def progress(self) -> float:
        """Fraction of the way through, counting the current question."""
        return (self._index + 1) / len(self._questions)

    @property
    def last_error(self) -> Optional[InterviewError]:
        return self._last_error

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def play_question(self) -> Optional[bytes]:
        """
        Synthesize the current question.

        Returns:
            Audio bytes, or None if another operation is running, the
            interview was submitted, or synthesis failed.
        """
        if not self._can_operate("play_question"):
            return None

        index = self._index
        self._busy = True
        self._last_error = None
        try:
            audio = await self._tts.synthesize(self._questions[index])
        except InterviewError as exc:
            self._surface(exc)
            return None
        finally:
            self._busy = False

        logger.debug("Played question %d for %s (%d bytes)", index + 1, self._role.role_id, len(audio))
        return audio

    async def answer(self, audio: bytes, filename: str = "audio.webm") -> Optional[str]:
        """
        Transcribe a recorded answer into the current question's slot.

        Recording again replaces the earlier answer. On failure the slot
        keeps whatever it held before.

        Returns:
            The transcript, or None if nothing was stored.
        """
        if not self._can_operate("answer"):
            return None

        index = self._index
        self._busy = True
        self._last_error = None
        try:
            text = (await self._stt.transcribe(audio, filename=filename)).strip()
        except InterviewError as exc:
            self._surface(exc)
            return None
        finally:
            self._busy = False

        if not text:
            self._surface(
                EmptyResultError("Blank transcript", user_message="We couldn't hear anything. Please try again.")
            )
            return None
        self._responses[index] = text
        logger.info("Recorded answer %d/%d for %s", index + 1, len(self._questions), self._role.role_id)
        return text

    def next_question(self) -> bool:
        """Advance once the current question is answered. Returns True if moved."""
        if not self._can_operate("next_question") or self.is_last_question:
            return False
        if self._responses[self._index] is None:
            logger.debug("Question %d has no answer yet", self._index + 1)
            return False
        self._index += 1
        return True

    def previous_question(self) -> bool:
        """Step back to re-record an earlier answer. Returns True if moved."""
        if not self._can_operate("previous_question") or self._index == 0:
            return False
        self._index -= 1
        return True

    def submit(self) -> Optional[list[QuestionResponse]]:
        """
        Finish the interview.

        Returns:
            Question/answer pairs in question order, or None if an answer
            is missing, an operation is running, or it was already submitted.
        """
        if not self._can_operate("submit") or not self.is_complete:
            return None
        self._submitted = True
        logger.info("Voice questions submitted for %s", self._role.role_id)
        return [
            QuestionResponse(index=i, question=question, response=response or "")
            for i, (question, response) in enumerate(zip(self._questions, self._responses))
        ]

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _can_operate(self, operation: str) -> bool:
        if self._submitted:
            logger.debug("%s ignored, interview already submitted", operation)
            return False
        if self._busy:
            logger.debug("%s ignored, another operation is running", operation)
            return False
        return True

    def _surface(self, exc: InterviewError) -> None:
        self._last_error = exc
        logger.warning("%s on question %d: %s", exc.error_code, self._index + 1, exc.message)
