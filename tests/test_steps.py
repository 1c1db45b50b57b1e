"""
Tests for the question-stepped voice interview.
"""

from __future__ import annotations

import asyncio

import pytest

from interview_session.errors import EmptyResultError
from interview_session.models import RoleContext
from interview_session.steps import QuestionResponse, VoiceQuestionRunner

from tests.mock_data import FakeSpeechToText, FakeTextToSpeech, make_role, transport_failure


QUESTIONS = [
    "Tell us about your experience in event staffing.",
    "Describe a challenging situation at an event.",
    "Why do you want to join?",
]


def _role() -> RoleContext:
    return RoleContext(role_id="usher", title="Usher", interview_questions=QUESTIONS)


def _runner(
    stt: FakeSpeechToText | None = None,
    tts: FakeTextToSpeech | None = None,
) -> VoiceQuestionRunner:
    return VoiceQuestionRunner(_role(), stt=stt or FakeSpeechToText(), tts=tts or FakeTextToSpeech())


async def _answer_all(runner: VoiceQuestionRunner, stt: FakeSpeechToText) -> None:
    for i in range(len(QUESTIONS)):
        stt.text = f"answer {i + 1}"
        assert await runner.answer(b"\x00audio") == f"answer {i + 1}"
        runner.next_question()


class TestConstruction:
    """Runner setup."""

    def test_starts_at_first_question(self) -> None:
        runner = _runner()

        assert runner.current_index == 0
        assert runner.current_question == QUESTIONS[0]
        assert runner.responses == (None, None, None)
        assert runner.progress == pytest.approx(1 / 3)
        assert not runner.is_complete

    def test_catalog_role_has_questions(self) -> None:
        runner = VoiceQuestionRunner(make_role(), stt=FakeSpeechToText(), tts=FakeTextToSpeech())
        assert len(runner.questions) > 0

    def test_role_without_questions_is_rejected(self) -> None:
        role = RoleContext(role_id="usher", title="Usher", interview_questions=["  "])
        with pytest.raises(ValueError):
            VoiceQuestionRunner(role, stt=FakeSpeechToText(), tts=FakeTextToSpeech())


class TestPlayback:
    """Questions are spoken through text-to-speech."""

    @pytest.mark.asyncio
    async def test_plays_current_question(self) -> None:
        tts = FakeTextToSpeech(audio=b"ID3question")
        runner = _runner(tts=tts)

        assert await runner.play_question() == b"ID3question"
        assert tts.texts == [QUESTIONS[0]]

    @pytest.mark.asyncio
    async def test_playback_failure_is_surfaced(self) -> None:
        runner = _runner(tts=FakeTextToSpeech(fail_with=transport_failure()))

        assert await runner.play_question() is None

        assert runner.last_error is not None
        assert runner.last_error.error_code == "TRANSPORT_FAILURE"
        assert not runner.is_busy
        assert runner.current_index == 0


class TestAnswers:
    """Recorded answers fill the current slot."""

    @pytest.mark.asyncio
    async def test_answer_fills_slot(self) -> None:
        stt = FakeSpeechToText(text="  Three years at the arena.  ")
        runner = _runner(stt=stt)

        assert await runner.answer(b"\x00\x01", filename="answer.webm") == "Three years at the arena."

        assert runner.responses[0] == "Three years at the arena."
        assert stt.received == [(b"\x00\x01", "answer.webm")]
        assert runner.current_index == 0

    @pytest.mark.asyncio
    async def test_rerecording_replaces_answer(self) -> None:
        stt = FakeSpeechToText(text="first take")
        runner = _runner(stt=stt)
        await runner.answer(b"\x00")

        stt.text = "second take"
        await runner.answer(b"\x00")

        assert runner.current_response == "second take"

    @pytest.mark.asyncio
    async def test_transcription_failure_keeps_previous_answer(self) -> None:
        stt = FakeSpeechToText(text="kept")
        runner = _runner(stt=stt)
        await runner.answer(b"\x00")

        stt.fail_with = EmptyResultError("Empty transcript")
        assert await runner.answer(b"\x00") is None

        assert runner.current_response == "kept"
        assert runner.last_error is not None
        assert runner.last_error.error_code == "EMPTY_RESULT"
        assert not runner.is_busy

    @pytest.mark.asyncio
    async def test_blank_transcript_is_empty_result(self) -> None:
        runner = _runner(stt=FakeSpeechToText(text="   "))

        assert await runner.answer(b"\x00") is None

        assert runner.current_response is None
        assert isinstance(runner.last_error, EmptyResultError)

    @pytest.mark.asyncio
    async def test_one_operation_at_a_time(self) -> None:
        stt = FakeSpeechToText(text="slow answer")
        stt.gate = asyncio.Event()
        tts = FakeTextToSpeech()
        runner = _runner(stt=stt, tts=tts)

        pending = asyncio.create_task(runner.answer(b"\x00"))
        await asyncio.sleep(0)

        assert runner.is_busy
        assert await runner.answer(b"\x01") is None
        assert await runner.play_question() is None
        assert not runner.previous_question()
        assert tts.texts == []
        assert len(stt.received) == 1

        stt.gate.set()
        assert await pending == "slow answer"
        assert not runner.is_busy


class TestNavigation:
    """Moving between questions."""

    @pytest.mark.asyncio
    async def test_next_requires_answer(self) -> None:
        runner = _runner()

        assert not runner.next_question()
        await runner.answer(b"\x00")
        assert runner.next_question()
        assert runner.current_index == 1
        assert runner.current_response is None

    @pytest.mark.asyncio
    async def test_previous_keeps_answers(self) -> None:
        stt = FakeSpeechToText(text="first")
        runner = _runner(stt=stt)
        assert not runner.previous_question()
        await runner.answer(b"\x00")
        runner.next_question()

        assert runner.previous_question()
        assert runner.current_index == 0
        assert runner.current_response == "first"

    @pytest.mark.asyncio
    async def test_cannot_move_past_last_question(self) -> None:
        stt = FakeSpeechToText()
        runner = _runner(stt=stt)
        await _answer_all(runner, stt)

        assert runner.is_last_question
        assert not runner.next_question()
        assert runner.progress == pytest.approx(1.0)


class TestSubmit:
    """Submission needs every answer."""

    @pytest.mark.asyncio
    async def test_submit_returns_pairs_in_order(self) -> None:
        stt = FakeSpeechToText()
        runner = _runner(stt=stt)
        await _answer_all(runner, stt)

        submitted = runner.submit()

        assert submitted == [
            QuestionResponse(index=i, question=question, response=f"answer {i + 1}")
            for i, question in enumerate(QUESTIONS)
        ]
        assert runner.is_submitted

    @pytest.mark.asyncio
    async def test_submit_with_missing_answer_is_refused(self) -> None:
        runner = _runner()
        await runner.answer(b"\x00")

        assert runner.submit() is None
        assert not runner.is_submitted

    @pytest.mark.asyncio
    async def test_nothing_changes_after_submit(self) -> None:
        stt = FakeSpeechToText()
        runner = _runner(stt=stt)
        await _answer_all(runner, stt)
        runner.submit()

        assert runner.submit() is None
        assert await runner.answer(b"\x00") is None
        assert not runner.previous_question()
        assert runner.responses[-1] == "answer 3"
