"""
Tests for the chat, speech-to-text and text-to-speech provider adapters.
"""

from __future__ import annotations

import base64
import json
from types import SimpleNamespace
from typing import Any

import httpx
import pytest

from interview_session.config import ServiceConfig
from interview_session.errors import EmptyResultError, TransportFailureError
from interview_session.providers import (
    AgentChatResponder,
    ElevenLabsTextToSpeech,
    GoogleSpeechToText,
)

from tests.mock_data import make_role


class FakeRunner:
    """Stands in for Runner.run and records agents and inputs."""

    def __init__(self, output: Any = "Next question?", error: Exception | None = None) -> None:
        self.output = output
        self.error = error
        self.calls: list[tuple[Any, Any]] = []

    async def __call__(self, agent: Any, items: Any) -> SimpleNamespace:
        self.calls.append((agent, items))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(final_output=self.output)


class TestAgentChatResponder:
    """Interviewer replies through the Agents SDK."""

    @pytest.mark.asyncio
    async def test_send_passes_history_and_role_instructions(self) -> None:
        runner = FakeRunner()
        responder = AgentChatResponder(model="gpt-5-mini", interviewer_name="Kemi", run=runner)
        history = [
            {"role": "assistant", "content": "Hello! First question: ..."},
            {"role": "user", "content": "Three years."},
        ]

        reply = await responder.send(7, "Three years.", history, make_role())

        assert reply == "Next question?"
        agent, items = runner.calls[0]
        assert "You are Kemi" in agent.instructions
        assert "Usher" in agent.instructions
        assert agent.model == "gpt-5-mini"
        assert items == history

    def test_build_input_appends_missing_message(self) -> None:
        items = AgentChatResponder.build_input(
            "New answer",
            [{"role": "assistant", "content": "Hello"}, {"role": "system", "content": "ignored"}],
        )
        assert items == [
            {"role": "assistant", "content": "Hello"},
            {"role": "user", "content": "New answer"},
        ]

    @pytest.mark.asyncio
    async def test_runner_failure_becomes_transport_failure(self) -> None:
        responder = AgentChatResponder(model="gpt-5-mini", run=FakeRunner(error=RuntimeError("rate limited")))

        with pytest.raises(TransportFailureError, match="rate limited"):
            await responder.send(7, "Hi", [], make_role())

    @pytest.mark.asyncio
    async def test_empty_output_is_empty_result(self) -> None:
        responder = AgentChatResponder(model="gpt-5-mini", run=FakeRunner(output=""))

        with pytest.raises(EmptyResultError):
            await responder.send(7, "Hi", [], make_role())

    def test_from_config_uses_openai_model(self) -> None:
        responder = AgentChatResponder.from_config(ServiceConfig(openai_model="gpt-5-mini", interviewer_name="Kemi"))
        assert responder.model == "gpt-5-mini"
        assert responder.interviewer_name == "Kemi"


class TestGoogleSpeechToText:
    """speech:recognize REST adapter."""

    @pytest.mark.asyncio
    async def test_transcribe_joins_results(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "results": [
                        {"alternatives": [{"transcript": "I have worked", "confidence": 0.9}]},
                        {"alternatives": [{"transcript": "at stadium events"}]},
                    ]
                },
            )

        stt = GoogleSpeechToText("key-123", transport=httpx.MockTransport(handler))
        text = await stt.transcribe(b"mp3-bytes")

        assert text == "I have worked at stadium events"
        request = seen[0]
        assert request.url.params["key"] == "key-123"
        body = json.loads(request.content)
        assert body["config"] == {"encoding": "MP3", "languageCode": "en-US"}
        assert base64.b64decode(body["audio"]["content"]) == b"mp3-bytes"

    @pytest.mark.asyncio
    async def test_no_results_is_empty_result(self) -> None:
        stt = GoogleSpeechToText(
            "key-123",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})),
        )
        with pytest.raises(EmptyResultError):
            await stt.transcribe(b"mp3-bytes")

    @pytest.mark.asyncio
    async def test_provider_error(self) -> None:
        stt = GoogleSpeechToText(
            "key-123",
            transport=httpx.MockTransport(lambda request: httpx.Response(403, text="API key invalid")),
        )
        with pytest.raises(TransportFailureError) as exc_info:
            await stt.transcribe(b"mp3-bytes")
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        stt = GoogleSpeechToText(
            "key-123",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>quota</html>")),
        )
        with pytest.raises(TransportFailureError, match="non-JSON body"):
            await stt.transcribe(b"mp3-bytes")

    @pytest.mark.asyncio
    async def test_missing_key(self) -> None:
        with pytest.raises(TransportFailureError, match="GOOGLE_SPEECH_API_KEY"):
            await GoogleSpeechToText(None).transcribe(b"mp3-bytes")


class TestElevenLabsTextToSpeech:
    """text-to-speech REST adapter."""

    @pytest.mark.asyncio
    async def test_synthesize_request_shape(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"ID3mp3")

        tts = ElevenLabsTextToSpeech("xi-key", transport=httpx.MockTransport(handler))
        audio = await tts.synthesize("Welcome to your interview")

        assert audio == b"ID3mp3"
        request = seen[0]
        assert request.url.path == "/v1/text-to-speech/21m00Tcm4TlvDq8ikWAM"
        assert request.url.params["output_format"] == "mp3_44100_128"
        assert request.headers["xi-api-key"] == "xi-key"
        assert json.loads(request.content) == {
            "text": "Welcome to your interview",
            "model_id": "eleven_multilingual_v2",
        }

    @pytest.mark.asyncio
    async def test_empty_audio(self) -> None:
        tts = ElevenLabsTextToSpeech(
            "xi-key",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"")),
        )
        with pytest.raises(EmptyResultError):
            await tts.synthesize("Hello")

    @pytest.mark.asyncio
    async def test_timeout_becomes_transport_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        tts = ElevenLabsTextToSpeech("xi-key", transport=httpx.MockTransport(handler))
        with pytest.raises(TransportFailureError, match="timed out"):
            await tts.synthesize("Hello")

    @pytest.mark.asyncio
    async def test_missing_key(self) -> None:
        with pytest.raises(TransportFailureError, match="ELEVENLABS_API_KEY"):
            await ElevenLabsTextToSpeech(None).synthesize("Hello")
