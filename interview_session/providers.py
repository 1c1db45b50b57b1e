"""
Provider adapters used by the interview service.

Server-side implementations of the transport contracts:

  - AgentChatResponder: interviewer replies via the OpenAI Agents SDK
    (OpenAI or Azure OpenAI backend).
  - GoogleSpeechToText: Google Cloud Speech ``speech:recognize`` REST call.
  - ElevenLabsTextToSpeech: ElevenLabs ``text-to-speech`` REST call.

Each adapter turns provider failures into TransportFailureError and empty
payloads into EmptyResultError so callers only deal with the shared taxonomy.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx
from agents import Agent, OpenAIChatCompletionsModel, Runner
from openai import AsyncAzureOpenAI

from .config import ServiceConfig
from .errors import EmptyResultError, TransportFailureError
from .models import RoleContext
from .prompts import DEFAULT_INTERVIEWER_NAME, build_chat_instructions


__all__ = [
    "AgentChatResponder",
    "GoogleSpeechToText",
    "ElevenLabsTextToSpeech",
    "GOOGLE_SPEECH_URL",
    "ELEVENLABS_TTS_URL",
]


logger = logging.getLogger(__name__)


GOOGLE_SPEECH_URL = "https://speech.googleapis.com/v1/speech:recognize"
ELEVENLABS_TTS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
ELEVENLABS_OUTPUT_FORMAT = "mp3_44100_128"

AgentRun = Callable[..., Awaitable[Any]]


# =============================================================================
# Chat completion
# =============================================================================

class AgentChatResponder:
    """
    Produces the interviewer's next message with the OpenAI Agents SDK.

    A fresh Agent is built per request because its instructions embed the
    role and candidate. The full conversation history is passed as input
    items so the model sees every prior turn.

    Example:
        >>> responder = AgentChatResponder.from_config(load_service_config())
        >>> reply = await responder.send(7, "Three years at stadium events.", history, role)
    """

    def __init__(
        self,
        model: str | OpenAIChatCompletionsModel,
        interviewer_name: str = DEFAULT_INTERVIEWER_NAME,
        run: Optional[AgentRun] = None,
    ) -> None:
        """
        Args:
            model: Model name, or a chat-completions model bound to a client
                (used for Azure OpenAI deployments).
            interviewer_name: Name the interviewer introduces itself with.
            run: Agent runner, defaults to ``Runner.run``.
        """
        self.model = model
        self.interviewer_name = interviewer_name
        self._run = run or Runner.run

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "AgentChatResponder":
        if config.uses_azure:
            logger.info(
                "Using Azure OpenAI: %s, deployment: %s",
                config.azure_endpoint,
                config.azure_deployment,
            )
            client = AsyncAzureOpenAI(
                azure_endpoint=config.azure_endpoint,
                api_key=config.azure_key,
                api_version=config.azure_api_version,
            )
            model: str | OpenAIChatCompletionsModel = OpenAIChatCompletionsModel(
                model=config.azure_deployment or "",
                openai_client=client,
            )
        else:
            logger.info("Using OpenAI: model %s", config.openai_model)
            model = config.openai_model
        return cls(model=model, interviewer_name=config.interviewer_name)

    def build_agent(self, role: RoleContext) -> Agent:
        return Agent(
            name="Interviewer",
            instructions=build_chat_instructions(role, self.interviewer_name),
            model=self.model,
        )

    @staticmethod
    def build_input(message: str, history: list[dict[str, str]]) -> list[dict[str, str]]:
        """History as agent input items, ending with the candidate message."""
        items = [
            {"role": item["role"], "content": item["content"]}
            for item in history
            if item.get("role") in ("user", "assistant") and item.get("content")
        ]
        if not items or items[-1] != {"role": "user", "content": message}:
            items.append({"role": "user", "content": message})
        return items

    async def send(
        self,
        application_id: int,
        message: str,
        history: list[dict[str, str]],
        role: RoleContext,
    ) -> str:
        agent = self.build_agent(role)
        items = self.build_input(message, history)
        logger.debug("Running interviewer for application %s with %d items", application_id, len(items))

        try:
            result = await self._run(agent, items)
        except Exception as exc:
            raise TransportFailureError(f"Interviewer agent failed: {exc}") from exc

        reply = str(result.final_output or "").strip()
        if not reply:
            raise EmptyResultError("Interviewer agent returned an empty message")
        return reply


# =============================================================================
# Speech-to-text
# =============================================================================

class GoogleSpeechToText:
    """Transcribes recorded audio with the Google Cloud Speech REST API."""

    def __init__(
        self,
        api_key: Optional[str],
        language_code: str = "en-US",
        encoding: str = "MP3",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.language_code = language_code
        self.encoding = encoding
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @staticmethod
    def parse_transcript(body: dict[str, Any]) -> str:
        """Join the top alternative of every result."""
        parts: list[str] = []
        for result in body.get("results") or []:
            alternatives = result.get("alternatives") or []
            if alternatives:
                transcript = str(alternatives[0].get("transcript") or "").strip()
                if transcript:
                    parts.append(transcript)
        return " ".join(parts)

    async def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        if not self.api_key:
            raise TransportFailureError(
                "GOOGLE_SPEECH_API_KEY is not configured",
                user_message="Speech recognition is not available right now.",
            )
        if not audio:
            raise EmptyResultError("No audio provided", user_message="No audio recorded. Please try again.")

        payload = {
            "config": {
                "encoding": self.encoding,
                "languageCode": self.language_code,
            },
            "audio": {"content": base64.b64encode(audio).decode("ascii")},
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    GOOGLE_SPEECH_URL,
                    params={"key": self.api_key},
                    json=payload,
                )
        except httpx.HTTPError as exc:
            raise TransportFailureError(f"Speech-to-text request failed: {exc}") from exc

        if response.status_code >= 400:
            raise TransportFailureError(
                f"Speech-to-text returned HTTP {response.status_code}: {response.text[:160]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise TransportFailureError(f"Speech-to-text returned a non-JSON body: {response.text[:160]}") from exc

        text = self.parse_transcript(body if isinstance(body, dict) else {})
        if not text:
            raise EmptyResultError(
                f"Empty transcript for {filename}",
                user_message="We couldn't hear anything. Please try again.",
            )
        logger.debug("Transcribed %d bytes into %d characters", len(audio), len(text))
        return text


# =============================================================================
# Text-to-speech
# =============================================================================

class ElevenLabsTextToSpeech:
    """Synthesizes interviewer speech with the ElevenLabs REST API."""

    def __init__(
        self,
        api_key: Optional[str],
        voice_id: str = "21m00Tcm4TlvDq8ikWAM",
        model_id: str = "eleven_multilingual_v2",
        output_format: str = ELEVENLABS_OUTPUT_FORMAT,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.voice_id = voice_id
        self.model_id = model_id
        self.output_format = output_format
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def synthesize(self, text: str) -> bytes:
        if not self.api_key:
            raise TransportFailureError(
                "ELEVENLABS_API_KEY is not configured",
                user_message="Voice playback is not available right now.",
            )
        if not text or not text.strip():
            raise EmptyResultError("No text to synthesize")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    ELEVENLABS_TTS_URL.format(voice_id=self.voice_id),
                    params={"output_format": self.output_format},
                    headers={"xi-api-key": self.api_key},
                    json={"text": text, "model_id": self.model_id},
                )
        except httpx.HTTPError as exc:
            raise TransportFailureError(f"Text-to-speech request failed: {exc}") from exc

        if response.status_code >= 400:
            raise TransportFailureError(
                f"Text-to-speech returned HTTP {response.status_code}: {response.text[:160]}",
                status_code=response.status_code,
            )

        audio = response.content
        if not audio:
            raise EmptyResultError(
                "Received empty audio response from provider",
                user_message="Received empty audio response from server",
            )
        logger.debug("Synthesized %d characters into %d bytes", len(text), len(audio))
        return audio
