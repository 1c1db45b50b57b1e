"""
Interview Transport.

Request/response contracts the lifecycle controller and host use to reach
the chat-completion, speech-to-text and text-to-speech collaborators, plus
``InterviewApiClient``, the HTTP implementation that talks to
``voice_service.py``.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Optional, Protocol

import httpx

from .errors import EmptyResultError, TransportFailureError
from .models import RoleContext, SessionOutcome


__all__ = [
    "ChatTransport",
    "SpeechToText",
    "TextToSpeech",
    "InterviewApiClient",
]


logger = logging.getLogger(__name__)


class ChatTransport(Protocol):
    """Sends one candidate message with the full history, returns the interviewer reply."""

    async def send(
        self,
        application_id: int,
        message: str,
        history: list[dict[str, str]],
        role: RoleContext,
    ) -> str:
        """Raises TransportFailureError on failure."""


class SpeechToText(Protocol):
    async def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        """Raises TransportFailureError, or EmptyResultError for an empty transcript."""


class TextToSpeech(Protocol):
    async def synthesize(self, text: str) -> bytes:
        """Raises TransportFailureError, or EmptyResultError for empty audio."""


class InterviewApiClient:
    """
    HTTP client for the interview service.

    Implements ChatTransport, SpeechToText and TextToSpeech against the
    service routes, and creates applications for the authenticated user.

    Example:
        >>> async with InterviewApiClient("http://127.0.0.1:8780", user_id="user_42") as api:
        ...     created = await api.create_application("usher")
        ...     reply = await api.send(created["application_id"], "Hi!", history, role)
    """

    def __init__(
        self,
        base_url: str,
        user_id: Optional[str] = None,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"X-User-Id": user_id} if user_id else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "InterviewApiClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportFailureError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise self._error_from_response(path, response)
        return response

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        response = await self._request(method, path, **kwargs)
        try:
            body = response.json()
        except ValueError as exc:
            raise TransportFailureError(f"{path} returned a non-JSON body: {response.text[:160]}") from exc
        if not isinstance(body, dict):
            raise TransportFailureError(f"{path} returned {type(body).__name__}, expected an object")
        return body

    @staticmethod
    def _error_from_response(path: str, response: httpx.Response) -> TransportFailureError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        detail = body.get("error") if isinstance(body, dict) else None
        message = f"{path} returned HTTP {response.status_code}: {detail or response.text[:160]}"
        if isinstance(body, dict) and body.get("error_code") == EmptyResultError.error_code:
            return EmptyResultError(message, status_code=response.status_code)
        return TransportFailureError(message, user_message=detail, status_code=response.status_code)

    async def health(self) -> dict[str, Any]:
        return await self._request_json("GET", "/health")

    async def create_application(self, role_id: str) -> dict[str, Any]:
        """Create an application for the authenticated user."""
        return await self._request_json("POST", "/applications", json={"role_id": role_id})

    async def record_outcome(self, outcome: SessionOutcome) -> dict[str, Any]:
        """Report a finished interview against its application."""
        if outcome.application_id is None:
            raise ValueError("outcome has no application_id")
        return await self._request_json(
            "POST",
            f"/applications/{outcome.application_id}/outcome",
            json=outcome.model_dump(mode="json"),
        )

    async def send(
        self,
        application_id: int,
        message: str,
        history: list[dict[str, str]],
        role: RoleContext,
    ) -> str:
        body = await self._request_json(
            "POST",
            "/interview/chat",
            json={
                "application_id": application_id,
                "role_id": role.role_id,
                "message": message,
                "conversation_history": history,
                "candidate_name": role.candidate_name,
            },
        )
        reply = str(body.get("message") or "")
        if not reply.strip():
            raise EmptyResultError("Interviewer returned an empty message")
        return reply

    async def transcribe(self, audio: bytes, filename: str = "audio.webm") -> str:
        if not audio:
            raise EmptyResultError("No audio recorded")
        body = await self._request_json(
            "POST",
            "/voice/transcribe",
            files={"audio": (filename, audio, "application/octet-stream")},
        )
        text = str(body.get("text") or "").strip()
        if not text:
            raise EmptyResultError("Transcript is empty")
        return text

    async def synthesize(self, text: str) -> bytes:
        response = await self._request("POST", "/voice/speak", json={"text": text})
        audio = response.content
        if not audio:
            raise EmptyResultError(
                "Received empty audio response from server",
                user_message="Received empty audio response from server",
            )
        logger.debug("Received %d bytes of audio", len(audio))
        return audio
