"""
Tests for the interview HTTP service.

Runs the FastAPI app in-process with fake providers and a temporary store.
"""

from __future__ import annotations

from pathlib import Path
from typing import AsyncIterator

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from interview_session.config import ServiceConfig
from interview_session.errors import EmptyResultError
from interview_session.persistence import ApplicationStore

from tests.mock_data import (
    FakeChatTransport,
    FakeSpeechToText,
    FakeTextToSpeech,
    make_outcome,
    transport_failure,
)


USER = {"X-User-Id": "user_42"}


class Providers:
    def __init__(self) -> None:
        self.chat = FakeChatTransport(replies=["Next question: how do you handle a rush at the doors?"])
        self.stt = FakeSpeechToText()
        self.tts = FakeTextToSpeech()


@pytest.fixture
def providers() -> Providers:
    return Providers()


@pytest_asyncio.fixture
async def client(tmp_path: Path, providers: Providers) -> AsyncIterator[AsyncClient]:
    """In-process client with lifespan events triggered."""
    from voice_service import create_app

    config = ServiceConfig(
        data_dir=tmp_path,
        login_url="https://app.example.com/login",
        widget_agent_id="agent_123",
    )
    app = create_app(
        config,
        chat=providers.chat,
        stt=providers.stt,
        tts=providers.tts,
        store=ApplicationStore(tmp_path),
    )
    async with LifespanManager(app) as manager:
        transport = ASGITransport(app=manager.app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


async def _create_application(client: AsyncClient, role_id: str = "usher") -> int:
    response = await client.post("/applications", json={"role_id": role_id}, headers=USER)
    assert response.status_code == 201
    return response.json()["application_id"]


class TestHealthAndRoles:
    """Public catalog endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "Interview Service"
        assert data["providers"]["speech_to_text"] is True

    @pytest.mark.asyncio
    async def test_roles(self, client: AsyncClient) -> None:
        response = await client.get("/roles")

        ids = [role["id"] for role in response.json()["roles"]]
        assert "usher" in ids
        assert ids == sorted(ids)

    @pytest.mark.asyncio
    async def test_voice_config(self, client: AsyncClient) -> None:
        response = await client.get("/roles/bartender/voice-config", params={"candidate_name": "Ada"})

        assert response.status_code == 200
        data = response.json()
        assert data["agent_id"] == "agent_123"
        assert data["widget_tag"] == "elevenlabs-convai"
        assert "Ada" in data["first_message"]
        assert data["dynamic_variables"]["role_title"] == "Bartender"

    @pytest.mark.asyncio
    async def test_voice_config_unknown_role(self, client: AsyncClient) -> None:
        response = await client.get("/roles/juggler/voice-config")

        assert response.status_code == 404
        assert response.json()["error_code"] == "ROLE_NOT_FOUND"


class TestApplications:
    """POST /applications and outcomes."""

    @pytest.mark.asyncio
    async def test_requires_login(self, client: AsyncClient) -> None:
        response = await client.post("/applications", json={"role_id": "usher"})

        assert response.status_code == 401
        data = response.json()
        assert data == {
            "ok": False,
            "error": "Please login (10001)",
            "error_code": "AUTH_REQUIRED",
            "login_url": "https://app.example.com/login",
        }

    @pytest.mark.asyncio
    async def test_create_application(self, client: AsyncClient) -> None:
        response = await client.post("/applications", json={"role_id": "Usher"}, headers=USER)

        assert response.status_code == 201
        data = response.json()
        assert data["role_id"] == "usher"
        assert data["role_name"] == "Usher"
        assert data["listing_id"] >= 1

    @pytest.mark.asyncio
    async def test_unknown_role(self, client: AsyncClient) -> None:
        response = await client.post("/applications", json={"role_id": "juggler"}, headers=USER)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_missing_role_is_validation_error(self, client: AsyncClient) -> None:
        response = await client.post("/applications", json={}, headers=USER)

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_record_completed_outcome(self, client: AsyncClient) -> None:
        application_id = await _create_application(client)
        outcome = make_outcome(application_id=application_id).model_dump(mode="json")

        response = await client.post(f"/applications/{application_id}/outcome", json=outcome, headers=USER)

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "application_id": application_id,
            "status": "interview_completed",
            "current_step": "review",
        }

    @pytest.mark.asyncio
    async def test_outcome_for_other_user_is_not_found(self, client: AsyncClient) -> None:
        application_id = await _create_application(client)

        response = await client.post(
            f"/applications/{application_id}/outcome",
            json=make_outcome().model_dump(mode="json"),
            headers={"X-User-Id": "someone_else"},
        )

        assert response.status_code == 404
        assert response.json()["error_code"] == "APPLICATION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_outcome_for_another_application_is_rejected(
        self, client: AsyncClient, tmp_path: Path
    ) -> None:
        application_id = await _create_application(client)
        outcome = make_outcome(application_id=application_id + 100).model_dump(mode="json")

        response = await client.post(f"/applications/{application_id}/outcome", json=outcome, headers=USER)

        assert response.status_code == 422
        assert response.json()["error_code"] == "APPLICATION_MISMATCH"
        stored = await ApplicationStore(tmp_path).get_application(application_id)
        assert stored is not None and stored.get("interview") is None


class TestChat:
    """POST /interview/chat."""

    @pytest.mark.asyncio
    async def test_chat_reply(self, client: AsyncClient, providers: Providers) -> None:
        application_id = await _create_application(client)
        history = [
            {"role": "assistant", "content": "Hello! First question: ..."},
            {"role": "user", "content": "Three years at concerts."},
        ]

        response = await client.post(
            "/interview/chat",
            json={
                "application_id": application_id,
                "role_id": "usher",
                "message": "Three years at concerts.",
                "conversation_history": history,
                "candidate_name": "Ada",
            },
            headers=USER,
        )

        assert response.status_code == 200
        assert response.json()["message"].startswith("Next question")
        call = providers.chat.calls[0]
        assert call["application_id"] == application_id
        assert call["history"] == history
        assert call["role"].candidate_name == "Ada"

    @pytest.mark.asyncio
    async def test_chat_requires_login(self, client: AsyncClient) -> None:
        response = await client.post(
            "/interview/chat",
            json={"application_id": 1, "role_id": "usher", "message": "Hi"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_chat_unknown_application(self, client: AsyncClient) -> None:
        response = await client.post(
            "/interview/chat",
            json={"application_id": 99, "role_id": "usher", "message": "Hi"},
            headers=USER,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_chat_provider_failure(self, client: AsyncClient, providers: Providers) -> None:
        application_id = await _create_application(client)
        providers.chat.fail_with = transport_failure()

        response = await client.post(
            "/interview/chat",
            json={"application_id": application_id, "role_id": "usher", "message": "Hi"},
            headers=USER,
        )

        assert response.status_code == 502
        data = response.json()
        assert data["error_code"] == "TRANSPORT_FAILURE"
        assert data["error"] == "Failed to send message. Please try again."


class TestVoice:
    """Speech proxies."""

    @pytest.mark.asyncio
    async def test_speak(self, client: AsyncClient, providers: Providers) -> None:
        response = await client.post("/voice/speak", json={"text": "Welcome to your interview"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "audio/mpeg"
        assert response.content == providers.tts.audio
        assert providers.tts.texts == ["Welcome to your interview"]

    @pytest.mark.asyncio
    async def test_speak_empty_text(self, client: AsyncClient) -> None:
        response = await client.post("/voice/speak", json={"text": ""})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_transcribe(self, client: AsyncClient, providers: Providers) -> None:
        response = await client.post(
            "/voice/transcribe",
            files={"audio": ("answer.webm", b"\x1aE\xdf\xa3webm", "audio/webm")},
        )

        assert response.status_code == 200
        assert response.json() == {"text": "I have three years of experience."}
        assert providers.stt.received == [(b"\x1aE\xdf\xa3webm", "answer.webm")]

    @pytest.mark.asyncio
    async def test_transcribe_empty_upload(self, client: AsyncClient) -> None:
        response = await client.post(
            "/voice/transcribe",
            files={"audio": ("answer.webm", b"", "audio/webm")},
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "EMPTY_RESULT"

    @pytest.mark.asyncio
    async def test_transcribe_nothing_heard(self, client: AsyncClient, providers: Providers) -> None:
        providers.stt.fail_with = EmptyResultError("No speech recognized", user_message="No speech detected.")

        response = await client.post(
            "/voice/transcribe",
            files={"audio": ("answer.webm", b"\x00\x01", "audio/webm")},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "No speech detected."

    @pytest.mark.asyncio
    async def test_speak_provider_failure(self, client: AsyncClient, providers: Providers) -> None:
        providers.tts.fail_with = transport_failure()

        response = await client.post("/voice/speak", json={"text": "Hello"})

        assert response.status_code == 502
