"""
Interview Service

HTTP surface for the interview frontends: role catalog, application
creation, the chat interviewer, and the speech proxies used by the voice
interview.

Endpoints:
    GET  /health                              - Health check
    GET  /roles                               - Role catalog
    GET  /roles/{role_id}/voice-config        - Widget config for a voice interview
    POST /applications                        - Create an application (auth)
    POST /applications/{id}/outcome           - Record an interview outcome (auth)
    POST /interview/chat                      - Next interviewer message (auth)
    POST /voice/speak                         - Text-to-speech, returns audio/mpeg
    POST /voice/transcribe                    - Speech-to-text, multipart field "audio"

Authentication is a trusted ``X-User-Id`` header set by the fronting proxy.
Internal binding: configured by SERVICE_HOST/SERVICE_PORT (default 0.0.0.0:8780)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Any, AsyncIterator, Optional, TypedDict

import uvicorn
from fastapi import Depends, FastAPI, File, Header, Request, Response, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from interview_session import __version__
from interview_session.bridge import WIDGET_TAG, build_widget_variables
from interview_session.config import ServiceConfig, load_service_config
from interview_session.errors import EmptyResultError, InterviewError, TransportFailureError
from interview_session.models import SessionOutcome
from interview_session.persistence import ApplicationStore
from interview_session.prompts import build_voice_first_message, build_voice_prompt
from interview_session.providers import (
    AgentChatResponder,
    ElevenLabsTextToSpeech,
    GoogleSpeechToText,
)
from interview_session.roles import RoleDefinition, available_roles, load_role
from interview_session.transport import ChatTransport, SpeechToText, TextToSpeech


logger = logging.getLogger(__name__)


SERVICE_NAME = "Interview Service"


# =============================================================================
# Request/Response Models
# =============================================================================


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
    error_code: Optional[str] = None
    login_url: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: str
    providers: dict[str, bool]


class RoleResponse(BaseModel):
    id: str
    title: str
    description: str
    interview_questions: list[str]


class RolesResponse(BaseModel):
    roles: list[RoleResponse]


class VoiceConfigResponse(BaseModel):
    role_id: str
    agent_id: Optional[str] = None
    script_url: str
    widget_tag: str
    prompt: str
    first_message: str
    dynamic_variables: dict[str, str]


class CreateApplicationRequest(BaseModel):
    role_id: str = Field(..., min_length=1)


class CreateApplicationResponse(BaseModel):
    application_id: int
    listing_id: int
    role_id: str
    role_name: str


class HistoryMessage(BaseModel):
    role: str = Field(..., pattern="^(user|assistant)$")
    content: str


class ChatRequest(BaseModel):
    application_id: int
    role_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    conversation_history: list[HistoryMessage] = Field(default_factory=list)
    candidate_name: Optional[str] = None


class ChatResponse(BaseModel):
    message: str


class SpeakRequest(BaseModel):
    text: str = Field(..., min_length=1)


class TranscribeResponse(BaseModel):
    text: str


class OutcomeResponse(BaseModel):
    ok: bool = True
    application_id: int
    status: str
    current_step: str


class AppState(TypedDict):
    """Type-safe application state managed by lifespan."""

    config: ServiceConfig
    store: ApplicationStore
    chat: ChatTransport
    stt: SpeechToText
    tts: TextToSpeech


# =============================================================================
# Custom Exceptions
# =============================================================================


class ServiceError(Exception):
    """Base exception for request-level service errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class AuthenticationRequiredError(ServiceError):
    """Raised when the caller is not authenticated."""

    def __init__(self, login_url: str) -> None:
        self.login_url = login_url
        super().__init__(
            message="Please login (10001)",
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="AUTH_REQUIRED",
        )


class RoleNotFoundError(ServiceError):
    def __init__(self, role_id: str) -> None:
        super().__init__(
            message=f"Unknown role: {role_id}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="ROLE_NOT_FOUND",
        )


class ApplicationNotFoundError(ServiceError):
    def __init__(self, application_id: int) -> None:
        super().__init__(
            message=f"Application {application_id} not found",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="APPLICATION_NOT_FOUND",
        )


class OutcomeMismatchError(ServiceError):
    def __init__(self, application_id: int, outcome_application_id: int) -> None:
        super().__init__(
            message=(
                f"Outcome belongs to application {outcome_application_id}, "
                f"not {application_id}"
            ),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="APPLICATION_MISMATCH",
        )


# =============================================================================
# Dependencies
# =============================================================================


def get_app_state(request: Request) -> AppState:
    """
    Dependency to retrieve application state from request.

    Raises:
        RuntimeError: If state is not properly initialized.
    """
    state = getattr(request, "state", None)
    if state is None:
        raise RuntimeError("Application state not initialized")
    return AppState(
        config=state.config,
        store=state.store,
        chat=state.chat,
        stt=state.stt,
        tts=state.tts,
    )


AppStateDep = Annotated[AppState, Depends(get_app_state)]


def require_user(
    state: AppStateDep,
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """Authenticated user id from the ``X-User-Id`` header."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise AuthenticationRequiredError(state["config"].login_url)
    return user_id


UserDep = Annotated[str, Depends(require_user)]


def _resolve_role(role_id: str) -> RoleDefinition:
    try:
        return load_role(role_id)
    except ValueError as exc:
        raise RoleNotFoundError(role_id) from exc


async def _owned_application(store: ApplicationStore, application_id: int, user_id: str) -> dict[str, Any]:
    application = await store.get_application(application_id)
    if application is None or application.get("user_id") != user_id:
        raise ApplicationNotFoundError(application_id)
    return application


# =============================================================================
# Exception Handlers
# =============================================================================


def _error_response(status_code: int, error: str, error_code: str | None, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, error_code=error_code, **extra).model_dump(exclude_none=True),
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    login_url = getattr(exc, "login_url", None)
    return _error_response(exc.status_code, exc.message, exc.error_code, login_url=login_url)


async def interview_error_handler(request: Request, exc: InterviewError) -> JSONResponse:
    """Map provider errors: empty result 422, other transport failures 502."""
    if isinstance(exc, EmptyResultError):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, TransportFailureError):
        status_code = status.HTTP_502_BAD_GATEWAY
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    logger.warning("%s on %s: %s", exc.error_code, request.url.path, exc.message)
    return _error_response(status_code, exc.user_message, exc.error_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    detail = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, detail, "VALIDATION_ERROR")


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        "INTERNAL_ERROR",
    )


# =============================================================================
# Application Factory
# =============================================================================


def create_app(
    config: ServiceConfig | None = None,
    *,
    chat: ChatTransport | None = None,
    stt: SpeechToText | None = None,
    tts: TextToSpeech | None = None,
    store: ApplicationStore | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Providers and the store default to the real implementations built from
    ``config``; tests pass fakes instead.
    """
    config = config or load_service_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[dict[str, Any]]:
        logger.info("Starting %s %s", SERVICE_NAME, __version__)
        state = {
            "config": config,
            "store": store or ApplicationStore(config.data_dir),
            "chat": chat or AgentChatResponder.from_config(config),
            "stt": stt or GoogleSpeechToText(
                config.google_speech_api_key,
                language_code=config.stt_language,
            ),
            "tts": tts or ElevenLabsTextToSpeech(
                config.elevenlabs_api_key,
                voice_id=config.elevenlabs_voice_id,
                model_id=config.elevenlabs_model_id,
            ),
        }
        logger.info("Application data directory: %s", state["store"].data_dir)
        yield state
        logger.info("Shutting down...")

    app = FastAPI(
        title=SERVICE_NAME,
        version=__version__,
        description="Chat interviewer, speech proxies and applications for AI candidate interviews",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-User-Id"],
        max_age=3600,
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(InterviewError, interview_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # =========================================================================
    # Endpoints
    # =========================================================================

    @app.get("/health", response_model=HealthResponse)
    async def health(state: AppStateDep) -> HealthResponse:
        cfg = state["config"]
        return HealthResponse(
            status="healthy",
            service=SERVICE_NAME,
            version=__version__,
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            providers={
                "chat": True,
                "speech_to_text": stt is not None or bool(cfg.google_speech_api_key),
                "text_to_speech": tts is not None or bool(cfg.elevenlabs_api_key),
            },
        )

    @app.get("/roles", response_model=RolesResponse)
    async def list_roles() -> RolesResponse:
        roles = [load_role(role_id) for role_id in available_roles()]
        return RolesResponse(
            roles=[
                RoleResponse(
                    id=role.id,
                    title=role.title,
                    description=role.description,
                    interview_questions=list(role.interview_questions),
                )
                for role in roles
            ]
        )

    @app.get("/roles/{role_id}/voice-config", response_model=VoiceConfigResponse)
    async def voice_config(
        role_id: str,
        state: AppStateDep,
        candidate_name: Optional[str] = None,
    ) -> VoiceConfigResponse:
        """Everything a frontend needs to mount the voice widget for a role."""
        cfg = state["config"]
        context = _resolve_role(role_id).to_context(candidate_name)
        return VoiceConfigResponse(
            role_id=context.role_id,
            agent_id=cfg.widget_agent_id,
            script_url=cfg.widget_script_url,
            widget_tag=WIDGET_TAG,
            prompt=build_voice_prompt(context, cfg.interviewer_name),
            first_message=build_voice_first_message(context, cfg.interviewer_name),
            dynamic_variables=build_widget_variables(context),
        )

    @app.post(
        "/applications",
        response_model=CreateApplicationResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_application(
        request: CreateApplicationRequest,
        state: AppStateDep,
        user_id: UserDep,
    ) -> CreateApplicationResponse:
        role = _resolve_role(request.role_id)
        store = state["store"]
        listing_id = await store.ensure_role_listing(role.id)
        application_id = await store.create_application(role.id, user_id)
        return CreateApplicationResponse(
            application_id=application_id,
            listing_id=listing_id,
            role_id=role.id,
            role_name=role.title,
        )

    @app.post("/applications/{application_id}/outcome", response_model=OutcomeResponse)
    async def record_outcome(
        application_id: int,
        outcome: SessionOutcome,
        state: AppStateDep,
        user_id: UserDep,
    ) -> OutcomeResponse:
        store = state["store"]
        await _owned_application(store, application_id, user_id)
        if outcome.application_id is not None and outcome.application_id != application_id:
            raise OutcomeMismatchError(application_id, outcome.application_id)
        updated = await store.record_outcome(application_id, outcome)
        return OutcomeResponse(
            application_id=application_id,
            status=updated["status"],
            current_step=updated["current_step"],
        )

    @app.post("/interview/chat", response_model=ChatResponse)
    async def interview_chat(
        request: ChatRequest,
        state: AppStateDep,
        user_id: UserDep,
    ) -> ChatResponse:
        """Next interviewer message given the full conversation so far."""
        await _owned_application(state["store"], request.application_id, user_id)
        context = _resolve_role(request.role_id).to_context(request.candidate_name)
        history = [item.model_dump() for item in request.conversation_history]
        reply = await state["chat"].send(
            request.application_id,
            request.message,
            history,
            context,
        )
        logger.info(
            "Chat reply for application %d (%d history items)",
            request.application_id,
            len(history),
        )
        return ChatResponse(message=reply)

    @app.post(
        "/voice/speak",
        response_class=Response,
        responses={200: {"content": {"audio/mpeg": {}}}},
    )
    async def voice_speak(request: SpeakRequest, state: AppStateDep) -> Response:
        audio = await state["tts"].synthesize(request.text)
        return Response(content=audio, media_type="audio/mpeg")

    @app.post("/voice/transcribe", response_model=TranscribeResponse)
    async def voice_transcribe(
        state: AppStateDep,
        audio: UploadFile = File(...),
    ) -> TranscribeResponse:
        data = await audio.read()
        logger.info("Received audio: %d bytes", len(data))
        if not data:
            raise EmptyResultError("Uploaded audio is empty", user_message="No audio recorded. Please try again.")
        text = await state["stt"].transcribe(data, filename=audio.filename or "audio.webm")
        return TranscribeResponse(text=text)

    return app


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    service_config = load_service_config()
    logger.info("=" * 60)
    logger.info(SERVICE_NAME)
    logger.info("=" * 60)
    logger.info("Binding to: http://%s:%d", service_config.host, service_config.port)
    logger.info("Data directory: %s", service_config.data_dir)
    logger.info("Roles: %s", ", ".join(available_roles()))
    logger.info("=" * 60)

    uvicorn.run(
        create_app(service_config),
        host=service_config.host,
        port=service_config.port,
        log_level="info",
    )
