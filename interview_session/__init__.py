"""
Interview Session Package.

Runs AI-driven candidate interviews (chat and voice) and decides whether a
session was a genuine completed interview or an abandoned attempt.

Components:
    - SessionLifecycleController: State machine for one interview attempt
    - WidgetEventBridge: De-duplicated end signal from the voice widget
    - Completion policy: Turn / duration thresholds and closing-phrase check
    - ConversationLog: Append-only chat turns
    - InterviewApiClient: HTTP transport to the interview service
    - Providers: OpenAI Agents chat, Google speech-to-text, ElevenLabs text-to-speech
    - ApplicationStore: JSON-file persistence for listings and applications
    - SessionEventPublisher: Pub/sub for state changes, turns and notices
    - VoiceQuestionRunner: Question-by-question recorded voice interview

Example:
    >>> from interview_session import (
    ...     CallbackNotifier, InterviewApiClient, Modality,
    ...     SessionLifecycleController, load_role,
    ... )
    >>>
    >>> role = load_role("usher").to_context(candidate_name="Ada")
    >>> async with InterviewApiClient("http://127.0.0.1:8780", user_id="user_42") as api:
    ...     created = await api.create_application(role.role_id)
    ...     controller = SessionLifecycleController(
    ...         Modality.CHAT, role,
    ...         application_id=created["application_id"],
    ...         chat_transport=api,
    ...         notifier=CallbackNotifier(print),
    ...     )
    ...     await controller.start()
    ...     await controller.submit_turn("I've ushered at concerts for three years.")

Last Grunted: 10/19/2026
"""

from .models import (
    EndTrigger,
    InterviewSession,
    Modality,
    RoleContext,
    SessionOutcome,
    SessionResult,
    SessionState,
    Speaker,
    Turn,
)

from .errors import (
    ConnectionFailureError,
    EmptyResultError,
    InterviewError,
    PermissionDeniedError,
    StaleSignalError,
    TransportFailureError,
)

from .policy import (
    CLOSING_PHRASES,
    MIN_SECONDS_FOR_COMPLETE,
    MIN_TURNS_FOR_COMPLETE,
    contains_closing_phrase,
    evaluate,
)

from .conversation import ConversationLog

from .roles import RoleDefinition, available_roles, load_role

from .bridge import (
    WINDOW,
    EndSignalGuard,
    WidgetEventBridge,
    WidgetHost,
    build_widget_variables,
    ensure_widget_script,
)

from .controller import (
    Microphone,
    MicrophoneStream,
    SessionLifecycleController,
)

from .notify import CallbackNotifier, HostNotifier, NotifyResult, WebhookNotifier

from .pubsub import (
    SessionEvent,
    SessionEventPublisher,
    SessionEventType,
    get_publisher,
)

from .transport import ChatTransport, InterviewApiClient, SpeechToText, TextToSpeech

from .providers import AgentChatResponder, ElevenLabsTextToSpeech, GoogleSpeechToText

from .steps import QuestionResponse, VoiceQuestionRunner

from .persistence import ApplicationStore

from .config import ServiceConfig, load_service_config


__all__ = [
    # Models
    "EndTrigger",
    "InterviewSession",
    "Modality",
    "RoleContext",
    "SessionOutcome",
    "SessionResult",
    "SessionState",
    "Speaker",
    "Turn",
    # Errors
    "ConnectionFailureError",
    "EmptyResultError",
    "InterviewError",
    "PermissionDeniedError",
    "StaleSignalError",
    "TransportFailureError",
    # Policy
    "CLOSING_PHRASES",
    "MIN_SECONDS_FOR_COMPLETE",
    "MIN_TURNS_FOR_COMPLETE",
    "contains_closing_phrase",
    "evaluate",
    # Conversation
    "ConversationLog",
    # Roles
    "RoleDefinition",
    "available_roles",
    "load_role",
    # Widget bridge
    "WINDOW",
    "EndSignalGuard",
    "WidgetEventBridge",
    "WidgetHost",
    "build_widget_variables",
    "ensure_widget_script",
    # Controller
    "Microphone",
    "MicrophoneStream",
    "SessionLifecycleController",
    # Notification
    "CallbackNotifier",
    "HostNotifier",
    "NotifyResult",
    "WebhookNotifier",
    # Pub/Sub
    "SessionEvent",
    "SessionEventPublisher",
    "SessionEventType",
    "get_publisher",
    # Transport and providers
    "ChatTransport",
    "InterviewApiClient",
    "SpeechToText",
    "TextToSpeech",
    "AgentChatResponder",
    "ElevenLabsTextToSpeech",
    "GoogleSpeechToText",
    # Recorded voice questions
    "QuestionResponse",
    "VoiceQuestionRunner",
    # Persistence and config
    "ApplicationStore",
    "ServiceConfig",
    "load_service_config",
]

__version__ = "0.1.0"
