"""
Session Lifecycle Controller.

State machine that runs one interview attempt from start to a terminal
verdict:

    idle --start(chat)--------------------------> active
    idle --start(voice)--> connecting --widget start--> active
    connecting --widget error--> idle
    active --user end | closing phrase | widget end--> ended
    ended --retry--> idle (new session)

Only the first terminal transition of a session is honored. Later end
signals are stale and dropped. When a session ends COMPLETED the host
notifier is called once, after a short delay that lets a results screen
render first. INCOMPLETE sessions are not reported; the host offers a retry.

Thread Safety:
    Not thread-safe. All methods must run on the event loop that owns the
    controller; bridge callbacks arrive on that same loop.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from .bridge import WidgetEventBridge
from .conversation import ConversationLog
from .errors import (
    ConnectionFailureError,
    InterviewError,
    PermissionDeniedError,
    StaleSignalError,
    TransportFailureError,
)
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
from .notify import HostNotifier
from .policy import ClosingPredicate, contains_closing_phrase, evaluate
from .prompts import DEFAULT_INTERVIEWER_NAME, build_chat_greeting
from .pubsub import SessionEvent, SessionEventPublisher, SessionEventType, get_publisher
from .transport import ChatTransport


__all__ = [
    "NOTIFY_DELAY_SECONDS",
    "Microphone",
    "MicrophoneStream",
    "SessionLifecycleController",
    "new_session_id",
]


logger = logging.getLogger(__name__)


# Delay before the host hears about a completed session
NOTIFY_DELAY_SECONDS: dict[Modality, float] = {
    Modality.CHAT: 2.0,
    Modality.VOICE: 3.0,
}

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id(now: datetime) -> str:
    """Session ID with timestamp and random suffix, e.g. ``int_20261019_101500_a1b2c3``."""
    return f"int_{now.strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"


class MicrophoneStream(Protocol):
    """Held audio input. Must be released when the session no longer needs it."""

    def release(self) -> None: ...


class Microphone(Protocol):
    async def acquire(self) -> MicrophoneStream:
        """Ask for microphone access. Raises PermissionDeniedError when refused."""


class SessionLifecycleController:
    """
    Drives a chat or voice interview session and decides its verdict.

    Chat sessions need a ``chat_transport`` and an ``application_id``.
    Voice sessions need a ``microphone`` and normally a ``bridge`` that feeds
    widget signals back through ``on_session_started``, ``on_session_ended``
    and ``on_connection_error``.

    Example:
        >>> controller = SessionLifecycleController(
        ...     Modality.CHAT,
        ...     role,
        ...     application_id=7,
        ...     chat_transport=api,
        ...     notifier=CallbackNotifier(on_complete),
        ... )
        >>> await controller.start()
        >>> await controller.submit_turn("I've ushered at concerts for three years.")
        >>> controller.end_early()
        <SessionResult.INCOMPLETE: 'incomplete'>
    """

    def __init__(
        self,
        modality: Modality,
        role: RoleContext,
        *,
        application_id: Optional[int] = None,
        chat_transport: Optional[ChatTransport] = None,
        microphone: Optional[Microphone] = None,
        bridge: Optional[WidgetEventBridge] = None,
        notifier: Optional[HostNotifier] = None,
        publisher: Optional[SessionEventPublisher] = None,
        clock: Optional[Clock] = None,
        notify_delay: Optional[float] = None,
        is_closing: ClosingPredicate = contains_closing_phrase,
        interviewer_name: str = DEFAULT_INTERVIEWER_NAME,
    ) -> None:
        if modality == Modality.CHAT:
            if chat_transport is None:
                raise ValueError("Chat sessions require a chat_transport.")
            if application_id is None:
                raise ValueError("Chat sessions require an application_id.")
        elif microphone is None:
            raise ValueError("Voice sessions require a microphone.")

        self._modality = modality
        self._role = role
        self._application_id = application_id
        self._chat = chat_transport
        self._microphone = microphone
        self._bridge = bridge
        self._notifier = notifier
        self._publisher = publisher or get_publisher()
        self._clock: Clock = clock or _utc_now
        self._notify_delay = (
            notify_delay if notify_delay is not None else NOTIFY_DELAY_SECONDS[modality]
        )
        self._is_closing = is_closing
        self._interviewer_name = interviewer_name

        self._stream: MicrophoneStream | None = None
        self._notify_task: asyncio.Task[None] | None = None
        self._in_flight = False
        self._notified = False
        self._outcome: SessionOutcome | None = None
        self._last_error: InterviewError | None = None

        self._session = self._new_session()
        self._log = ConversationLog(self._session.turns)

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def session(self) -> InterviewSession:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def result(self) -> Optional[SessionResult]:
        return self._session.result

    @property
    def conversation(self) -> ConversationLog:
        return self._log

    @property
    def outcome(self) -> Optional[SessionOutcome]:
        return self._outcome

    @property
    def last_error(self) -> Optional[InterviewError]:
        """Most recent surfaced error, until dismissed or the next start."""
        return self._last_error

    @property
    def is_input_enabled(self) -> bool:
        """True when a chat turn may be submitted."""
        return (
            self._modality == Modality.CHAT
            and self._session.state == SessionState.ACTIVE
            and not self._in_flight
        )

    @property
    def holds_microphone(self) -> bool:
        return self._stream is not None

    @property
    def notification_pending(self) -> bool:
        return self._notify_task is not None and not self._notify_task.done()

    def elapsed_seconds(self) -> float:
        """Seconds since the session became active (frozen once ended)."""
        started = self._session.started_at
        if started is None:
            return 0.0
        end = self._session.ended_at or self._clock()
        return max(0.0, (end - started).total_seconds())

    def dismiss_error(self) -> None:
        self._last_error = None

    # -------------------------------------------------------------------------
    # Host actions
    # -------------------------------------------------------------------------

    def mount(self) -> None:
        """Bind and attach the widget bridge, if any."""
        if self._bridge is not None:
            self._bridge.bind(self)
            self._bridge.attach()

    async def start(self) -> InterviewSession:
        """
        Start the interview.

        Chat sessions become active immediately with the greeting seeded.
        Voice sessions move to connecting and request the microphone; a
        refusal reverts them to idle and surfaces PermissionDeniedError.
        """
        session = self._session
        if session.state != SessionState.IDLE:
            logger.warning("start() ignored, session %s is %s", session.session_id, session.state.value)
            return session

        self._last_error = None

        if self._modality == Modality.CHAT:
            self._activate()
            turn = self._log.append(
                Speaker.ASSISTANT,
                build_chat_greeting(self._role, self._interviewer_name),
            )
            self._publish_turn(turn)
            return session

        if self._microphone is None:
            raise RuntimeError("Voice session has no microphone")
        self._set_state(SessionState.CONNECTING)
        try:
            stream = await self._microphone.acquire()
        except PermissionDeniedError as exc:
            if self._session is not session:
                return session
            if session.state in (SessionState.CONNECTING, SessionState.ACTIVE):
                # The widget may have confirmed the call while the prompt was open
                self._reset_bridge_call()
                session.started_at = None
                self._set_state(SessionState.IDLE)
            self._surface(exc)
            return session

        if self._session is not session or session.state not in (
            SessionState.CONNECTING,
            SessionState.ACTIVE,
        ):
            # Torn down, retried or failed while waiting for permission
            stream.release()
            return session

        self._stream = stream
        logger.info("Microphone granted for %s, waiting for widget", session.session_id)
        return session

    async def submit_turn(self, text: str) -> Optional[Turn]:
        """
        Send a candidate message and append the interviewer reply.

        Only one message may be in flight. Submissions while disabled, or
        with empty text, return None and change nothing. A transport failure
        is surfaced and re-enables input; prior turns are kept.

        Returns:
            The appended assistant turn, or None.
        """
        message = (text or "").strip()
        if not message or not self.is_input_enabled:
            logger.debug("submit_turn ignored (empty=%s, enabled=%s)", not message, self.is_input_enabled)
            return None

        session = self._session
        if self._chat is None or session.application_id is None:
            raise RuntimeError("Chat session has no transport or application")

        self._in_flight = True
        user_turn = self._log.append(Speaker.USER, message)
        self._publish_turn(user_turn)

        try:
            reply = await self._chat.send(
                session.application_id,
                message,
                self._log.history(),
                self._role,
            )
        except TransportFailureError as exc:
            if self._session is session:
                self._surface(exc)
            return None
        finally:
            if self._session is session:
                self._in_flight = False

        if self._session is not session or session.state != SessionState.ACTIVE:
            logger.info("Dropping late reply for %s", session.session_id)
            return None

        turn = self._log.append(Speaker.ASSISTANT, reply)
        self._publish_turn(turn)

        if self._is_closing(reply):
            self._end(EndTrigger.CLOSING_PHRASE, "closing_phrase")
        return turn

    def end_early(self) -> Optional[SessionResult]:
        """User asked to end. Same policy evaluation as a natural end."""
        return self._end(EndTrigger.USER, "user")

    def retry(self) -> InterviewSession:
        """
        Discard the ended session and start over from a fresh idle one.

        Pending notifications are cancelled and held media is released; no
        turn or timer of the old session survives.
        """
        if self._session.state != SessionState.ENDED:
            logger.warning("retry() ignored, session %s is %s", self._session.session_id, self._session.state.value)
            return self._session

        previous = self._session.session_id
        self._cancel_timers()
        self._release_media()
        self._reset_bridge_call()

        self._session = self._new_session()
        self._log = ConversationLog(self._session.turns)
        self._in_flight = False
        self._notified = False
        self._outcome = None
        self._last_error = None

        logger.info("Retry: %s replaced by %s", previous, self._session.session_id)
        self._publish_state()
        return self._session

    def teardown(self) -> None:
        """Host is going away: cancel timers, detach the bridge, release media."""
        self._cancel_timers()
        self._release_media()
        if self._bridge is not None:
            self._bridge.detach()
        logger.debug("Controller for %s torn down", self._session.session_id)

    # -------------------------------------------------------------------------
    # Bridge listener
    # -------------------------------------------------------------------------

    def on_session_started(self) -> None:
        state = self._session.state
        if self._modality != Modality.VOICE:
            logger.warning("Widget start signal ignored for chat session")
            return
        if state == SessionState.CONNECTING:
            self._activate()
        elif state == SessionState.IDLE:
            logger.info("Widget call started before start() was requested")
            self._activate()
        else:
            logger.debug("Start signal ignored while %s", state.value)

    def on_session_ended(self, source: str) -> None:
        self._end(EndTrigger.WIDGET, source)

    def on_connection_error(self, message: str) -> None:
        state = self._session.state
        if state != SessionState.CONNECTING:
            logger.warning("Widget error while %s: %s", state.value, message)
            return
        self._release_media()
        self._reset_bridge_call()
        self._set_state(SessionState.IDLE)
        self._surface(ConnectionFailureError(message))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _new_session(self) -> InterviewSession:
        return InterviewSession(
            session_id=new_session_id(self._clock()),
            modality=self._modality,
            application_id=self._application_id,
        )

    def _activate(self) -> None:
        self._session.started_at = self._clock()
        self._set_state(SessionState.ACTIVE)
        logger.info("Session %s active (%s)", self._session.session_id, self._modality.value)

    def _claim_end(self, source: str) -> None:
        state = self._session.state
        if state == SessionState.ENDED:
            raise StaleSignalError(f"session already ended, dropping {source}")
        if state != SessionState.ACTIVE:
            raise StaleSignalError(f"end signal from {source} while {state.value}")

    def _end(self, trigger: EndTrigger, source: str) -> Optional[SessionResult]:
        try:
            self._claim_end(source)
        except StaleSignalError as exc:
            logger.debug("Ignoring end signal: %s", exc)
            return None

        session = self._session
        now = self._clock()
        elapsed = (now - session.started_at).total_seconds() if session.started_at else 0.0
        result = evaluate(session.modality, turns=self._log.turns, elapsed_seconds=elapsed)

        self._release_media()
        self._reset_bridge_call()
        session.result = result
        session.ended_at = now
        session.end_trigger = trigger
        session.state = SessionState.ENDED

        self._outcome = SessionOutcome(
            session_id=session.session_id,
            application_id=session.application_id,
            modality=session.modality,
            result=result,
            turn_count=len(self._log),
            elapsed_seconds=max(0.0, elapsed),
            end_trigger=trigger,
            ended_at=now,
        )
        logger.info(
            "Session %s ended via %s: %s (turns=%d, elapsed=%.1fs)",
            session.session_id,
            source,
            result.value,
            len(self._log),
            elapsed,
        )
        self._publish_state()
        self._publisher.publish_nowait(
            SessionEvent(
                event_type=SessionEventType.RESULT,
                session_id=session.session_id,
                content=f"Interview {result.value}",
                payload=self._outcome.model_dump(mode="json"),
            )
        )

        if result == SessionResult.COMPLETED:
            self._schedule_notification(self._outcome)
        return result

    def _schedule_notification(self, outcome: SessionOutcome) -> None:
        if self._notifier is None:
            logger.debug("No host notifier configured for %s", outcome.session_id)
            return
        self._notify_task = asyncio.get_running_loop().create_task(
            self._notify_after_delay(outcome)
        )

    async def _notify_after_delay(self, outcome: SessionOutcome) -> None:
        await asyncio.sleep(self._notify_delay)
        if self._notified or outcome.session_id != self._session.session_id:
            return
        if self._notifier is None:
            return
        self._notified = True
        result = await self._notifier.notify(outcome)
        if result.ok:
            logger.info("Host notified of %s via %s", outcome.session_id, result.notifier)
        else:
            logger.warning(
                "Host notification failed for %s via %s: %s",
                outcome.session_id,
                result.notifier,
                result.detail,
            )

    def _cancel_timers(self) -> None:
        if self._notify_task is not None and not self._notify_task.done():
            self._notify_task.cancel()
        self._notify_task = None

    def _reset_bridge_call(self) -> None:
        if self._bridge is not None:
            self._bridge.reset_call()

    def _release_media(self) -> None:
        if self._stream is None:
            return
        self._stream.release()
        self._stream = None
        logger.debug("Microphone released for %s", self._session.session_id)

    def _surface(self, exc: InterviewError) -> None:
        self._last_error = exc
        logger.warning("%s on %s: %s", exc.error_code, self._session.session_id, exc.message)
        self._publisher.publish_nowait(
            SessionEvent(
                event_type=SessionEventType.NOTICE,
                session_id=self._session.session_id,
                content=exc.user_message,
                error_code=exc.error_code,
            )
        )

    def _set_state(self, state: SessionState) -> None:
        self._session.state = state
        self._publish_state()

    def _publish_state(self) -> None:
        self._publisher.publish_nowait(
            SessionEvent(
                event_type=SessionEventType.STATE,
                session_id=self._session.session_id,
                content=f"Session {self._session.state.value}",
                payload={"state": self._session.state.value},
            )
        )

    def _publish_turn(self, turn: Turn) -> None:
        self._publisher.publish_nowait(
            SessionEvent(
                event_type=SessionEventType.TURN,
                session_id=self._session.session_id,
                content=turn.text,
                payload={"speaker": turn.speaker.value, "index": len(self._log) - 1},
            )
        )
