"""
Pydantic models for interview sessions.

Defines the session entity driven by the lifecycle controller, the
conversation turns of chat interviews, the role context handed to the
interviewer model, and the outcome delivered to the host application.

Last Grunted: 10/19/2026
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class Modality(str, Enum):
    """Interview modality."""

    CHAT = "chat"
    VOICE = "voice"


class SessionState(str, Enum):
    """
    Lifecycle states of a session.

    Attributes:
        IDLE: Created, nothing started yet.
        CONNECTING: Voice only. Waiting for the widget to confirm the call.
        ACTIVE: Interview in progress. ``started_at`` is set.
        ENDED: Terminal. ``result`` is set.
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    ENDED = "ended"


class SessionResult(str, Enum):
    """Completion verdict computed when a session ends."""

    COMPLETED = "completed"
    INCOMPLETE = "incomplete"


class EndTrigger(str, Enum):
    """What caused a session to end."""

    USER = "user"
    CLOSING_PHRASE = "closing_phrase"
    WIDGET = "widget"


class Speaker(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


class Turn(BaseModel):
    """One exchanged message in a chat interview."""

    speaker: Speaker = Field(..., description="Who wrote the turn")
    text: str = Field(..., description="Turn content")

    model_config = {"frozen": True}


class RoleContext(BaseModel):
    """
    Role details handed to the interviewer model and the voice widget.

    Example:
        >>> role = RoleContext(
        ...     role_id="usher",
        ...     title="Usher",
        ...     description="Guide guests to their seats.",
        ...     interview_questions=["Tell us about your event experience."],
        ...     candidate_name="Ada",
        ... )
    """

    role_id: str = Field(..., min_length=1, description="Catalog identifier of the role")
    title: str = Field(..., min_length=1, description="Human readable role title")
    description: str = Field(default="", description="Role description")
    interview_questions: list[str] = Field(
        default_factory=list,
        description="Questions the interviewer should cover, in order",
    )
    candidate_name: Optional[str] = Field(default=None, description="Candidate display name")


class InterviewSession(BaseModel):
    """
    One candidate attempt at an interview.

    ``result`` is set if and only if ``state`` is ENDED. The lifecycle
    controller is the only writer; a retry creates a new instance instead of
    mutating an ended one.

    Example:
        >>> session = InterviewSession(session_id="int_20261019_101500_a1b2c3", modality=Modality.CHAT)
        >>> session.state
        <SessionState.IDLE: 'idle'>
    """

    session_id: str = Field(..., description="Unique session identifier")
    modality: Modality = Field(..., description="Chat or voice")
    state: SessionState = Field(default=SessionState.IDLE, description="Lifecycle state")
    result: Optional[SessionResult] = Field(
        default=None,
        description="Completion verdict, set only when the session ends",
    )
    application_id: Optional[int] = Field(
        default=None,
        description="Application this attempt belongs to",
    )
    started_at: Optional[datetime] = Field(
        default=None,
        description="UTC time the session became active",
    )
    ended_at: Optional[datetime] = Field(
        default=None,
        description="UTC time the session ended",
    )
    end_trigger: Optional[EndTrigger] = Field(
        default=None,
        description="Signal that ended the session",
    )
    turns: list[Turn] = Field(
        default_factory=list,
        description="Ordered chat turns (chat modality only)",
    )

    @model_validator(mode="after")
    def validate_result_matches_state(self) -> "InterviewSession":
        ended = self.state == SessionState.ENDED
        if ended != (self.result is not None):
            raise ValueError("result must be set exactly when state is 'ended'")
        return self


class SessionOutcome(BaseModel):
    """
    Terminal summary delivered to the host application.

    Example:
        >>> outcome = SessionOutcome(
        ...     session_id="int_20261019_101500_a1b2c3",
        ...     modality=Modality.VOICE,
        ...     result=SessionResult.COMPLETED,
        ...     elapsed_seconds=92.5,
        ...     end_trigger=EndTrigger.WIDGET,
        ... )
    """

    session_id: str
    application_id: Optional[int] = None
    modality: Modality
    result: SessionResult
    turn_count: int = Field(default=0, ge=0)
    elapsed_seconds: float = Field(default=0.0, ge=0.0)
    end_trigger: EndTrigger
    ended_at: Optional[datetime] = None

    model_config = {"frozen": True}
