"""
Error taxonomy for interview sessions.

Every error carries a machine-readable ``error_code`` and a ``user_message``
suitable for a dismissible notice. ``StaleSignalError`` is internal: it is
raised by the end-signal guard and the controller and swallowed there.
"""

from __future__ import annotations


__all__ = [
    "InterviewError",
    "PermissionDeniedError",
    "ConnectionFailureError",
    "TransportFailureError",
    "EmptyResultError",
    "StaleSignalError",
]


class InterviewError(Exception):
    """Base exception for interview session errors."""

    error_code = "INTERVIEW_ERROR"
    default_user_message = "Something went wrong. Please try again."

    def __init__(self, message: str, user_message: str | None = None) -> None:
        self.message = message
        self.user_message = user_message or self.default_user_message
        super().__init__(message)


class PermissionDeniedError(InterviewError):
    """Raised when microphone access is refused."""

    error_code = "PERMISSION_DENIED"
    default_user_message = (
        "Microphone permission denied. Please enable microphone access to use the voice interview."
    )


class ConnectionFailureError(InterviewError):
    """Raised when the voice widget fails to start or loses its connection."""

    error_code = "CONNECTION_FAILURE"
    default_user_message = "Connection error. Please try again."


class TransportFailureError(InterviewError):
    """Raised when a chat, speech-to-text or text-to-speech call fails."""

    error_code = "TRANSPORT_FAILURE"
    default_user_message = "Failed to send message. Please try again."

    def __init__(
        self,
        message: str,
        user_message: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, user_message)


class EmptyResultError(TransportFailureError):
    """Raised when synthesized audio or a transcript comes back empty."""

    error_code = "EMPTY_RESULT"
    default_user_message = "Received an empty response. Please try again."


class StaleSignalError(InterviewError):
    """Raised for duplicate or late end-of-session signals."""

    error_code = "STALE_SIGNAL"
