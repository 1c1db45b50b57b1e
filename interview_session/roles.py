"""
Role catalog.

Static catalog of event-staffing roles candidates can apply for, each with
the questions the interviewer should cover.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import RoleContext


GENERAL_QUESTIONS: tuple[str, ...] = (
    "Tell us about your experience in event staffing. What roles have you worked?",
    "Describe a challenging situation you faced at an event and how you handled it.",
    "What qualities do you think make a great event staff member?",
    "How do you handle working with diverse teams and clients?",
)


@dataclass(frozen=True)
class RoleDefinition:
    """Catalog entry for one role."""

    id: str
    title: str
    description: str
    interview_questions: tuple[str, ...]

    def to_context(self, candidate_name: str | None = None) -> RoleContext:
        return RoleContext(
            role_id=self.id,
            title=self.title,
            description=self.description,
            interview_questions=list(self.interview_questions),
            candidate_name=candidate_name,
        )


EVENT_ROLES: tuple[RoleDefinition, ...] = (
    RoleDefinition(
        id="usher",
        title="Usher",
        description="Welcome guests, check tickets and guide attendees to their seats.",
        interview_questions=(
            "Tell us about a time you guided a large crowd. How did you keep things orderly?",
            *GENERAL_QUESTIONS[1:],
        ),
    ),
    RoleDefinition(
        id="bartender",
        title="Bartender",
        description="Prepare and serve drinks quickly while keeping the bar clean and compliant.",
        interview_questions=(
            "What is your experience mixing drinks at high-volume events?",
            "How do you handle a guest who has clearly had too much to drink?",
            *GENERAL_QUESTIONS[2:],
        ),
    ),
    RoleDefinition(
        id="mc",
        title="Event Host / MC",
        description="Keep the program on schedule, introduce speakers and engage the audience.",
        interview_questions=(
            "Tell us about an event you hosted. How did you keep the audience engaged?",
            "What do you do when a speaker runs over their time slot?",
            *GENERAL_QUESTIONS[3:],
        ),
    ),
    RoleDefinition(
        id="security",
        title="Event Security",
        description="Screen entrances, monitor the venue and respond calmly to incidents.",
        interview_questions=(
            "Describe your security experience at public events.",
            "Walk us through how you would de-escalate a confrontation at the gate.",
            *GENERAL_QUESTIONS[3:],
        ),
    ),
    RoleDefinition(
        id="registration",
        title="Registration Desk Staff",
        description="Check in attendees, issue badges and answer first questions at the door.",
        interview_questions=GENERAL_QUESTIONS,
    ),
)


def _build_registry() -> dict[str, RoleDefinition]:
    return {role.id: role for role in EVENT_ROLES}


_REGISTRY = _build_registry()


def available_roles() -> tuple[str, ...]:
    """Return all role IDs in the catalog."""
    return tuple(sorted(_REGISTRY.keys()))


def load_role(role_id: str) -> RoleDefinition:
    """Load a role by ID."""
    normalized = (role_id or "").strip().lower()
    if not normalized:
        raise ValueError("Role id is empty. Pass --role or role_id.")

    role = _REGISTRY.get(normalized)
    if role is None:
        supported = ", ".join(available_roles())
        raise ValueError(f"Unknown role '{role_id}'. Supported roles: {supported}.")
    return role
