"""
Prompt builders for the interviewer.

The chat greeting seeds the conversation log; the chat instructions drive the
external chat-completion model; the voice prompt and first message are passed
to the voice agent as overrides.
"""

from __future__ import annotations

from .models import RoleContext


DEFAULT_INTERVIEWER_NAME = "Ehi"
PLATFORM_NAME = "Vora.now"


CHAT_INTERVIEWER_INSTRUCTIONS = """You are {interviewer}, a friendly and professional AI interviewer for {platform}, a platform that connects event staff with event organizers.

You are interviewing {candidate} for the {role_title} position.

## Role Description
{role_description}

## Questions To Cover (one at a time, in order)
{questions}

## Guidelines
- Ask exactly one question per message and wait for the answer
- Acknowledge each answer briefly before moving on
- Ask a short follow-up only when an answer is vague
- Keep messages under 80 words
- After the last question, thank the candidate and close with "Thank you for your time, and best of luck!"
"""


VOICE_INTERVIEWER_PROMPT = """You are {interviewer}, a friendly and professional AI interviewer for {platform}, a platform that connects event staff with event organizers.

You are interviewing {candidate} for the {role_title} position.

Role Description: {role_description}

Interview Questions to ask (ask these one at a time, naturally):
{questions}

Guidelines:
- Greet the candidate warmly by name if provided
- Ask questions one at a time and wait for responses
- Be encouraging and professional
- Keep the conversation natural and flowing
- After asking all questions, thank them and let them know their application will be reviewed"""


def _numbered(questions: list[str]) -> str:
    return "\n".join(f"{i}. {q}" for i, q in enumerate(questions, 1))


def build_chat_greeting(role: RoleContext, interviewer: str = DEFAULT_INTERVIEWER_NAME) -> str:
    """
    Build the opening assistant turn of a chat interview.

    Includes the first catalog question so the candidate can answer right away.
    """
    name = f" {role.candidate_name}" if role.candidate_name else ""
    greeting = (
        f"Hello{name}! I'm {interviewer}, your AI interviewer from {PLATFORM_NAME}. "
        f"I'll be asking you a few questions about your experience as a {role.title}. "
        "This should take about 5 minutes. Let's get started!"
    )
    if role.interview_questions:
        greeting += f"\n\nFirst question: {role.interview_questions[0]}"
    return greeting


def build_chat_instructions(role: RoleContext, interviewer: str = DEFAULT_INTERVIEWER_NAME) -> str:
    return CHAT_INTERVIEWER_INSTRUCTIONS.format(
        interviewer=interviewer,
        platform=PLATFORM_NAME,
        candidate=role.candidate_name or "a candidate",
        role_title=role.title,
        role_description=role.description or "Not provided.",
        questions=_numbered(role.interview_questions) or "Ask about relevant event experience.",
    )


def build_voice_prompt(role: RoleContext, interviewer: str = DEFAULT_INTERVIEWER_NAME) -> str:
    return VOICE_INTERVIEWER_PROMPT.format(
        interviewer=interviewer,
        platform=PLATFORM_NAME,
        candidate=role.candidate_name or "a candidate",
        role_title=role.title,
        role_description=role.description,
        questions=_numbered(role.interview_questions),
    )


def build_voice_first_message(role: RoleContext, interviewer: str = DEFAULT_INTERVIEWER_NAME) -> str:
    return (
        f"Hi {role.candidate_name or 'there'}! I'm {interviewer}, and I'll be conducting your "
        f"interview for the {role.title} position at {PLATFORM_NAME} today. Are you ready to begin?"
    )
