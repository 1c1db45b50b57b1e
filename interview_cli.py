#!/usr/bin/env python3
"""
Terminal Interview Host.

Runs a chat interview through the session lifecycle controller, either live
against the interview service or fully offline with a scripted interviewer.

Usage:
    # Start the service first:
    uv run python voice_service.py

    # In another terminal, interview as a candidate:
    uv run python interview_cli.py --role usher --candidate "Ada Obi" --user-id user_42

    # Offline run with canned answers (no network):
    uv run python interview_cli.py --role bartender --simulate
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Final, Optional, Sequence

from interview_session.controller import SessionLifecycleController
from interview_session.errors import TransportFailureError
from interview_session.models import Modality, RoleContext, SessionOutcome, SessionResult, SessionState
from interview_session.notify import CallbackNotifier
from interview_session.roles import available_roles, load_role
from interview_session.transport import ChatTransport, InterviewApiClient


logger: logging.Logger = logging.getLogger(__name__)


# =============================================================================
# Exit Codes
# =============================================================================

EXIT_COMPLETED: Final[int] = 0
EXIT_INCOMPLETE: Final[int] = 1
EXIT_CONFIG_ERROR: Final[int] = 2
EXIT_INTERRUPTED: Final[int] = 130  # Standard SIGINT exit code


# =============================================================================
# Configuration
# =============================================================================

DEFAULT_SERVICE_URL: Final[str] = "http://127.0.0.1:8780"
END_COMMAND: Final[str] = "/end"
SIMULATED_APPLICATION_ID: Final[int] = 1


# =============================================================================
# Scripted Interview
# =============================================================================

SIMULATED_INTERVIEWER_REPLIES: tuple[str, ...] = (
    "Thanks for sharing that. Can you describe a challenging situation you faced at an event and how you handled it?",
    "That sounds like it was handled calmly. What qualities do you think make a great event staff member?",
    "Great answer. How do you handle working with diverse teams and clients?",
    "Thank you for your time, and best of luck! Your application will be reviewed shortly.",
)

SIMULATED_CANDIDATE_ANSWERS: tuple[str, ...] = (
    "I've worked as an usher and registration assistant at concerts and conferences for about three years.",
    "At a sold-out concert the scanners went down, so I set up a manual check-in line and kept guests updated until they came back.",
    "Staying calm under pressure, being friendly with guests, and always knowing where the exits and supervisors are.",
    "I listen first, keep communication simple, and make sure everyone on the team knows the plan before doors open.",
)


class ScriptedChatTransport:
    """Offline interviewer that replies from a fixed script."""

    def __init__(
        self,
        replies: Sequence[str] = SIMULATED_INTERVIEWER_REPLIES,
        delay_seconds: float = 0.0,
    ) -> None:
        self._replies = list(replies)
        self._delay_seconds = delay_seconds
        self._index = 0
        self.histories: list[list[dict[str, str]]] = []

    async def send(
        self,
        application_id: int,
        message: str,
        history: list[dict[str, str]],
        role: RoleContext,
    ) -> str:
        self.histories.append(list(history))
        if self._delay_seconds:
            await asyncio.sleep(self._delay_seconds)
        if not self._replies:
            raise TransportFailureError("Scripted interviewer has no replies")
        reply = self._replies[min(self._index, len(self._replies) - 1)]
        self._index += 1
        return reply


# =============================================================================
# Interview Loop
# =============================================================================

def _print_turn(label: str, text: str) -> None:
    print(f"\n{label}: {text}")


async def _read_answer(prompt: str) -> Optional[str]:
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


async def run_interview(
    controller: SessionLifecycleController,
    answers: Optional[Sequence[str]] = None,
    notified: Optional[asyncio.Event] = None,
    notify_timeout: float = 10.0,
) -> int:
    """
    Drive one chat session to a verdict.

    Args:
        controller: Controller for a chat session, not yet started.
        answers: Canned candidate answers. When exhausted the session is ended
            early. When None, answers are read from stdin and ``/end`` ends early.
        notified: Event set by the host notifier; awaited after a completed run.
        notify_timeout: Seconds to wait for the notification.

    Returns:
        EXIT_COMPLETED or EXIT_INCOMPLETE.
    """
    await controller.start()
    greeting = controller.conversation.last
    if greeting is not None:
        _print_turn("Interviewer", greeting.text)

    scripted = list(answers) if answers is not None else None

    while controller.state == SessionState.ACTIVE:
        if scripted is not None:
            if not scripted:
                controller.end_early()
                break
            answer: Optional[str] = scripted.pop(0)
            _print_turn("You", answer)
        else:
            answer = await _read_answer("\nYou: ")
            if answer is None or answer.strip().lower() == END_COMMAND:
                controller.end_early()
                break

        reply = await controller.submit_turn(answer)
        if reply is not None:
            _print_turn("Interviewer", reply.text)
        elif controller.last_error is not None:
            print(f"\n[!] {controller.last_error.user_message}")
            controller.dismiss_error()
            if scripted is not None:
                controller.end_early()
                break

    result = controller.result
    outcome = controller.outcome
    print("\n" + "=" * 60)
    if outcome is not None:
        print(
            f"Interview {outcome.result.value}: {outcome.turn_count} turns, "
            f"ended by {outcome.end_trigger.value}"
        )
    print("=" * 60)

    if result == SessionResult.COMPLETED:
        if notified is not None:
            try:
                await asyncio.wait_for(notified.wait(), timeout=notify_timeout)
            except asyncio.TimeoutError:
                logger.warning("Host notification did not arrive within %.1fs", notify_timeout)
        return EXIT_COMPLETED

    print("The interview was too short to count. Run again to retry.")
    return EXIT_INCOMPLETE


async def run(
    role_id: str,
    candidate_name: Optional[str],
    service_url: str,
    user_id: Optional[str],
    simulate: bool,
    max_answers: Optional[int] = None,
    notify_delay: Optional[float] = None,
) -> int:
    """Resolve the role and transport, then run the interview."""
    try:
        role = load_role(role_id).to_context(candidate_name)
    except ValueError as exc:
        logger.error("%s", exc)
        return EXIT_CONFIG_ERROR

    notified = asyncio.Event()

    def _on_complete(outcome: SessionOutcome) -> None:
        logger.info("Completed interview %s reported to host", outcome.session_id)
        notified.set()

    def _controller(
        chat: ChatTransport,
        application_id: int,
        notifier: CallbackNotifier,
    ) -> SessionLifecycleController:
        return SessionLifecycleController(
            Modality.CHAT,
            role,
            application_id=application_id,
            chat_transport=chat,
            notifier=notifier,
            notify_delay=notify_delay,
        )

    if simulate:
        answers = list(SIMULATED_CANDIDATE_ANSWERS)
        if max_answers is not None:
            answers = answers[:max_answers]
        controller = _controller(
            ScriptedChatTransport(),
            SIMULATED_APPLICATION_ID,
            CallbackNotifier(_on_complete),
        )
        try:
            return await run_interview(controller, answers=answers, notified=notified)
        finally:
            controller.teardown()

    if not user_id:
        logger.error("A user id is required for live interviews (--user-id or INTERVIEW_USER_ID)")
        return EXIT_CONFIG_ERROR

    async with InterviewApiClient(service_url, user_id=user_id) as api:
        try:
            await api.health()
            created = await api.create_application(role.role_id)
        except TransportFailureError as exc:
            logger.error("Cannot reach interview service at %s: %s", service_url, exc.message)
            return EXIT_CONFIG_ERROR

        logger.info("Application %s created for %s", created["application_id"], created["role_name"])

        async def _report(outcome: SessionOutcome) -> None:
            updated = await api.record_outcome(outcome)
            logger.info("Application %s moved to %s", updated["application_id"], updated["current_step"])
            _on_complete(outcome)

        controller = _controller(api, int(created["application_id"]), CallbackNotifier(_report))
        try:
            return await run_interview(controller, notified=notified)
        finally:
            controller.teardown()


def main(
    role_id: str,
    candidate_name: Optional[str] = None,
    service_url: Optional[str] = None,
    user_id: Optional[str] = None,
    simulate: bool = False,
    max_answers: Optional[int] = None,
    notify_delay: Optional[float] = None,
) -> int:
    """
    Main entry point for the terminal host.

    Returns:
        Exit code: 0 completed, 1 incomplete, 2 configuration or connection error.
    """
    resolved_url = service_url or os.environ.get("INTERVIEW_SERVICE_URL", DEFAULT_SERVICE_URL)
    resolved_user = user_id or os.environ.get("INTERVIEW_USER_ID")

    logger.info("Role: %s, mode: %s", role_id, "simulated" if simulate else resolved_url)

    try:
        return asyncio.run(
            run(
                role_id=role_id,
                candidate_name=candidate_name,
                service_url=resolved_url,
                user_id=resolved_user,
                simulate=simulate,
                max_answers=max_answers,
                notify_delay=notify_delay,
            )
        )
    except KeyboardInterrupt:
        logger.info("Interview interrupted")
        return EXIT_INTERRUPTED


def cli() -> None:
    """Command-line interface entry point with argument parsing."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Run an AI chat interview in the terminal.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
    # Live interview against a local service
    uv run python interview_cli.py --role usher --user-id user_42

    # Offline simulation that completes
    uv run python interview_cli.py --role mc --simulate

    # Offline simulation that is abandoned after one answer
    uv run python interview_cli.py --role mc --simulate --max-answers 1

Roles: {", ".join(available_roles())}

Type {END_COMMAND} during a live interview to end it early.

Environment Variables:
    INTERVIEW_SERVICE_URL   Service URL (default: {DEFAULT_SERVICE_URL})
    INTERVIEW_USER_ID       User id sent as X-User-Id

Exit Codes:
    0 completed, 1 incomplete, 2 configuration or connection error
        """,
    )

    parser.add_argument("--role", required=True, help="Role id to interview for")
    parser.add_argument(
        "--candidate",
        type=str,
        default=None,
        dest="candidate_name",
        help="Candidate name used in the greeting",
    )
    parser.add_argument(
        "--service-url",
        type=str,
        default=None,
        help=f"Interview service URL (default: {DEFAULT_SERVICE_URL})",
    )
    parser.add_argument("--user-id", type=str, default=None, help="Authenticated user id")
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Use a scripted interviewer and canned answers (no network)",
    )
    parser.add_argument(
        "--max-answers",
        type=int,
        default=None,
        help="Simulation only: stop after this many answers",
    )
    parser.add_argument(
        "--notify-delay",
        type=float,
        default=None,
        help="Seconds before a completed interview is reported (default: 2)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    exit_code = main(
        role_id=args.role,
        candidate_name=args.candidate_name,
        service_url=args.service_url,
        user_id=args.user_id,
        simulate=args.simulate,
        max_answers=args.max_answers,
        notify_delay=args.notify_delay,
    )
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
