"""
Widget Event Bridge.

Turns the lifecycle signals of the embedded third-party voice widget into a
single, de-duplicated stream of transitions for the lifecycle controller.

The widget's termination event is unreliable, so the bridge listens on
several channels at once:

    1. custom end events dispatched on the widget element
    2. the same event names dispatched on the window scope
    3. text scans of the rendered widget triggered by DOM mutations
    4. text scans at fixed delays after the widget is registered
    5. start / error events on both scopes

Every end channel reports through one ``EndSignalGuard`` so the listener
receives at most one ``on_session_ended`` per call.

The DOM itself is reached through a ``WidgetHost`` implementation (a browser
bridge, a headless driver, or a fake in tests).

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from functools import partial
from typing import Any, Callable, Coroutine, Optional, Protocol, Sequence

from .errors import StaleSignalError
from .models import RoleContext


__all__ = [
    "WINDOW",
    "WIDGET_TAG",
    "DEFAULT_SCRIPT_URL",
    "START_EVENTS",
    "END_EVENTS",
    "ERROR_EVENTS",
    "TERMINAL_PHRASES",
    "WidgetHost",
    "BridgeListener",
    "EndSignalGuard",
    "WidgetEventBridge",
    "ensure_widget_script",
    "reset_widget_script_state",
    "build_widget_variables",
]


logger = logging.getLogger(__name__)


# Global scope target understood by every WidgetHost
WINDOW = "window"

WIDGET_TAG = "elevenlabs-convai"
DEFAULT_SCRIPT_URL = "https://unpkg.com/@elevenlabs/convai-widget-embed"

START_EVENTS: tuple[str, ...] = (
    "elevenlabs-convai:call",
    "elevenlabs-convai:call-started",
    "call-started",
)
END_EVENTS: tuple[str, ...] = (
    "elevenlabs-convai:end",
    "elevenlabs-convai:call-ended",
    "call-ended",
    "disconnect",
)
ERROR_EVENTS: tuple[str, ...] = ("elevenlabs-convai:error",)

TERMINAL_PHRASES: tuple[str, ...] = (
    "call ended",
    "conversation ended",
    "session ended",
)

# Waits between widget lookups while the external script loads (seconds)
REGISTRATION_DELAYS: tuple[float, ...] = (0.1, 0.5, 1.0, 2.0, 5.0)

# Waits between scheduled text scans once the widget is registered (seconds)
SCAN_DELAYS: tuple[float, ...] = (1.0, 3.0, 5.0, 10.0)


EventHandler = Callable[[dict[str, Any]], None]


class WidgetHost(Protocol):
    """Narrow view of the page hosting the widget."""

    def has_script(self, src: str) -> bool:
        """Whether a script tag with this source is already on the page."""

    def inject_script(self, src: str) -> None:
        """Append an async script tag with this source."""

    def find_widget(self, tag: str) -> Optional[Any]:
        """Return the widget element, or None if it is not rendered yet."""

    def add_listener(self, target: Any, event_name: str, handler: EventHandler) -> None:
        """Subscribe ``handler`` to ``event_name`` on ``target`` (element or WINDOW)."""

    def remove_listener(self, target: Any, event_name: str, handler: EventHandler) -> None:
        """Undo ``add_listener``."""

    def observe_mutations(self, target: Any, handler: Callable[[], None]) -> Callable[[], None]:
        """Call ``handler`` on every subtree mutation; return a disconnect function."""

    def read_text(self, target: Any) -> str:
        """Rendered text content of ``target``."""


class BridgeListener(Protocol):
    """Transitions the bridge delivers to the lifecycle controller."""

    def on_session_started(self) -> None: ...

    def on_session_ended(self, source: str) -> None: ...

    def on_connection_error(self, message: str) -> None: ...


# =============================================================================
# Script injection (init-once state per page)
# =============================================================================

_injected_scripts: "weakref.WeakKeyDictionary[WidgetHost, set[str]]" = weakref.WeakKeyDictionary()


def ensure_widget_script(host: WidgetHost, src: str = DEFAULT_SCRIPT_URL) -> bool:
    """
    Load the widget script at most once per page.

    Each host is a separate page, so a script loaded into one host says
    nothing about another. Hosts are tracked weakly and forgotten once
    they are discarded.

    Args:
        host: Page to inject into.
        src: Script URL.

    Returns:
        True if this call injected the script, False if it was already present.
    """
    loaded = _injected_scripts.setdefault(host, set())
    if src in loaded:
        return False

    injected = False
    if host.has_script(src):
        logger.debug("Widget script already present on page: %s", src)
    else:
        host.inject_script(src)
        injected = True
        logger.info("Injected widget script %s", src)

    loaded.add(src)
    return injected


def reset_widget_script_state() -> None:
    """
    Forget which scripts were injected.

    Primarily useful for testing to ensure a clean state between tests.
    """
    _injected_scripts.clear()


# =============================================================================
# De-duplication guard
# =============================================================================


class EndSignalGuard:
    """
    Single idempotent entry point for end-of-call signals.

    The guard is armed when a call starts and delivers the first end signal
    of that call. Anything after that, or anything arriving while no call is
    armed, is a stale signal and is dropped.

    Example:
        >>> delivered = []
        >>> guard = EndSignalGuard(delivered.append)
        >>> guard.arm()
        True
        >>> guard.report_end("window:call-ended"), guard.report_end("widget:disconnect")
        (True, False)
        >>> delivered
        ['window:call-ended']
    """

    def __init__(self, deliver: Callable[[str], None]) -> None:
        self._deliver = deliver
        self._armed = False
        self._delivered = False

    @property
    def armed(self) -> bool:
        """True while a call is running and its end has not been delivered."""
        return self._armed and not self._delivered

    @property
    def delivered(self) -> bool:
        return self._delivered

    def arm(self) -> bool:
        """
        Arm the guard for a new call.

        Returns:
            False if a call is already armed (duplicate start signal).
        """
        if self.armed:
            return False
        self._armed = True
        self._delivered = False
        return True

    def disarm(self) -> None:
        """Forget the current call; later end signals are stale until the next arm()."""
        self._armed = False
        self._delivered = False

    def _claim(self, source: str) -> None:
        if not self._armed:
            raise StaleSignalError(f"end signal from {source} before any call started")
        if self._delivered:
            raise StaleSignalError(f"end already delivered, dropping {source}")
        self._delivered = True

    def report_end(self, source: str) -> bool:
        """
        Report that the call ended.

        Args:
            source: Channel that observed the end (for logging).

        Returns:
            True if the signal was delivered, False if it was stale.
        """
        try:
            self._claim(source)
        except StaleSignalError as exc:
            logger.debug("Ignoring end signal: %s", exc)
            return False

        logger.info("End of call detected via %s", source)
        self._deliver(source)
        return True


# =============================================================================
# Bridge
# =============================================================================


class WidgetEventBridge:
    """
    Subscribes to the widget's lifecycle signals on every available channel.

    ``attach()`` never raises when the widget is missing: window-scope
    listeners go in immediately, and widget-scope listeners are retried on
    ``registration_delays`` until the element exists. All timers are asyncio
    tasks owned by the bridge and cancelled by ``detach()``.

    Example:
        bridge = WidgetEventBridge(host)
        bridge.bind(controller)
        bridge.attach()
        ...
        bridge.detach()
    """

    def __init__(
        self,
        host: WidgetHost,
        *,
        script_url: str = DEFAULT_SCRIPT_URL,
        widget_tag: str = WIDGET_TAG,
        start_events: Sequence[str] = START_EVENTS,
        end_events: Sequence[str] = END_EVENTS,
        error_events: Sequence[str] = ERROR_EVENTS,
        terminal_phrases: Sequence[str] = TERMINAL_PHRASES,
        registration_delays: Sequence[float] = REGISTRATION_DELAYS,
        scan_delays: Sequence[float] = SCAN_DELAYS,
    ) -> None:
        self._host = host
        self._script_url = script_url
        self._widget_tag = widget_tag
        self._start_events = tuple(start_events)
        self._end_events = tuple(end_events)
        self._error_events = tuple(error_events)
        self._terminal_phrases = tuple(phrase.lower() for phrase in terminal_phrases)
        self._registration_delays = tuple(registration_delays)
        self._scan_delays = tuple(scan_delays)

        self._listener: BridgeListener | None = None
        self._guard = EndSignalGuard(self._deliver_end)
        self._widget: Any | None = None
        self._registrations: list[tuple[Any, str, EventHandler]] = []
        self._disconnect_observer: Callable[[], None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._scan_baseline = 0
        self._attached = False

    @property
    def is_attached(self) -> bool:
        return self._attached

    @property
    def widget_registered(self) -> bool:
        return self._widget is not None

    @property
    def guard(self) -> EndSignalGuard:
        return self._guard

    def reset_call(self) -> None:
        """Stop tracking the current call so the next start signal is honored."""
        self._guard.disarm()
        self._scan_baseline = self._terminal_marks()

    def bind(self, listener: BridgeListener) -> None:
        """Set the receiver of bridge transitions."""
        self._listener = listener

    def attach(self) -> None:
        """
        Load the widget script and start listening.

        Must be called from a running event loop. Calling it twice is a no-op.
        """
        if self._attached:
            return
        self._attached = True

        ensure_widget_script(self._host, self._script_url)
        self._register(WINDOW, "window")

        if not self._try_register_widget():
            logger.debug("Widget <%s> not rendered yet, scheduling retries", self._widget_tag)
            self._spawn(self._retry_registration())

    def detach(self) -> None:
        """Cancel pending timers, remove listeners and stop observing the widget."""
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        for target, event_name, handler in self._registrations:
            self._host.remove_listener(target, event_name, handler)
        self._registrations.clear()

        if self._disconnect_observer is not None:
            self._disconnect_observer()
            self._disconnect_observer = None

        self._widget = None
        if self._attached:
            logger.debug("Widget bridge detached")
        self._attached = False

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _listen(self, target: Any, event_name: str, handler: EventHandler) -> None:
        self._host.add_listener(target, event_name, handler)
        self._registrations.append((target, event_name, handler))

    def _register(self, target: Any, scope: str) -> None:
        for event_name in self._start_events:
            self._listen(target, event_name, self._handle_start)
        for event_name in self._end_events:
            self._listen(target, event_name, partial(self._handle_end, f"{scope}:{event_name}"))
        for event_name in self._error_events:
            self._listen(target, event_name, self._handle_error)

    def _try_register_widget(self) -> bool:
        widget = self._host.find_widget(self._widget_tag)
        if widget is None:
            return False

        self._widget = widget
        self._register(widget, "widget")
        self._disconnect_observer = self._host.observe_mutations(widget, self._handle_mutation)
        self._spawn(self._scan_schedule())
        logger.info("Registered listeners on <%s>", self._widget_tag)
        return True

    async def _retry_registration(self) -> None:
        for attempt, delay in enumerate(self._registration_delays, 1):
            await asyncio.sleep(delay)
            if self._try_register_widget():
                logger.debug("Widget found on retry %d", attempt)
                return
        logger.warning(
            "Widget <%s> not found after %d attempts, relying on window events only",
            self._widget_tag,
            len(self._registration_delays),
        )

    # -------------------------------------------------------------------------
    # Channel handlers
    # -------------------------------------------------------------------------

    def _handle_start(self, detail: dict[str, Any]) -> None:
        if not self._guard.arm():
            logger.debug("Duplicate start signal ignored")
            return
        self._scan_baseline = self._terminal_marks()
        logger.info("Widget call started")
        if self._listener is not None:
            self._listener.on_session_started()

    def _handle_end(self, source: str, detail: dict[str, Any]) -> None:
        self._guard.report_end(source)

    def _handle_error(self, detail: dict[str, Any]) -> None:
        message = str((detail or {}).get("message") or "Widget reported an error")
        logger.warning("Widget error: %s", message)
        if self._listener is not None:
            self._listener.on_connection_error(message)

    def _handle_mutation(self) -> None:
        self._scan("mutation")

    async def _scan_schedule(self) -> None:
        for delay in self._scan_delays:
            await asyncio.sleep(delay)
            self._scan("scheduled_scan")

    def _terminal_marks(self) -> int:
        if self._widget is None:
            return 0
        text = (self._host.read_text(self._widget) or "").lower()
        return sum(text.count(phrase) for phrase in self._terminal_phrases)

    def _scan(self, source: str) -> None:
        # Only new terminal text counts; leftovers from a previous call are baseline
        if self._widget is None or not self._guard.armed:
            return
        if self._terminal_marks() > self._scan_baseline:
            self._guard.report_end(f"text:{source}")

    def _deliver_end(self, source: str) -> None:
        if self._listener is None:
            logger.warning("End of call from %s but no listener bound", source)
            return
        self._listener.on_session_ended(source)


def build_widget_variables(role: RoleContext) -> dict[str, str]:
    """Free-form context variables passed to the voice widget."""
    return {
        "role_title": role.title,
        "role_description": role.description,
        "interview_questions": "\n".join(role.interview_questions),
    }
