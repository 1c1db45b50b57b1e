"""Host notification for completed sessions."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, Union

import httpx

from .models import SessionOutcome


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotifyResult:
    """Result of attempting one host notification."""

    notifier: str
    ok: bool
    detail: str | None = None


class HostNotifier(Protocol):
    """Interface for informing the host application that a session completed."""

    notifier_type: str

    async def notify(self, outcome: SessionOutcome) -> NotifyResult:
        """Deliver one outcome. Must not raise."""


OutcomeCallback = Callable[[SessionOutcome], Union[None, Awaitable[None]]]


class CallbackNotifier:
    """Invoke an in-process callback (sync or async) with the outcome."""

    notifier_type = "callback"

    def __init__(self, callback: OutcomeCallback) -> None:
        self._callback = callback

    async def notify(self, outcome: SessionOutcome) -> NotifyResult:
        try:
            maybe_awaitable = self._callback(outcome)
            if inspect.isawaitable(maybe_awaitable):
                await maybe_awaitable
        except Exception as exc:  # noqa: BLE001 - notification must never throw
            logger.warning("Host callback failed for %s: %s", outcome.session_id, exc)
            return NotifyResult(notifier=self.notifier_type, ok=False, detail=str(exc))
        return NotifyResult(notifier=self.notifier_type, ok=True)


class WebhookNotifier:
    """POST the outcome as JSON to an external HTTP endpoint."""

    notifier_type = "webhook"

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.headers = headers or {}
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def notify(self, outcome: SessionOutcome) -> NotifyResult:
        payload: dict[str, Any] = outcome.model_dump(mode="json")
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(self.url, headers=self.headers, json=payload)
            if response.status_code >= 400:
                return NotifyResult(
                    notifier=self.notifier_type,
                    ok=False,
                    detail=f"HTTP {response.status_code}: {response.text[:160]}",
                )
            return NotifyResult(notifier=self.notifier_type, ok=True)
        except Exception as exc:  # noqa: BLE001 - notification must never throw
            return NotifyResult(notifier=self.notifier_type, ok=False, detail=str(exc))
