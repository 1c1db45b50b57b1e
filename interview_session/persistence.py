"""
Application Store.

JSON-file persistence for role listings and candidate applications.

Each role gets one "general application" listing, created on first use and
reused afterwards. Applications start at the voice interview step with a
pending status; a completed interview outcome can be recorded against them.

Thread Safety:
    Read-modify-write cycles are serialized with an asyncio.Lock, so one
    store instance is safe for concurrent requests on a single event loop.
    Separate processes sharing the same file are not coordinated.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import aiofiles
import aiofiles.os

from .models import SessionOutcome, SessionResult
from .roles import load_role


__all__ = ["ApplicationStore", "StoreWriteError", "StoreReadError", "listing_title"]


logger = logging.getLogger(__name__)


class StoreWriteError(Exception):
    """Raised when writing the store file fails."""

    def __init__(self, path: Path, cause: Exception) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write to {path}: {cause}")


class StoreReadError(Exception):
    """Raised when reading the store file fails."""

    def __init__(self, path: Path, cause: Exception) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to read from {path}: {cause}")


def _format_utc_timestamp() -> str:
    """Return current UTC timestamp as ISO 8601 string with 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def listing_title(role_title: str) -> str:
    return f"{role_title} - General Application"


def _empty_store() -> dict[str, Any]:
    return {
        "listings": [],
        "applications": [],
        "next_listing_id": 1,
        "next_application_id": 1,
    }


class ApplicationStore:
    """
    Stores role listings and applications in ``{data_dir}/applications.json``.

    Example:
        >>> store = ApplicationStore(Path("./data"))
        >>> application_id = await store.create_application("usher", user_id="user_42")
        >>> record = await store.get_application(application_id)
        >>> record["current_step"]
        'voice_interview'
    """

    FILENAME = "applications.json"

    def __init__(self, data_dir: Path) -> None:
        """
        Args:
            data_dir: Directory holding the store file. Created if missing.

        Raises:
            StoreWriteError: If the directory cannot be created.
        """
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / self.FILENAME
        self._lock = asyncio.Lock()
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreWriteError(self.data_dir, e) from e

    async def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return _empty_store()
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
            data = json.loads(raw) if raw.strip() else _empty_store()
        except json.JSONDecodeError as e:
            raise StoreReadError(self.path, e) from e
        except OSError as e:
            raise StoreReadError(self.path, e) from e
        for key, value in _empty_store().items():
            data.setdefault(key, value)
        return data

    async def _save(self, data: dict[str, Any]) -> None:
        data["_meta"] = {"written_at": _format_utc_timestamp(), "version": "1.0"}
        tmp_path = self.path.with_suffix(".json.tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2, ensure_ascii=False))
            await aiofiles.os.replace(tmp_path, self.path)
        except OSError as e:
            raise StoreWriteError(self.path, e) from e

    @staticmethod
    def _upsert_listing(data: dict[str, Any], role_id: str) -> int:
        role = load_role(role_id)
        title = listing_title(role.title)
        for listing in data["listings"]:
            if listing["title"] == title:
                return int(listing["id"])

        listing_id = int(data["next_listing_id"])
        data["next_listing_id"] = listing_id + 1
        data["listings"].append(
            {
                "id": listing_id,
                "role_id": role.id,
                "title": title,
                "description": (
                    f"Join our talent pool as a {role.title}. "
                    "Get matched with events that need your skills."
                ),
                "status": "published",
                "created_at": _format_utc_timestamp(),
            }
        )
        logger.info("Created listing %d: %s", listing_id, title)
        return listing_id

    async def ensure_role_listing(self, role_id: str) -> int:
        """
        Return the general-application listing for a role, creating it once.

        Raises:
            ValueError: If the role is unknown.
        """
        async with self._lock:
            data = await self._load()
            before = data["next_listing_id"]
            listing_id = self._upsert_listing(data, role_id)
            if data["next_listing_id"] != before:
                await self._save(data)
            return listing_id

    async def create_application(self, role_id: str, user_id: str) -> int:
        """
        Create a pending application for ``user_id`` on the role's listing.

        Raises:
            ValueError: If the role is unknown or the user id is empty.
        """
        if not user_id or not user_id.strip():
            raise ValueError("user_id is required")

        async with self._lock:
            data = await self._load()
            listing_id = self._upsert_listing(data, role_id)
            application_id = int(data["next_application_id"])
            data["next_application_id"] = application_id + 1
            data["applications"].append(
                {
                    "id": application_id,
                    "listing_id": listing_id,
                    "role_id": load_role(role_id).id,
                    "user_id": user_id,
                    "current_step": "voice_interview",
                    "status": "pending",
                    "interview": None,
                    "created_at": _format_utc_timestamp(),
                }
            )
            await self._save(data)

        logger.info("Created application %d for user %s (role=%s)", application_id, user_id, role_id)
        return application_id

    async def get_application(self, application_id: int) -> Optional[dict[str, Any]]:
        async with self._lock:
            data = await self._load()
        for application in data["applications"]:
            if application["id"] == application_id:
                return application
        return None

    async def get_listing(self, listing_id: int) -> Optional[dict[str, Any]]:
        async with self._lock:
            data = await self._load()
        for listing in data["listings"]:
            if listing["id"] == listing_id:
                return listing
        return None

    async def record_outcome(self, application_id: int, outcome: SessionOutcome) -> dict[str, Any]:
        """
        Attach an interview outcome to an application.

        A completed interview moves the application to the review step.
        Once a completed outcome is stored it is kept; an incomplete one is
        replaced by whatever the next attempt reports.

        Raises:
            KeyError: If the application does not exist.
        """
        async with self._lock:
            data = await self._load()
            for application in data["applications"]:
                if application["id"] == application_id:
                    break
            else:
                raise KeyError(application_id)

            previous = application.get("interview") or {}
            if previous.get("result") == SessionResult.COMPLETED.value:
                logger.debug("Application %d already has a completed interview, keeping it", application_id)
                return application

            application["interview"] = outcome.model_dump(mode="json")
            if outcome.result == SessionResult.COMPLETED:
                application["current_step"] = "review"
                application["status"] = "interview_completed"
            await self._save(data)

        logger.info("Recorded %s interview for application %d", outcome.result.value, application_id)
        return application
