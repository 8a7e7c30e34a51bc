"""
Activity Log - Best-Effort Audit Trail for Actor Mutations

Every state mutation in the engine emits an activity entry: actor id,
action, performer, timestamp and a free-form detail payload.

Emission is fire-and-forget. Entries are handed to the sink on a
background task; a failing sink is logged and never fails or rolls back
the operation that emitted the entry.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Final, Optional
from uuid import uuid4

from actor_engine.models import utc_now


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Performer used when the engine acts on its own behalf
SYSTEM: Final[str] = "SYSTEM"

# Performer used for token-authenticated updates by the actor itself
SELF_SERVICE: Final[str] = "SELF_SERVICE"


class ActivityAction(Enum):
    """Actions recorded in the activity log."""

    ACTOR_CREATED = "actor_created"
    ACTOR_UPDATED = "actor_updated"
    ACTOR_REMOVED = "actor_removed"
    SELF_SERVICE_UPDATE = "self_service_update"
    INFORMATION_COMPLETED = "information_completed"
    ACTOR_SUBMITTED = "actor_submitted"
    ACTOR_APPROVED = "actor_approved"
    ACTOR_REJECTED = "actor_rejected"
    CHANGES_REQUESTED = "changes_requested"
    TOKEN_GENERATED = "token_generated"
    TOKEN_REVOKED = "token_revoked"
    TOKEN_REFRESHED = "token_refreshed"
    PRIMARY_SET = "primary_set"
    PRIMARY_TRANSFERRED = "primary_transferred"
    PRIMARY_REASSIGNED = "primary_reassigned"
    CO_OWNER_ADDED = "co_owner_added"
    CO_OWNER_REMOVED = "co_owner_removed"
    OWNERSHIP_UPDATED = "ownership_updated"


# =============================================================================
# Activity Entry
# =============================================================================


@dataclass(frozen=True)
class ActivityEntry:
    """Single immutable activity record."""

    entry_id: str
    actor_id: str
    action: ActivityAction
    performed_by: str
    performed_at: datetime
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        actor_id: str,
        action: ActivityAction,
        performed_by: str,
        details: Optional[dict[str, Any]] = None,
    ) -> "ActivityEntry":
        return cls(
            entry_id=f"ACT-{uuid4().hex[:12].upper()}",
            actor_id=actor_id,
            action=action,
            performed_by=performed_by,
            performed_at=utc_now(),
            details=dict(details or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "actor_id": self.actor_id,
            "action": self.action.value,
            "performed_by": self.performed_by,
            "performed_at": self.performed_at.isoformat(),
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ActivityEntry":
        return cls(
            entry_id=data["entry_id"],
            actor_id=data["actor_id"],
            action=ActivityAction(data["action"]),
            performed_by=data["performed_by"],
            performed_at=datetime.fromisoformat(data["performed_at"]),
            details=data.get("details", {}),
        )


# =============================================================================
# Sinks
# =============================================================================


class ActivitySink(ABC):
    """Destination for activity entries. No return contract."""

    @abstractmethod
    async def record(self, entry: ActivityEntry) -> None:
        pass


class InMemoryActivitySink(ActivitySink):
    """Keeps entries in a list. Used by tests and as the default sink."""

    def __init__(self):
        self.entries: list[ActivityEntry] = []

    async def record(self, entry: ActivityEntry) -> None:
        self.entries.append(entry)

    def list_for(self, actor_id: str) -> list[ActivityEntry]:
        return [e for e in self.entries if e.actor_id == actor_id]

    def actions_for(self, actor_id: str) -> list[ActivityAction]:
        return [e.action for e in self.list_for(actor_id)]


class FileActivitySink(ActivitySink):
    """
    JSON activity log storage.

    Stores entries in a daily log file for easy review.
    """

    def __init__(self, base_dir: Path):
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._write_lock = threading.Lock()

    def _get_today_file(self) -> Path:
        today = utc_now().strftime("%Y-%m-%d")
        return self._base_dir / f"activity_{today}.json"

    def _load_entries(self, log_file: Path) -> list[dict]:
        if log_file.exists():
            with open(log_file, "r") as f:
                return json.load(f)
        return []

    async def record(self, entry: ActivityEntry) -> None:
        await asyncio.to_thread(self._append, entry.to_dict())

    def _append(self, data: dict) -> None:
        # Runs in a worker thread; appends to the same file are serialised
        with self._write_lock:
            log_file = self._get_today_file()
            entries = self._load_entries(log_file)
            entries.append(data)
            with open(log_file, "w") as f:
                json.dump(entries, f, indent=2)

    def list_for(self, actor_id: str) -> list[ActivityEntry]:
        """All recorded entries for an actor, oldest first."""
        result = []
        for log_file in sorted(self._base_dir.glob("activity_*.json")):
            for data in self._load_entries(log_file):
                if data.get("actor_id") == actor_id:
                    result.append(ActivityEntry.from_dict(data))
        return result


# =============================================================================
# Emitter
# =============================================================================


class ActivityLog:
    """
    Fire-and-forget emitter in front of an ActivitySink.

    Usage:
        activity = ActivityLog(sink)
        activity.emit(actor.id, ActivityAction.ACTOR_APPROVED, "staff@example.com")
        ...
        await activity.drain()  # at shutdown or in tests
    """

    def __init__(self, sink: Optional[ActivitySink] = None):
        self.sink = sink or InMemoryActivitySink()
        self._pending: set[asyncio.Task] = set()

    def emit(
        self,
        actor_id: str,
        action: ActivityAction,
        performed_by: str = SYSTEM,
        details: Optional[dict[str, Any]] = None,
    ) -> ActivityEntry:
        """
        Schedule an entry for recording without waiting for the sink.

        Must be called from a running event loop.
        """
        entry = ActivityEntry.create(actor_id, action, performed_by, details)
        task = asyncio.get_running_loop().create_task(self._record(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return entry

    async def _record(self, entry: ActivityEntry) -> None:
        try:
            await self.sink.record(entry)
        except Exception:
            logger.exception(
                "Failed to record activity %s for %s",
                entry.action.value,
                entry.actor_id,
            )

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every emitted entry has reached the sink (or failed)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
