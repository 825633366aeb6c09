# src/tasksync/tasks/task_models.py

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

TEMP_ID_PREFIX = "tmp-"

_last_temp_ns = 0


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_temp_id() -> str:
    """Local id for a task the server has not acknowledged yet (strictly increasing)."""
    global _last_temp_ns
    ns = max(time.time_ns(), _last_temp_ns + 1)
    _last_temp_ns = ns
    return f"{TEMP_ID_PREFIX}{ns}"


def is_temp_id(task_id: str) -> bool:
    return task_id.startswith(TEMP_ID_PREFIX)


class TaskFilter(StrEnum):
    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"


class MutationKind(StrEnum):
    CREATE = "create"
    TOGGLE = "toggle"
    UPDATE = "update"
    DELETE = "delete"


class MutationState(StrEnum):
    """
    Lifecycle of a single mutation.

    pending -> committed | rolled_back | superseded | failed

    Notes:
    - "failed" means the remote write failed and the local effect was kept on purpose
      (update keeps the typed input, delete removes the task anyway).
    - "superseded" means a newer mutation on the same task committed first, so this
      one's outcome was discarded without touching the store.
    """

    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    SUPERSEDED = "superseded"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    title: str
    description: str
    completed: bool
    created_at: datetime
    completed_at: datetime | None = None
    updated_at: datetime | None = None

    def with_completed(self, completed: bool, *, at: datetime | None = None) -> Task:
        """Return a copy with `completed` set and `completed_at` kept consistent with it."""
        if completed == self.completed:
            return self
        if completed:
            return replace(self, completed=True, completed_at=at or utc_now())
        return replace(self, completed=False, completed_at=None)

    def toggled(self, *, at: datetime | None = None) -> Task:
        return self.with_completed(not self.completed, at=at)


@dataclass(slots=True, frozen=True)
class TaskStats:
    total: int
    active: int
    completed: int


@dataclass(slots=True, frozen=True)
class CanonicalTask:
    """Server-side task record, as returned by the tasks API."""

    task_id: int
    task_title: str
    task_description: str | None
    is_read: bool
    created_at: str | None = None
    updated_at: str | None = None
    user_id: int | None = None

    @classmethod
    def from_json(cls, raw: Any) -> CanonicalTask:
        if not isinstance(raw, dict):
            raise ValueError(f"task record must be an object, got {type(raw).__name__}")
        if "task_id" not in raw:
            raise ValueError("task record is missing task_id")

        desc = raw.get("task_description")
        user_id = raw.get("user_id")
        return cls(
            task_id=int(raw["task_id"]),
            task_title=str(raw.get("task_title") or ""),
            task_description=None if desc is None else str(desc),
            is_read=bool(raw.get("is_read", False)),
            created_at=raw.get("created_at"),
            updated_at=raw.get("updated_at"),
            user_id=None if user_id is None else int(user_id),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_title": self.task_title,
            "task_description": self.task_description,
            "is_read": self.is_read,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "user_id": self.user_id,
        }


def parse_timestamp(raw: str | None) -> datetime | None:
    """Parse an ISO-8601 server timestamp; naive values are taken as UTC."""
    if not raw:
        return None
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def task_from_canonical(record: CanonicalTask, *, local: Task | None = None) -> Task:
    """
    Map a server record to a Task.

    - the server's created_at wins when present, else the local one (or now)
    - completed_at is kept from the local task when both agree on completion,
      otherwise it is taken from the record's updated_at
    """
    updated_at = parse_timestamp(record.updated_at)
    created_at = parse_timestamp(record.created_at)
    if created_at is None:
        created_at = local.created_at if local is not None else utc_now()

    completed_at: datetime | None = None
    if record.is_read:
        if local is not None and local.completed and local.completed_at is not None:
            completed_at = local.completed_at
        else:
            completed_at = updated_at or utc_now()

    return Task(
        id=str(record.task_id),
        title=record.task_title.strip(),
        description=(record.task_description or "").strip(),
        completed=record.is_read,
        created_at=created_at,
        completed_at=completed_at,
        updated_at=updated_at,
    )
