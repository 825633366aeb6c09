# src/tasksync/remote/offline.py

from __future__ import annotations

import asyncio
from collections.abc import Iterable

from ..core.errors import NotFoundError, ValidationError
from ..tasks.task_models import CanonicalTask, utc_now


class OfflineTaskGateway:
    """
    In-process gateway used for demos when no tasks API is configured.

    Behavior:
    - keeps records in memory (lost on exit), newest first
    - assigns increasing numeric ids like a real backend
    - optional latency so optimistic updates are visible in the console
    """

    def __init__(
        self,
        records: Iterable[CanonicalTask] = (),
        *,
        latency_seconds: float = 0.0,
        user_id: int = 1,
    ) -> None:
        self._records: dict[int, CanonicalTask] = {r.task_id: r for r in records}
        self._next_id = max(self._records, default=0) + 1
        self._latency = max(0.0, float(latency_seconds))
        self._user_id = user_id

    async def _pause(self) -> None:
        if self._latency:
            await asyncio.sleep(self._latency)

    def _get(self, task_id: str) -> CanonicalTask:
        try:
            return self._records[int(task_id)]
        except (KeyError, ValueError):
            raise NotFoundError(task_id) from None

    async def list(self) -> list[CanonicalTask]:
        await self._pause()
        return sorted(self._records.values(), key=lambda r: r.task_id, reverse=True)

    async def create(self, title: str, description: str) -> CanonicalTask:
        await self._pause()
        if not title.strip():
            raise ValidationError("task_title is required")
        now = utc_now().isoformat()
        record = CanonicalTask(
            task_id=self._next_id,
            task_title=title,
            task_description=description or None,
            is_read=False,
            created_at=now,
            updated_at=now,
            user_id=self._user_id,
        )
        self._records[record.task_id] = record
        self._next_id += 1
        return record

    async def update(self, task_id: str, title: str, description: str) -> CanonicalTask:
        await self._pause()
        old = self._get(task_id)
        record = CanonicalTask(
            task_id=old.task_id,
            task_title=title,
            task_description=description or None,
            is_read=old.is_read,
            created_at=old.created_at,
            updated_at=utc_now().isoformat(),
            user_id=old.user_id,
        )
        self._records[record.task_id] = record
        return record

    async def delete(self, task_id: str) -> None:
        await self._pause()
        self._get(task_id)
        del self._records[int(task_id)]

    async def toggle(self, task_id: str) -> CanonicalTask:
        await self._pause()
        old = self._get(task_id)
        record = CanonicalTask(
            task_id=old.task_id,
            task_title=old.task_title,
            task_description=old.task_description,
            is_read=not old.is_read,
            created_at=old.created_at,
            updated_at=utc_now().isoformat(),
            user_id=old.user_id,
        )
        self._records[record.task_id] = record
        return record

    async def aclose(self) -> None:
        return
