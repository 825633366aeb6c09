# src/tasksync/tasks/coordinator.py

from __future__ import annotations

"""
Mutation coordinator.

Applies every mutation optimistically to the TaskStore, calls the remote gateway,
then reconciles (commit) or undoes (rollback) the local change.

Ordering rules, per task:
- every mutation gets a sequence number when it is issued;
- a settling mutation is "superseded" (store untouched) if a mutation with a
  higher sequence number on the same task has already committed;
- a settling mutation never writes fields owned by a newer mutation that is
  still in flight.

Recovery on remote failure is fixed per operation:
- create  -> remove the optimistic entry
- toggle  -> restore completed/completed_at from the pre-toggle snapshot
- update  -> keep the edited values (no rollback)
- delete  -> remove locally anyway
The error is re-raised to the caller in every case.

Public mutation methods are plain methods: validation and the optimistic step
happen synchronously when they are called, and they return an awaitable that
settles with the remote outcome. The remote part runs in its own asyncio task,
shielded from the caller, so cancelling the caller never leaves the store half
reconciled.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Coroutine, Iterable
from dataclasses import dataclass, field, replace
from typing import Any

from ..core.errors import NotFoundError, TaskSyncError, ValidationError
from ..core.ports import RemoteGateway
from .task_models import (
    MutationKind,
    MutationState,
    Task,
    TaskFilter,
    new_temp_id,
    task_from_canonical,
    utc_now,
)
from .task_store import StoreSnapshot, TaskStore
from .task_view import TaskView, ViewProjector

logger = logging.getLogger(__name__)

ALL_FIELDS = frozenset(
    {"title", "description", "completed", "completed_at", "created_at", "updated_at"}
)
TOGGLE_FIELDS = frozenset({"completed", "completed_at", "updated_at"})
UPDATE_FIELDS = frozenset({"title", "description", "updated_at"})


@dataclass(slots=True, frozen=True)
class MutationRecord:
    kind: MutationKind
    task_id: str
    seq: int
    state: MutationState
    error: str | None = None


@dataclass(slots=True, eq=False)
class _Ledger:
    """Per-task bookkeeping. task_id follows the task when a temp id is replaced."""

    task_id: str
    next_seq: int = 0
    committed_seq: int = 0
    in_flight: dict[int, frozenset[str]] = field(default_factory=dict)
    # Set while the task is being created; resolves to the server id.
    created: asyncio.Future[str] | None = None


@dataclass(slots=True, eq=False)
class _Mutation:
    kind: MutationKind
    ledger: _Ledger
    seq: int
    fields: frozenset[str]
    state: MutationState = MutationState.PENDING


def _merge(target: Task, source: Task, fields: Iterable[str]) -> Task:
    values = {name: getattr(source, name) for name in fields}
    return replace(target, **values) if values else target


def _consume(fut: asyncio.Future[Any]) -> None:
    # Mark the outcome as retrieved; errors are logged by the coordinator itself.
    if not fut.cancelled():
        fut.exception()


class MutationCoordinator:
    def __init__(
        self,
        store: TaskStore,
        gateway: RemoteGateway,
        *,
        title_max_length: int = 100,
        description_max_length: int = 500,
        history_limit: int = 50,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._projector = ViewProjector(store)
        self._title_max = int(title_max_length)
        self._description_max = int(description_max_length)
        self._ledgers: dict[str, _Ledger] = {}
        self._running: set[asyncio.Task[Any]] = set()
        self._history: deque[MutationRecord] = deque(maxlen=max(1, int(history_limit)))
        # Commit clock; while a reload is in flight, task id -> clock value of its last commit.
        self._clock = 0
        self._reloading = 0
        self._committed_during_reload: dict[str, int] = {}

    # ---- caller-facing reads ----

    @property
    def store(self) -> TaskStore:
        return self._store

    @property
    def view(self) -> TaskView:
        return self._projector.current

    @property
    def projector(self) -> ViewProjector:
        return self._projector

    @property
    def history(self) -> tuple[MutationRecord, ...]:
        return tuple(self._history)

    @property
    def pending_count(self) -> int:
        return len(self._running)

    def snapshot(self) -> StoreSnapshot:
        return self._store.snapshot()

    def set_filter(self, filter: TaskFilter | str) -> None:
        self._store.set_filter(filter)

    async def drain(self) -> None:
        """Wait until every in-flight mutation has settled (errors are not raised here)."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    # ---- mutations ----

    def create(self, title: str, description: str = "") -> asyncio.Future[Task]:
        """
        Prepend an optimistic task and create it remotely.

        Settles with the committed task (server id, server fields) or raises the
        remote error after the optimistic entry was removed.
        """
        loop = asyncio.get_running_loop()
        title, description = self._validate(title, description)

        optimistic = Task(
            id=new_temp_id(),
            title=title,
            description=description,
            completed=False,
            created_at=utc_now(),
        )
        created: asyncio.Future[str] = loop.create_future()
        created.add_done_callback(_consume)
        ledger = _Ledger(task_id=optimistic.id, created=created)
        self._ledgers[optimistic.id] = ledger

        m = self._begin(MutationKind.CREATE, ledger, ALL_FIELDS)
        self._store.apply(lambda tasks: (optimistic, *tasks))
        logger.debug("create issued temp_id=%s title=%r", optimistic.id, title)
        return self._launch(loop, m, self._create_remote(m, optimistic, created))

    def toggle(self, task_id: str) -> asyncio.Future[Task]:
        """Flip completion locally, then remotely. Rolls back on failure."""
        loop = asyncio.get_running_loop()
        ledger, before = self._require(task_id)

        m = self._begin(MutationKind.TOGGLE, ledger, TOGGLE_FIELDS)
        self._patch(ledger.task_id, before.toggled(), m.fields)
        logger.debug("toggle issued task_id=%s seq=%s completed=%s", task_id, m.seq, not before.completed)
        return self._launch(loop, m, self._toggle_remote(m, before))

    def update(self, task_id: str, title: str, description: str = "") -> asyncio.Future[Task]:
        """Edit title/description locally, then remotely. Edits are kept on failure."""
        loop = asyncio.get_running_loop()
        title, description = self._validate(title, description)
        ledger, before = self._require(task_id)

        m = self._begin(MutationKind.UPDATE, ledger, UPDATE_FIELDS)
        optimistic = replace(before, title=title, description=description)
        self._patch(ledger.task_id, optimistic, m.fields)
        logger.debug("update issued task_id=%s seq=%s", task_id, m.seq)
        return self._launch(loop, m, self._update_remote(m, optimistic))

    def delete(self, task_id: str) -> asyncio.Future[None]:
        """Delete remotely; the task leaves the store once the call settles, whatever the outcome."""
        loop = asyncio.get_running_loop()
        ledger, _ = self._require(task_id)

        m = self._begin(MutationKind.DELETE, ledger, ALL_FIELDS)
        logger.debug("delete issued task_id=%s seq=%s", task_id, m.seq)
        return self._launch(loop, m, self._delete_remote(m))

    async def reload(self) -> bool:
        """
        Replace the collection with the server's list.

        The list may be older than mutations that commit while it is being
        fetched, so local state wins for:
        - tasks with a mutation still in flight (pending creates stay at the head);
        - tasks whose mutation committed after the reload started
          (new tasks missing from the list are kept, deleted ones stay deleted).
        On failure the local collection is kept and False is returned.
        """
        mark = self._clock
        self._reloading += 1
        try:
            records = await self._gateway.list()
        except TaskSyncError as e:
            logger.warning("Reload failed, keeping %d local tasks: %s", len(self._store), e)
            return False
        except Exception:
            logger.exception("Reload crashed, keeping %d local tasks", len(self._store))
            return False
        else:
            return self._merge_reload(records, mark)
        finally:
            self._reloading -= 1
            if not self._reloading:
                self._committed_during_reload.clear()

    def _merge_reload(self, records: list[Any], mark: int) -> bool:
        snap = self._store.snapshot()
        local = {t.id: t for t in snap.tasks}
        fresh = {
            task_id for task_id, at in self._committed_during_reload.items() if at > mark
        }
        listed = {str(r.task_id) for r in records}

        def pinned(task_id: str) -> bool:
            ledger = self._ledgers.get(task_id)
            return task_id in fresh or (ledger is not None and bool(ledger.in_flight))

        # Tasks the list cannot know about yet keep their local position at the head.
        out: list[Task] = [t for t in snap.tasks if t.id not in listed and pinned(t.id)]
        seen = {t.id for t in out}
        kept = 0

        for record in records:
            task_id = str(record.task_id)
            current = local.get(task_id)
            if task_id in seen:
                logger.warning("Reload: duplicate task id=%s from server, skipped", task_id)
                continue
            seen.add(task_id)
            if pinned(task_id):
                if current is None:
                    # Deleted after the list was requested.
                    continue
                out.append(current)
                kept += 1
                continue
            out.append(task_from_canonical(record, local=current))

        self._store.replace_all(out)
        logger.info("Reloaded %d tasks (%d kept from local state)", len(out), kept)
        return True

    # ---- remote halves ----

    async def _create_remote(self, m: _Mutation, optimistic: Task, created: asyncio.Future[str]) -> Task:
        ledger = m.ledger
        try:
            record = await self._gateway.create(optimistic.title, optimistic.description)
        except Exception as exc:
            self._remove(optimistic.id)
            gone = NotFoundError(optimistic.id, f"Task creation failed: {optimistic.id}")
            gone.__cause__ = exc
            created.set_exception(gone)
            self._finish(m, MutationState.ROLLED_BACK, exc)
            raise

        current = self._store.get(optimistic.id) or optimistic
        # Fields owned by newer in-flight mutations keep their local values.
        committed = _merge(
            task_from_canonical(record, local=current),
            current,
            ALL_FIELDS - self._writable(m),
        )
        server_id = committed.id

        if self._store.get(optimistic.id) is not None:
            self._store.apply(
                lambda tasks: tuple(
                    committed if t.id == optimistic.id else t for t in tasks if t.id != server_id
                )
            )

        self._ledgers.pop(optimistic.id, None)
        ledger.task_id = server_id
        self._ledgers[server_id] = ledger
        ledger.committed_seq = m.seq
        created.set_result(server_id)
        self._finish(m, MutationState.COMMITTED)
        return committed

    async def _toggle_remote(self, m: _Mutation, before: Task) -> Task:
        ledger = m.ledger
        try:
            server_id = await self._server_id(ledger)
            record = await self._gateway.toggle(server_id)
        except Exception as exc:
            if self._superseded(m):
                self._finish(m, MutationState.SUPERSEDED, exc)
            else:
                fields = self._writable(m)
                self._patch(ledger.task_id, before, fields)
                self._finish(m, MutationState.ROLLED_BACK if fields else MutationState.SUPERSEDED, exc)
            raise

        return self._commit_echo(m, record)

    async def _update_remote(self, m: _Mutation, optimistic: Task) -> Task:
        ledger = m.ledger
        try:
            server_id = await self._server_id(ledger)
            record = await self._gateway.update(server_id, optimistic.title, optimistic.description)
        except Exception as exc:
            state = MutationState.SUPERSEDED if self._superseded(m) else MutationState.FAILED
            self._finish(m, state, exc)
            raise

        return self._commit_echo(m, record)

    async def _delete_remote(self, m: _Mutation) -> None:
        ledger = m.ledger
        try:
            server_id = await self._server_id(ledger)
            await self._gateway.delete(server_id)
        except Exception as exc:
            self._remove(ledger.task_id)
            self._finish(m, MutationState.FAILED, exc)
            raise

        self._remove(ledger.task_id)
        ledger.committed_seq = m.seq
        self._finish(m, MutationState.COMMITTED)

    def _commit_echo(self, m: _Mutation, record: Any) -> Task:
        """Commit a toggle/update: take the server echo for the fields this mutation owns."""
        ledger = m.ledger
        current = self._store.get(ledger.task_id)

        if self._superseded(m):
            self._finish(m, MutationState.SUPERSEDED)
        else:
            if current is not None:
                echo = task_from_canonical(record, local=current)
                self._patch(ledger.task_id, echo, self._writable(m))
            ledger.committed_seq = m.seq
            self._finish(m, MutationState.COMMITTED)

        result = self._store.get(ledger.task_id) or current
        return result if result is not None else task_from_canonical(record)

    # ---- bookkeeping ----

    def _validate(self, title: str, description: str) -> tuple[str, str]:
        t = (title or "").strip()
        d = (description or "").strip()
        if not t:
            raise ValidationError("Title is required.")
        if len(t) > self._title_max:
            raise ValidationError(f"Title must be at most {self._title_max} characters.")
        if len(d) > self._description_max:
            raise ValidationError(f"Description must be at most {self._description_max} characters.")
        return t, d

    def _require(self, task_id: str) -> tuple[_Ledger, Task]:
        task = self._store.get(task_id)
        if task is None:
            raise NotFoundError(task_id)
        ledger = self._ledgers.get(task.id)
        if ledger is None:
            ledger = self._ledgers[task.id] = _Ledger(task_id=task.id)
        return ledger, task

    @staticmethod
    def _begin(kind: MutationKind, ledger: _Ledger, fields: frozenset[str]) -> _Mutation:
        ledger.next_seq += 1
        ledger.in_flight[ledger.next_seq] = fields
        return _Mutation(kind=kind, ledger=ledger, seq=ledger.next_seq, fields=fields)

    @staticmethod
    def _superseded(m: _Mutation) -> bool:
        return m.ledger.committed_seq > m.seq

    @staticmethod
    def _writable(m: _Mutation) -> frozenset[str]:
        blocked: set[str] = set()
        for seq, fields in m.ledger.in_flight.items():
            if seq > m.seq:
                blocked |= fields
        return m.fields - blocked

    @staticmethod
    async def _server_id(ledger: _Ledger) -> str:
        # Mutations issued against a task that is still being created wait for its server id.
        if ledger.created is not None:
            return await ledger.created
        return ledger.task_id

    def _patch(self, task_id: str, source: Task, fields: frozenset[str]) -> None:
        if not fields or self._store.get(task_id) is None:
            return
        self._store.apply(
            lambda tasks: tuple(_merge(t, source, fields) if t.id == task_id else t for t in tasks)
        )

    def _remove(self, task_id: str) -> None:
        if self._store.get(task_id) is None:
            return
        self._store.apply(lambda tasks: tuple(t for t in tasks if t.id != task_id))

    def _finish(self, m: _Mutation, state: MutationState, error: BaseException | None = None) -> None:
        ledger = m.ledger
        m.state = state
        ledger.in_flight.pop(m.seq, None)

        done_creating = ledger.created is None or ledger.created.done()
        if not ledger.in_flight and done_creating and self._ledgers.get(ledger.task_id) is ledger:
            del self._ledgers[ledger.task_id]

        self._clock += 1
        if state == MutationState.COMMITTED and self._reloading:
            self._committed_during_reload[ledger.task_id] = self._clock

        err = None if error is None else f"{error.__class__.__name__}: {error}"
        self._history.append(
            MutationRecord(kind=m.kind, task_id=ledger.task_id, seq=m.seq, state=state, error=err)
        )
        if error is None:
            logger.info("%s task_id=%s seq=%s -> %s", m.kind.value, ledger.task_id, m.seq, state.value)
        else:
            logger.info(
                "%s task_id=%s seq=%s -> %s (%s)", m.kind.value, ledger.task_id, m.seq, state.value, err
            )

    def _launch(
        self,
        loop: asyncio.AbstractEventLoop,
        m: _Mutation,
        work: Coroutine[Any, Any, Any],
    ) -> asyncio.Future[Any]:
        inner = loop.create_task(work, name=f"tasksync-{m.kind.value}-{m.ledger.task_id}-{m.seq}")
        self._running.add(inner)
        inner.add_done_callback(self._forget)

        outer = asyncio.shield(inner)
        outer.add_done_callback(_consume)
        return outer

    def _forget(self, task: asyncio.Task[Any]) -> None:
        self._running.discard(task)
        _consume(task)
