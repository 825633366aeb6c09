# src/tasksync/tasks/task_store.py

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from .task_models import Task, TaskFilter

logger = logging.getLogger(__name__)

StoreListener = Callable[["StoreSnapshot"], None]
MutationFn = Callable[[tuple[Task, ...]], Sequence[Task]]


@dataclass(slots=True, frozen=True)
class StoreSnapshot:
    tasks: tuple[Task, ...]
    filter: TaskFilter
    version: int


class TaskStore:
    """
    In-memory task collection plus the current view filter.

    The store knows nothing about the network. It only guarantees that:
    - every change is a whole-collection swap (apply / replace_all),
      so readers never observe a half-written state;
    - ids stay unique (a change that would duplicate an id is rejected);
    - subscribers are notified after each change.
    """

    def __init__(self, tasks: Iterable[Task] = (), *, filter: TaskFilter = TaskFilter.ALL) -> None:
        self._tasks: tuple[Task, ...] = self._checked(tasks)
        self._filter = TaskFilter(filter)
        self._version = 0
        self._listeners: list[StoreListener] = []
        logger.debug("TaskStore ready total=%s filter=%s", len(self._tasks), self._filter.value)

    # ---- low-level helpers ----

    @staticmethod
    def _checked(tasks: Iterable[Task]) -> tuple[Task, ...]:
        out = tuple(tasks)
        seen: set[str] = set()
        for t in out:
            if t.id in seen:
                raise ValueError(f"duplicate task id in collection: {t.id}")
            seen.add(t.id)
        return out

    def _notify(self) -> None:
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.exception("TaskStore listener failed (version=%s)", snap.version)

    def _commit(self, tasks: tuple[Task, ...]) -> None:
        self._tasks = tasks
        self._version += 1
        self._notify()

    # ---- public API ----

    @property
    def version(self) -> int:
        return self._version

    @property
    def filter(self) -> TaskFilter:
        return self._filter

    def __len__(self) -> int:
        return len(self._tasks)

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(tasks=self._tasks, filter=self._filter, version=self._version)

    def get(self, task_id: str) -> Task | None:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def replace_all(self, tasks: Iterable[Task]) -> None:
        """Swap the whole collection (used after a full reload). The filter is kept."""
        self._commit(self._checked(tasks))
        logger.debug("TaskStore replaced total=%s version=%s", len(self._tasks), self._version)

    def apply(self, mutation_fn: MutationFn) -> None:
        """
        Transform the collection with a pure function (tasks) -> tasks.

        The function sees the current tuple and must not mutate it; the result
        becomes the new collection in a single step.
        """
        self._commit(self._checked(mutation_fn(self._tasks)))

    def set_filter(self, filter: TaskFilter | str) -> None:
        new_filter = TaskFilter(filter)
        if new_filter == self._filter:
            return
        self._filter = new_filter
        self._version += 1
        self._notify()

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
