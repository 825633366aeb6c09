# src/tasksync/tasks/task_view.py

from __future__ import annotations

"""
Derived view of the task collection.

filtered_tasks() and stats() are pure; ViewProjector just re-runs them whenever
the store changes so presentation code can read `current` without recomputing.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .task_models import Task, TaskFilter, TaskStats
from .task_store import StoreSnapshot, TaskStore

logger = logging.getLogger(__name__)

ViewListener = Callable[["TaskView"], None]


@dataclass(slots=True, frozen=True)
class TaskView:
    filter: TaskFilter
    filtered_tasks: tuple[Task, ...]
    stats: TaskStats


def filtered_tasks(tasks: Sequence[Task], filter: TaskFilter | str) -> tuple[Task, ...]:
    f = TaskFilter(filter)
    if f == TaskFilter.ACTIVE:
        return tuple(t for t in tasks if not t.completed)
    if f == TaskFilter.COMPLETED:
        return tuple(t for t in tasks if t.completed)
    return tuple(tasks)


def stats(tasks: Sequence[Task]) -> TaskStats:
    done = sum(1 for t in tasks if t.completed)
    return TaskStats(total=len(tasks), active=len(tasks) - done, completed=done)


def project(snapshot: StoreSnapshot) -> TaskView:
    return TaskView(
        filter=snapshot.filter,
        filtered_tasks=filtered_tasks(snapshot.tasks, snapshot.filter),
        stats=stats(snapshot.tasks),
    )


class ViewProjector:
    """Keeps a TaskView in sync with a TaskStore."""

    def __init__(self, store: TaskStore) -> None:
        self._current = project(store.snapshot())
        self._listeners: list[ViewListener] = []
        self._unsubscribe = store.subscribe(self._on_change)

    @property
    def current(self) -> TaskView:
        return self._current

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def close(self) -> None:
        self._unsubscribe()
        self._listeners.clear()

    def _on_change(self, snapshot: StoreSnapshot) -> None:
        self._current = project(snapshot)
        for listener in list(self._listeners):
            try:
                listener(self._current)
            except Exception:
                logger.exception("View listener failed")
