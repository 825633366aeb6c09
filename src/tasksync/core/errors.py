# src/tasksync/core/errors.py

from __future__ import annotations

"""
Error taxonomy shared by the store, the coordinator and the gateways.

- ValidationError: local precondition failed, nothing was sent and nothing changed.
- NotFoundError: the referenced task does not exist (locally or on the server).
- TransportError: the remote call failed (network, auth, server rejection).
  The original exception is chained as __cause__.
"""


class TaskSyncError(Exception):
    """Base class for every error raised by tasksync."""


class ValidationError(TaskSyncError):
    pass


class NotFoundError(TaskSyncError):
    def __init__(self, task_id: str, message: str | None = None) -> None:
        self.task_id = task_id
        super().__init__(message or f"Task not found: {task_id}")


class TransportError(TaskSyncError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
