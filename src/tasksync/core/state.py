# src/tasksync/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..tasks.coordinator import MutationCoordinator
from ..tasks.task_store import TaskStore
from .ports import RemoteGateway


@dataclass
class AppState:
    # Settings object (real Settings or a test stand-in).
    settings: Any

    store: TaskStore
    gateway: RemoteGateway
    coordinator: MutationCoordinator
