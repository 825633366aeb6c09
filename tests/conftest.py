# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from tasksync.cli.bootstrap import create_initial_state
from tasksync.core.state import AppState
from tasksync.tasks.coordinator import MutationCoordinator
from tasksync.tasks.task_store import TaskStore

from .fakes import FakeGateway, canonical


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and the coordinator.

    We intentionally use a SimpleNamespace rather than reading the environment,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="tasksync-test",
        log_level="DEBUG",
        data_dir=tmp_path / "data",
        api_base_url="",
        api_token=None,
        request_timeout_seconds=1.0,
        title_max_length=100,
        description_max_length=500,
        history_limit=20,
        offline_latency_seconds=0.0,
        offline=True,
    )


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway(
        [
            canonical(1, "Write report", "quarterly numbers"),
            canonical(2, "Buy milk", is_read=True),
            canonical(3, "Call Bob"),
        ]
    )


@pytest.fixture()
def store() -> TaskStore:
    return TaskStore()


@pytest.fixture()
def coordinator(store: TaskStore, gateway: FakeGateway) -> MutationCoordinator:
    return MutationCoordinator(store, gateway, history_limit=20)


@pytest.fixture()
def state(settings: SimpleNamespace, gateway: FakeGateway) -> AppState:
    """AppState wired with the scriptable gateway."""
    return create_initial_state(settings=settings, gateway=gateway)
