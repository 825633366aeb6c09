# src/tasksync/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures the local (gitignored) data directory exists,
- wires the gateway, store and coordinator into AppState,
- closes the gateway on shutdown.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import RemoteGateway
from ..core.state import AppState
from ..remote.http_gateway import HttpTaskGateway
from ..remote.offline import OfflineTaskGateway
from ..tasks.coordinator import MutationCoordinator
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def create_gateway(settings) -> RemoteGateway:
    try:
        return HttpTaskGateway(
            settings.api_base_url,
            token=settings.api_token,
            timeout_seconds=settings.request_timeout_seconds,
        )
    except RuntimeError as e:
        # Local-only mode for demos / runs without a backend.
        logger.info("%s Using the offline gateway.", e)
        return OfflineTaskGateway(latency_seconds=settings.offline_latency_seconds)


def create_initial_state(*, settings=None, gateway: RemoteGateway | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the gateway) injectable makes the app easier to test.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    settings.data_dir.mkdir(parents=True, exist_ok=True)

    if gateway is None:
        gateway = create_gateway(settings)

    store = TaskStore()
    coordinator = MutationCoordinator(
        store,
        gateway,
        title_max_length=settings.title_max_length,
        description_max_length=settings.description_max_length,
        history_limit=settings.history_limit,
    )
    return AppState(settings=settings, store=store, gateway=gateway, coordinator=coordinator)


async def shutdown(state: AppState) -> None:
    """Let in-flight mutations settle, then release the HTTP client."""
    pending = state.coordinator.pending_count
    if pending:
        logger.info("Waiting for %d in-flight mutation(s)...", pending)
    await state.coordinator.drain()

    aclose = getattr(state.gateway, "aclose", None)
    if aclose is not None:
        await aclose()
