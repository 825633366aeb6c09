# src/tasksync/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, loads the task list once, then runs the
console until /exit (or EOF / Ctrl+C).
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, shutdown
from ..config import Settings, get_settings
from ..logging_setup import setup_logging
from .console import run_console_loop

logger = logging.getLogger(__name__)


async def _run(settings: Settings) -> None:
    state = create_initial_state(settings=settings)
    try:
        if await state.coordinator.reload():
            logger.info("Loaded %d task(s).", len(state.store))
        await run_console_loop(state)
    finally:
        await shutdown(state)


def main() -> None:
    settings = get_settings()

    console_level = getattr(logging, settings.log_level, logging.INFO)
    log_file = setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s (log file: %s)...", settings.app_name, log_file)
    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
