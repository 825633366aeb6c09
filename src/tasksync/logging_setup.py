# src/tasksync/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Per-mutation transitions; the console already prints each outcome once.
_CHATTY_PREFIXES = ("tasksync.tasks.coordinator", "tasksync.remote.")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the prompt readable.

    Mutation transitions and gateway chatter only reach the console at WARNING+,
    unless the console runs at DEBUG. Third-party loggers and captured Python
    warnings need ERROR+. The file handler gets everything.
    """

    def __init__(self, *, verbose: bool = False) -> None:
        super().__init__()
        self.verbose = verbose

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("tasksync."):
            if self.verbose or not name.startswith(_CHATTY_PREFIXES):
                return True
            return record.levelno >= logging.WARNING

        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/tasksync",
    console_level: int = logging.INFO,
) -> Path:
    """
    Console handler (filtered, see _ConsoleNoiseFilter) plus a DEBUG file
    handler at <log_dir>/tasksync.log. Returns the log file path.

    Call this once, before the first log line.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "tasksync.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter(verbose=console_level <= logging.DEBUG))
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)

    # Request lines from httpx duplicate the gateway's own logging.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return log_file
