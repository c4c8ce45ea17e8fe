# src/daybook/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Third-party loggers that only matter when something breaks.
_QUIET_LIBS = ("httpx", "httpcore", "asyncio")

SYNC_LOGGER = "daybook.tasks.reconcile"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console output is shared with the REPL prompt, so keep it short:
    - daybook.* passes, except the debouncer which only speaks up at WARNING+
    - everything else (py.warnings, libraries) only at ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "daybook.tasks.debounce":
            return record.levelno >= logging.WARNING
        if record.name.startswith("daybook."):
            return True
        return record.levelno >= logging.ERROR


def _rotating(path: Path, level: int, fmt: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(str(path), maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(fmt)
    return handler


def setup_logging(
    *,
    log_dir: str | Path = ".local/daybook",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Configure logging with:
    - stderr: filtered for interactive use
    - daybook.log: everything at file_level, rotated
    - sync.log: the engine's write/rollback trail only (INFO+)

    Call this ONCE, before the engine is built.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    root.addHandler(_rotating(log_dir / "daybook.log", file_level, fmt))

    sync = logging.getLogger(SYNC_LOGGER)
    for h in list(sync.handlers):
        sync.removeHandler(h)
    sync.addHandler(_rotating(log_dir / "sync.log", logging.INFO, fmt))

    logging.captureWarnings(True)

    for name in _QUIET_LIBS:
        logging.getLogger(name).setLevel(logging.WARNING)
