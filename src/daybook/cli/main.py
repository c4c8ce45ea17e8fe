# src/daybook/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, loads the task collection and runs the
console REPL until /exit, EOF or Ctrl+C. Pending writes are flushed on the way out.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, shutdown_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.errors import PersistenceError
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _run(state: AppState) -> None:
    try:
        try:
            await state.engine.load()
        except PersistenceError as exc:
            # Still usable: writes will roll back until the store comes back.
            logger.error("Initial load failed: %s", exc)
            print(f"[STORE] Could not load tasks: {exc}")
        await run_console_loop(state)
    finally:
        await shutdown_state(state, flush=True)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_dir = getattr(settings, "data_dir", ".local/daybook")
    setup_logging(log_dir=log_dir, console_level=console_level)

    logger.info("Starting %s...", getattr(settings, "app_name", "daybook"))

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(_run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
