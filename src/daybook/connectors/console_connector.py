# src/daybook/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..tasks.reconcile import ChangeEvent, ChangeKind

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except Exception:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def rollback_notice(event: ChangeEvent) -> str | None:
    """User-facing line for a change event; only rollbacks are worth interrupting for."""
    if event.kind is not ChangeKind.ROLLBACK:
        return None
    n = len(event.task_ids)
    noun = "task" if n == 1 else "tasks"
    return f"[STORE] Could not save {event.mutation}; restored {n} {noun}."


async def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (store=%s).", getattr(state.settings, "store_backend", "?"))
    _print_ts("[CONSOLE] Type /help for commands, /ls to see today. Use /exit to quit.\n")

    def on_change(event: ChangeEvent) -> None:
        notice = rollback_notice(event)
        if notice:
            state.notices.append(notice)
            _print_ts(notice)

    unsubscribe = state.engine.subscribe(on_change)

    def emit(text: str) -> None:
        _print_ts(text)

    try:
        while True:
            try:
                user_input = (await asyncio.to_thread(input, ">>> ")).strip()
                _rewrite_prev_line(f"[{_ts_local()}] >>> {user_input}")
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            if not user_input.startswith("/"):
                # Bare text is a quick add for the focused day.
                user_input = f"/add {user_input}"

            try:
                response = await command_registry.handle(state, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                response = "Internal error while handling a command."

            if response is not None:
                _print_ts(response)
    finally:
        unsubscribe()

    logger.info("Console connector finished.")
