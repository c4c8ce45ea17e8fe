# src/daybook/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks the persistence backend and wires it into the reconciliation engine.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date

from ..config import STORE_BACKENDS, get_settings
from ..core.ports import PersistencePort
from ..core.state import AppState
from ..tasks.http_persistence import HttpPersistence
from ..tasks.persistence import LocalPersistence
from ..tasks.reconcile import ReconciliationEngine
from ..tasks.task_models import TaskCategory
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_db_path.parent.mkdir(parents=True, exist_ok=True)


def build_port(settings) -> PersistencePort:
    backend = str(getattr(settings, "store_backend", "sqlite")).lower()
    if backend not in STORE_BACKENDS:
        raise ValueError(f"unknown store backend {backend!r} (expected one of {', '.join(STORE_BACKENDS)})")

    if backend == "http":
        logger.info("Using HTTP store at %s", settings.api_base_url)
        return HttpPersistence(settings.api_base_url, timeout_seconds=settings.http_timeout_seconds)

    _ensure_local_dirs(settings)
    return LocalPersistence(TaskStore(settings.tasks_db_path))


def create_initial_state(
    *,
    settings=None,
    port: PersistencePort | None = None,
    today: Callable[[], date] = date.today,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings and the port injectable makes the app easier to test.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    if port is None:
        port = build_port(settings)

    engine = ReconciliationEngine(
        port,
        debounce_seconds=settings.debounce_seconds,
        today=today,
        resync_on_failure=settings.resync_on_failure,
    )
    return AppState(
        settings=settings,
        port=port,
        engine=engine,
        default_category=TaskCategory.from_db(getattr(settings, "default_category", None)),
    )


async def shutdown_state(state: AppState, *, flush: bool = True) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.engine.aclose(flush=flush)
    except Exception:
        logger.exception("Engine shutdown failed.")
        state.engine.close()

    try:
        await state.port.close()
    except Exception:
        logger.debug("Store close failed.", exc_info=True)
