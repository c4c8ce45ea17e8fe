# tests/conftest.py

from __future__ import annotations

from datetime import date
from pathlib import Path
from types import SimpleNamespace

import pytest

from daybook.cli.bootstrap import create_initial_state
from daybook.core.state import AppState
from daybook.tasks.reconcile import ReconciliationEngine

from .fakes import FakePersistence

TODAY = date(2025, 1, 3)
DEBOUNCE = 0.05


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="daybook-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        store_backend="sqlite",
        api_base_url="http://store.test/api",
        http_timeout_seconds=2.0,
        debounce_seconds=DEBOUNCE,
        resync_on_failure=False,
        default_category="life",
    )


@pytest.fixture()
def port() -> FakePersistence:
    return FakePersistence()


@pytest.fixture()
def engine(port: FakePersistence) -> ReconciliationEngine:
    """Engine with a short debounce window and a frozen calendar (today = 2025-01-03)."""
    return ReconciliationEngine(port, debounce_seconds=DEBOUNCE, today=lambda: TODAY)


@pytest.fixture()
def state(settings: SimpleNamespace, port: FakePersistence) -> AppState:
    """AppState wired to the in-memory store."""
    return create_initial_state(settings=settings, port=port, today=lambda: TODAY)
