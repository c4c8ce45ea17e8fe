# tests/test_bootstrap.py

from __future__ import annotations

import pytest

from daybook.cli.bootstrap import build_port, create_initial_state, shutdown_state
from daybook.config import Settings
from daybook.connectors.console_connector import rollback_notice
from daybook.core.errors import PersistenceError
from daybook.tasks.http_persistence import HttpPersistence
from daybook.tasks.persistence import LocalPersistence
from daybook.tasks.reconcile import ChangeEvent, ChangeKind

from .conftest import TODAY
from .fakes import make_task


def test_settings_from_env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("DAYBOOK_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("DAYBOOK_STORE", "HTTP")
    monkeypatch.setenv("DAYBOOK_DEBOUNCE_SECONDS", "-1")
    monkeypatch.setenv("DAYBOOK_RESYNC_ON_FAILURE", "yes")
    monkeypatch.setenv("DAYBOOK_DEFAULT_CATEGORY", "nonsense")
    monkeypatch.delenv("DAYBOOK_TASKS_DB_PATH", raising=False)

    s = Settings.from_env()
    assert s.store_backend == "http"
    assert s.tasks_db_path == tmp_path / "tasks.sqlite3"
    assert s.debounce_seconds == 0.0
    assert s.resync_on_failure is True
    assert s.default_category == "life"


@pytest.mark.asyncio
async def test_build_port_picks_backend(settings) -> None:
    port = build_port(settings)
    assert isinstance(port, LocalPersistence)
    assert settings.tasks_db_path.exists()

    settings.store_backend = "http"
    http = build_port(settings)
    assert isinstance(http, HttpPersistence)
    await http.close()

    settings.store_backend = "carrier-pigeon"
    with pytest.raises(ValueError):
        build_port(settings)


@pytest.mark.asyncio
async def test_shutdown_flushes_and_closes(settings, port) -> None:
    port.tasks["a"] = make_task("a", TODAY)
    state = create_initial_state(settings=settings, port=port, today=lambda: TODAY)
    await state.engine.load()
    state.engine.toggle("a")

    await shutdown_state(state)

    assert port.ops()[-1] == "update"
    assert port.closed
    assert state.engine.closed


@pytest.mark.asyncio
async def test_initial_load_failure_is_a_persistence_error(state) -> None:
    state.port.down = True
    with pytest.raises(PersistenceError):
        await state.engine.load()


def test_rollback_notice_only_for_rollbacks() -> None:
    event = ChangeEvent(
        kind=ChangeKind.ROLLBACK, mutation="punt_all", task_ids=("a", "b"), containers=frozenset(), tasks={}
    )
    assert rollback_notice(event) == "[STORE] Could not save punt_all; restored 2 tasks."
    assert rollback_notice(
        ChangeEvent(kind=ChangeKind.UPDATE, mutation="x", task_ids=(), containers=frozenset(), tasks={})
    ) is None
