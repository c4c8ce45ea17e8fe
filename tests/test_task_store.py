# tests/test_task_store.py

from __future__ import annotations

import sqlite3
from datetime import date
from pathlib import Path

import pytest

from daybook.core.errors import PersistenceError, TaskNotFoundError
from daybook.core.ports import ReorderMove
from daybook.tasks.persistence import LocalPersistence
from daybook.tasks.task_models import TaskCategory, TaskState
from daybook.tasks.task_store import BatchMismatchError, TaskStore

from .fakes import make_task

D1 = date(2025, 1, 1)
D3 = date(2025, 1, 3)


@pytest.fixture()
def store(tmp_path: Path) -> TaskStore:
    return TaskStore(tmp_path / "tasks.sqlite3")


def test_add_and_read_back(store: TaskStore) -> None:
    t = make_task("a", D1, order="V", category=TaskCategory.WORK)
    store.add_task(t)
    assert store.count_tasks() == 1
    assert store.get_task("a") == t
    assert store.list_tasks(TaskCategory.LIFE) == []
    assert store.list_tasks(TaskCategory.WORK) == [t]


def test_update_keeps_completed_in_sync(store: TaskStore, tmp_path: Path) -> None:
    store.add_task(make_task("a", D1))
    assert store.update_task_fields("a", {"state": TaskState.COMPLETED}) is True

    conn = sqlite3.connect(tmp_path / "tasks.sqlite3")
    try:
        (completed,) = conn.execute("SELECT completed FROM tasks WHERE id = 'a'").fetchone()
    finally:
        conn.close()
    assert completed == 1
    assert store.update_task_fields("missing", {"text": "x"}) is False


def test_update_rejects_unknown_fields(store: TaskStore) -> None:
    store.add_task(make_task("a", D1))
    with pytest.raises(ValueError):
        store.update_task_fields("a", {"colour": "red"})


def test_punt_batch_is_all_or_nothing(store: TaskStore) -> None:
    store.add_task(make_task("a", D1))
    store.add_task(make_task("b", D3))  # not on the source date

    with pytest.raises(BatchMismatchError):
        store.punt_tasks(["a", "b"], D1, D3)
    assert store.get_task("a").date == D1  # type: ignore[union-attr]

    assert store.punt_tasks(["a"], D1, D3) == 1
    punted = store.get_task("a")
    assert punted is not None and punted.date == D3 and punted.punt_days == 2


def test_graveyard_and_resurrect(store: TaskStore) -> None:
    store.add_task(make_task("a", D1, state=TaskState.FAILED))
    store.graveyard_many(["a"])
    assert [t.id for t in store.list_graveyard()] == ["a"]
    assert store.list_tasks() == []
    assert store.get_task("a").state is TaskState.ACTIVE  # type: ignore[union-attr]

    assert store.resurrect_task("a", D3) is True
    assert store.get_task("a").date == D3  # type: ignore[union-attr]


def test_reorder_many_moves_between_containers(store: TaskStore) -> None:
    store.add_task(make_task("a", D1, order="V"))
    store.add_task(make_task("b", D3, order="V"))
    store.reorder_many([{"id": "a", "order": "G", "date": D3}, {"id": "b", "order": "l"}])
    assert [(t.id, t.order) for t in store.list_tasks_between(D3, D3)] == [("a", "G"), ("b", "l")]


def test_migrates_legacy_schema(tmp_path: Path) -> None:
    db = tmp_path / "legacy.sqlite3"
    conn = sqlite3.connect(db)
    conn.execute("CREATE TABLE tasks (id TEXT PRIMARY KEY, text TEXT, completed INTEGER, date TEXT)")
    conn.execute("INSERT INTO tasks VALUES ('old', 'legacy', 1, '2025-01-03')")
    conn.commit()
    conn.close()

    store = TaskStore(db)
    t = store.get_task("old")
    assert t is not None
    assert t.state is TaskState.COMPLETED
    assert t.category is TaskCategory.LIFE
    assert t.order is None
    assert t.created_at.date() == D3


@pytest.mark.asyncio
async def test_local_persistence_maps_errors(store: TaskStore) -> None:
    port = LocalPersistence(store)
    await port.create(make_task("a", D1))

    with pytest.raises(TaskNotFoundError):
        await port.update("nope", {"text": "x"})
    with pytest.raises(TaskNotFoundError):
        await port.batch_set_state(["a", "nope"], TaskState.FAILED)
    with pytest.raises(PersistenceError):
        await port.create(make_task("a", D1))  # duplicate primary key

    await port.batch_reorder([ReorderMove(id="a", order="G", state=TaskState.COMPLETED)])
    (t,) = await port.fetch_all()
    assert (t.order, t.state) == ("G", TaskState.COMPLETED)
    assert await port.fetch_graveyard() == []
    await port.close()
