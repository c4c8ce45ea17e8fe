# src/daybook/tasks/persistence.py

"""
PersistencePort adapter over the local SQLite TaskStore.

Store calls are blocking, so each one runs in a worker thread; the engine only
ever sees awaitables. sqlite3 errors become PersistenceError, a write that hit
no row becomes TaskNotFoundError.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable, Sequence
from datetime import date
from typing import Any, TypeVar

from ..core.errors import PersistenceError, TaskNotFoundError
from ..core.ports import ReorderMove
from .task_models import Task, TaskCategory, TaskState
from .task_store import BatchMismatchError, TaskStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalPersistence:
    def __init__(self, store: TaskStore) -> None:
        self._store = store

    @property
    def store(self) -> TaskStore:
        return self._store

    async def _call(self, op: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except BatchMismatchError as exc:
            raise TaskNotFoundError(f"{op}: {exc}") from exc
        except sqlite3.Error as exc:
            logger.debug("SQLite %s failed: %s", op, exc)
            raise PersistenceError(f"{op} failed: {exc}") from exc

    async def _write_one(self, op: str, task_id: str, fn: Callable[..., bool], *args: Any) -> None:
        if not await self._call(op, fn, *args):
            raise TaskNotFoundError(task_id)

    # ---- single-task CRUD ----

    async def create(self, task: Task) -> None:
        await self._call("create", self._store.add_task, task)

    async def update(self, task_id: str, fields: dict[str, Any]) -> None:
        await self._write_one("update", task_id, self._store.update_task_fields, task_id, fields)

    async def delete(self, task_id: str) -> None:
        await self._write_one("delete", task_id, self._store.delete_task, task_id)

    # ---- batches ----

    async def batch_punt(self, task_ids: Sequence[str], source_date: date, target_date: date) -> None:
        await self._call("batch_punt", self._store.punt_tasks, list(task_ids), source_date, target_date)

    async def batch_set_state(self, task_ids: Sequence[str], state: TaskState) -> None:
        await self._call("batch_set_state", self._store.set_state_many, list(task_ids), state)

    async def batch_graveyard(self, task_ids: Sequence[str]) -> None:
        await self._call("batch_graveyard", self._store.graveyard_many, list(task_ids))

    # ---- ordering ----

    async def reorder(
        self,
        task_id: str,
        order: str,
        *,
        date: date | None = None,
        category: TaskCategory | None = None,
        state: TaskState | None = None,
    ) -> None:
        move = ReorderMove(id=task_id, order=order, date=date, category=category, state=state)
        await self._write_one(
            "reorder", task_id, self._store.update_task_fields, task_id, {"order": order, **move.container_fields()}
        )

    async def batch_reorder(self, moves: Sequence[ReorderMove]) -> None:
        rows = [{"id": m.id, "order": m.order, **m.container_fields()} for m in moves]
        await self._call("batch_reorder", self._store.reorder_many, rows)

    async def resurrect(self, task_id: str, target_date: date) -> None:
        await self._write_one("resurrect", task_id, self._store.resurrect_task, task_id, target_date)

    # ---- reads ----

    async def fetch_all(self, category: TaskCategory | None = None) -> list[Task]:
        return await self._call("fetch_all", self._store.list_tasks, category)

    async def fetch_for_range(self, start: date, end: date) -> list[Task]:
        return await self._call("fetch_for_range", self._store.list_tasks_between, start, end)

    async def fetch_graveyard(self, category: TaskCategory | None = None) -> list[Task]:
        return await self._call("fetch_graveyard", self._store.list_graveyard, category)

    async def close(self) -> None:
        self._store.close()
