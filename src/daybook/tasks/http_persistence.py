# src/daybook/tasks/http_persistence.py

"""
PersistencePort adapter over the dashboard's REST API.

Reads come back keyed by date ({"2025-01-03": [task, ...]}) except for the
graveyard, which is a flat list. Any transport error or non-2xx response is a
PersistenceError; 404 is a TaskNotFoundError.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import date
from enum import Enum
from typing import Any

import httpx

from ..core.errors import PersistenceError, TaskNotFoundError
from ..core.ports import ReorderMove
from .task_models import Task, TaskCategory, TaskState

logger = logging.getLogger(__name__)


def _wire_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    return value


def fields_to_wire(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Engine field patch -> JSON body. `completed` is derived here from `state`."""
    body = {name: _wire_value(value) for name, value in fields.items()}
    if "state" in body:
        body["completed"] = body["state"] == TaskState.COMPLETED.value
    return body


def _tasks_from_grouped(payload: Any) -> list[Task]:
    if not isinstance(payload, dict):
        raise PersistenceError(f"expected tasks keyed by date, got {type(payload).__name__}")
    out: list[Task] = []
    for day, items in payload.items():
        for raw in items or []:
            raw = dict(raw)
            raw.setdefault("date", day)
            out.append(Task.from_dict(raw))
    return out


def _tasks_from_list(payload: Any) -> list[Task]:
    if not isinstance(payload, list):
        raise PersistenceError(f"expected a task list, got {type(payload).__name__}")
    return [Task.from_dict(dict(raw, date=None)) for raw in payload]


class HttpPersistence:
    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds)),
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        task_id: str | None = None,
        json: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        try:
            resp = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            raise PersistenceError(f"{method} {path}: {exc.__class__.__name__}: {exc}") from exc

        if resp.status_code == 404:
            raise TaskNotFoundError(task_id or path)
        if resp.is_error:
            detail = resp.text[:200]
            raise PersistenceError(f"{method} {path}: HTTP {resp.status_code} {detail}")

        logger.debug("%s %s -> %s", method, path, resp.status_code)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise PersistenceError(f"{method} {path}: invalid JSON") from exc

    # ---- single-task CRUD ----

    async def create(self, task: Task) -> None:
        await self._request("POST", "/tasks", json=task.to_dict())

    async def update(self, task_id: str, fields: dict[str, Any]) -> None:
        await self._request("PATCH", f"/tasks/{task_id}", task_id=task_id, json=fields_to_wire(fields))

    async def delete(self, task_id: str) -> None:
        await self._request("DELETE", f"/tasks/{task_id}", task_id=task_id)

    # ---- batches ----

    async def batch_punt(self, task_ids: Sequence[str], source_date: date, target_date: date) -> None:
        await self._request(
            "POST",
            "/tasks/batch/punt",
            json={
                "taskIds": list(task_ids),
                "sourceDate": source_date.isoformat(),
                "targetDate": target_date.isoformat(),
            },
        )

    async def batch_set_state(self, task_ids: Sequence[str], state: TaskState) -> None:
        if state is not TaskState.FAILED:
            # The server only exposes the batch "fail" transition.
            raise PersistenceError(f"batch state change to {state.value!r} is not supported by the API")
        await self._request("POST", "/tasks/batch/fail", json={"taskIds": list(task_ids)})

    async def batch_graveyard(self, task_ids: Sequence[str]) -> None:
        await self._request("POST", "/tasks/batch/graveyard", json={"taskIds": list(task_ids)})

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
        await self._request(
            "PATCH",
            f"/tasks/{task_id}/reorder",
            task_id=task_id,
            json={"order": order, **fields_to_wire(move.container_fields())},
        )

    async def batch_reorder(self, moves: Sequence[ReorderMove]) -> None:
        body = [{"id": m.id, "order": m.order, **fields_to_wire(m.container_fields())} for m in moves]
        await self._request("POST", "/tasks/batch/reorder", json={"moves": body})

    async def resurrect(self, task_id: str, target_date: date) -> None:
        await self._request(
            "PATCH",
            f"/tasks/{task_id}/resurrect",
            task_id=task_id,
            json={"date": target_date.isoformat()},
        )

    # ---- reads ----

    async def fetch_all(self, category: TaskCategory | None = None) -> list[Task]:
        if category is TaskCategory.WORK:
            return _tasks_from_grouped(await self._request("GET", "/tasks/work"))
        tasks = _tasks_from_grouped(await self._request("GET", "/tasks"))
        if category is None:
            return tasks
        return [t for t in tasks if t.category is category]

    async def fetch_for_range(self, start: date, end: date) -> list[Task]:
        payload = await self._request(
            "GET", "/tasks/week", params={"start": start.isoformat(), "end": end.isoformat()}
        )
        return _tasks_from_grouped(payload)

    async def fetch_graveyard(self, category: TaskCategory | None = None) -> list[Task]:
        if category is TaskCategory.WORK:
            return _tasks_from_list(await self._request("GET", "/tasks/graveyard/work"))
        tasks = _tasks_from_list(await self._request("GET", "/tasks/graveyard"))
        if category is None:
            return tasks
        return [t for t in tasks if t.category is category]

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
