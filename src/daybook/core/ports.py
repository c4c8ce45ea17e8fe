# src/daybook/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The reconciliation engine depends on Protocols instead of concrete stores.
This keeps the SQLite / HTTP backends swappable and makes testing easier.
"""

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..tasks.task_models import Task, TaskCategory, TaskState


@dataclass(frozen=True, slots=True)
class ReorderMove:
    """One entry of a batch reorder: the new key plus any container fields that changed."""

    id: str
    order: str
    date: date | None = None
    category: TaskCategory | None = None
    state: TaskState | None = None

    def container_fields(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.date is not None:
            out["date"] = self.date
        if self.category is not None:
            out["category"] = self.category
        if self.state is not None:
            out["state"] = self.state
        return out


class PersistencePort(Protocol):
    """
    Remote store used by the engine.

    Every write either completes or raises PersistenceError (TaskNotFoundError
    when the target is gone). Batch calls are atomic on the store side.
    Field patches use snake_case keys: text, date, category, state, order.
    """

    # Single-task CRUD
    def create(self, task: Task) -> Awaitable[None]: ...
    def update(self, task_id: str, fields: dict[str, Any]) -> Awaitable[None]: ...
    def delete(self, task_id: str) -> Awaitable[None]: ...

    # Batched lifecycle transitions
    def batch_punt(
            self, task_ids: Sequence[str], source_date: date, target_date: date
    ) -> Awaitable[None]: ...
    def batch_set_state(self, task_ids: Sequence[str], state: TaskState) -> Awaitable[None]: ...
    def batch_graveyard(self, task_ids: Sequence[str]) -> Awaitable[None]: ...

    # Ordering
    def reorder(
            self,
            task_id: str,
            order: str,
            *,
            date: date | None = None,
            category: TaskCategory | None = None,
            state: TaskState | None = None,
    ) -> Awaitable[None]: ...
    def batch_reorder(self, moves: Sequence[ReorderMove]) -> Awaitable[None]: ...

    def resurrect(self, task_id: str, target_date: date) -> Awaitable[None]: ...

    # Bulk reads
    def fetch_all(self, category: TaskCategory | None = None) -> Awaitable[list[Task]]: ...
    def fetch_for_range(self, start: date, end: date) -> Awaitable[list[Task]]: ...
    def fetch_graveyard(self, category: TaskCategory | None = None) -> Awaitable[list[Task]]: ...

    def close(self) -> Awaitable[None]: ...


RemoteWrite = Callable[[], Awaitable[Any]]
# A zero-argument coroutine factory performing one PersistencePort call.
