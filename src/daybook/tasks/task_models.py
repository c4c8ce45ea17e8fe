# src/daybook/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import StrEnum
from typing import Any


class TaskState(StrEnum):
    """
    Task lifecycle state.

    `completed` on the wire is derived from this value and never stored separately.
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def from_db(cls, raw: str | None, *, completed: bool | None = None) -> TaskState:
        # Legacy rows predate the state column and only carry `completed`.
        if not raw:
            return cls.COMPLETED if completed else cls.ACTIVE
        try:
            return cls(raw)
        except ValueError:
            return cls.ACTIVE


class TaskCategory(StrEnum):
    LIFE = "life"
    WORK = "work"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskCategory:
        if not raw:
            return cls.LIFE
        try:
            return cls(raw)
        except ValueError:
            return cls.LIFE


@dataclass(frozen=True, slots=True)
class Task:
    """
    One todo item.

    Instances are immutable: every transition produces a new Task, which is what
    lets the reconciliation engine keep cheap per-task snapshots.

    - date=None means the task sits in the graveyard.
    - created_at is the moment the task was created *for* (noon on its first day),
      punt_days counts from its calendar date.
    - order is only meaningful within the task's container.
    """

    id: str
    text: str
    date: date | None
    category: TaskCategory
    state: TaskState
    created_at: datetime
    order: str | None = None
    punt_days: int = 0

    @property
    def completed(self) -> bool:
        return self.state is TaskState.COMPLETED

    @property
    def in_graveyard(self) -> bool:
        return self.date is None

    @property
    def punted(self) -> bool:
        return self.state is TaskState.ACTIVE and self.punt_days > 0

    def to_dict(self) -> dict[str, Any]:
        """Wire representation (camelCase, `completed` emitted for older readers)."""
        return {
            "id": self.id,
            "text": self.text,
            "date": self.date.isoformat() if self.date is not None else None,
            "category": self.category.value,
            "state": self.state.value,
            "completed": self.completed,
            "createdAt": self.created_at.isoformat(),
            "order": self.order,
            "puntDays": self.punt_days,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Task:
        task_date = parse_date(raw.get("date"))
        created_at = parse_timestamp(raw.get("createdAt"), fallback_day=task_date)
        return cls(
            id=str(raw["id"]),
            text=str(raw.get("text") or ""),
            date=task_date,
            category=TaskCategory.from_db(raw.get("category")),
            state=TaskState.from_db(raw.get("state"), completed=bool(raw.get("completed"))),
            created_at=created_at,
            order=raw.get("order") or None,
            punt_days=derive_punt_days(created_at, task_date),
        )


def parse_date(raw: Any) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    # Servers sometimes send full timestamps for DATE columns.
    return date.fromisoformat(str(raw)[:10])


def parse_timestamp(raw: Any, *, fallback_day: date | None = None) -> datetime:
    if isinstance(raw, datetime):
        return raw
    if raw:
        return datetime.fromisoformat(str(raw))
    return created_at_for(fallback_day or date.today())


def created_at_for(day: date) -> datetime:
    """Creation timestamp for a task created for `day` (local noon)."""
    return datetime.combine(day, time(12, 0))


def derive_punt_days(created_at: datetime, current: date | None) -> int:
    """Whole days between the creation day and the current day, never negative."""
    if current is None:
        return 0
    return max(0, (current - created_at.date()).days)
