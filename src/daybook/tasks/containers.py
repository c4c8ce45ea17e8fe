# src/daybook/tasks/containers.py

"""
Container index.

A container is the ordered list of tasks sharing one (date, category, state),
or the single graveyard holding every task without a date. Containers are never
stored: they are rebuilt from the task collection whenever someone asks.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Final

from . import order_key
from .task_models import Task, TaskCategory, TaskState


@dataclass(frozen=True, slots=True)
class ContainerKey:
    date: date
    category: TaskCategory
    state: TaskState

    def __str__(self) -> str:
        return f"{self.date.isoformat()}/{self.category.value}/{self.state.value}"


class _Graveyard(Enum):
    GRAVEYARD = "graveyard"

    def __str__(self) -> str:
        return "graveyard"


GRAVEYARD: Final = _Graveyard.GRAVEYARD

AnyContainerKey = ContainerKey | _Graveyard


def container_key_of(task: Task) -> AnyContainerKey:
    if task.date is None:
        return GRAVEYARD
    return ContainerKey(task.date, task.category, task.state)


def sort_by_order(tasks: Iterable[Task]) -> list[Task]:
    """Ascending order keys, missing keys last, ties broken by id."""
    return sorted(tasks, key=lambda t: order_key.sort_key(t.order, t.id))


def containers_for(tasks: Iterable[Task]) -> dict[AnyContainerKey, list[Task]]:
    grouped: dict[AnyContainerKey, list[Task]] = defaultdict(list)
    for task in tasks:
        grouped[container_key_of(task)].append(task)
    return {key: sort_by_order(members) for key, members in grouped.items()}


def container_members(
    tasks: Iterable[Task],
    key: AnyContainerKey,
    *,
    exclude: Iterable[str] = (),
) -> list[Task]:
    """Sorted members of one container, optionally leaving some task ids out."""
    skip = set(exclude)
    return sort_by_order(
        t for t in tasks if t.id not in skip and container_key_of(t) == key
    )


def present_keys(members: Iterable[Task]) -> list[str]:
    """Valid order keys of already-sorted members (missing/malformed keys dropped)."""
    return [t.order for t in members if t.order is not None and order_key.is_valid(t.order)]


def append_key(members: Iterable[Task]) -> str:
    """Key that places a new task after every keyed member."""
    keys = present_keys(members)
    return order_key.after(max(keys) if keys else None)


@dataclass(slots=True)
class DayCounts:
    active: int = 0
    punted: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.active + self.punted + self.completed + self.failed


def counts_by_date(
    tasks: Iterable[Task], *, category: TaskCategory | None = None
) -> dict[date, DayCounts]:
    """
    Per-day counts. Punted tasks (active with punt_days > 0) are counted
    separately from fresh active ones. Graveyard tasks are not counted.
    """
    out: dict[date, DayCounts] = {}
    for t in tasks:
        if t.date is None or (category is not None and t.category is not category):
            continue
        counts = out.setdefault(t.date, DayCounts())
        if t.state is TaskState.COMPLETED:
            counts.completed += 1
        elif t.state is TaskState.FAILED:
            counts.failed += 1
        elif t.punt_days > 0:
            counts.punted += 1
        else:
            counts.active += 1
    return out


def grouped_by_date(
    tasks: Iterable[Task], *, category: TaskCategory | None = None
) -> dict[date, dict[TaskState, list[Task]]]:
    """Per-day lists split by state, each sorted by order key."""
    out: dict[date, dict[TaskState, list[Task]]] = {}
    for key, members in containers_for(tasks).items():
        if not isinstance(key, ContainerKey):
            continue
        if category is not None and key.category is not category:
            continue
        day = out.setdefault(key.date, {s: [] for s in TaskState})
        day[key.state] = sort_by_order(day[key.state] + members)
    return out
