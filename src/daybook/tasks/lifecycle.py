# src/daybook/tasks/lifecycle.py

"""
Task lifecycle transitions.

Every function here is pure: it takes a Task and returns a new one. Nothing can
fail; persisting the result is the reconciliation engine's problem.

States cycle active -> completed -> failed -> active. Location is the second
dimension: a task is either attached to a date or sits in the graveyard
(date=None). Punting moves an active task forward in time:
- overdue tasks land on today (a backlog collapses instead of drifting),
- today/future tasks advance exactly one day.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import date, timedelta

from .task_models import Task, TaskCategory, TaskState, derive_punt_days

_CYCLE = {
    TaskState.ACTIVE: TaskState.COMPLETED,
    TaskState.COMPLETED: TaskState.FAILED,
    TaskState.FAILED: TaskState.ACTIVE,
}


def next_state(state: TaskState) -> TaskState:
    return _CYCLE[state]


def toggle(task: Task) -> Task:
    return replace(task, state=next_state(task.state))


def set_state(task: Task, state: TaskState) -> Task:
    if task.state is state:
        return task
    return replace(task, state=state)


def punt_target(from_date: date | None, today: date) -> date:
    if from_date is None or from_date < today:
        return today
    return from_date + timedelta(days=1)


def punt(task: Task, *, today: date, from_date: date | None = None) -> Task:
    """
    Move the task (same id) to its punt target and make it active again.

    from_date defaults to the task's own date; a graveyarded task lands on today.
    """
    source = from_date if from_date is not None else task.date
    target = punt_target(source, today)
    return replace(
        task,
        date=target,
        state=TaskState.ACTIVE,
        punt_days=derive_punt_days(task.created_at, target),
    )


def graveyard(task: Task) -> Task:
    # A buried task must not come back pre-marked failed.
    return replace(task, date=None, state=TaskState.ACTIVE, punt_days=0)


def resurrect(task: Task, target_date: date) -> Task:
    return replace(task, date=target_date, state=TaskState.ACTIVE, punt_days=0)


def relocate(
    task: Task,
    *,
    target_date: date,
    category: TaskCategory,
    state: TaskState,
) -> Task:
    """
    Drop a task into another dated container (drag and drop).

    Coming out of the graveyard goes through resurrect first; the state change
    goes through set_state so the same rules apply as for the state picker.
    """
    moved = resurrect(task, target_date) if task.date is None else task
    if moved.date != target_date or moved.category is not category:
        moved = replace(
            moved,
            date=target_date,
            category=category,
            punt_days=derive_punt_days(moved.created_at, target_date),
        )
    return set_state(moved, state)


def with_order(task: Task, order: str | None) -> Task:
    if task.order == order:
        return task
    return replace(task, order=order)


def with_text(task: Task, text: str) -> Task:
    return replace(task, text=text)


# ---- batch variants ----


def punt_all(tasks: Iterable[Task], *, today: date, from_date: date) -> list[Task]:
    return [punt(t, today=today, from_date=from_date) for t in tasks]


def set_state_all(tasks: Iterable[Task], state: TaskState) -> list[Task]:
    return [set_state(t, state) for t in tasks]


def fail_all(tasks: Iterable[Task]) -> list[Task]:
    return set_state_all(tasks, TaskState.FAILED)


def graveyard_all(tasks: Iterable[Task]) -> list[Task]:
    return [graveyard(t) for t in tasks]
