# tests/test_lifecycle.py

from __future__ import annotations

from datetime import date

import pytest

from daybook.tasks import lifecycle
from daybook.tasks.task_models import Task, TaskCategory, TaskState

from .fakes import make_task

TODAY = date(2025, 1, 3)


def test_toggle_cycles_through_all_states() -> None:
    t = make_task("a", TODAY)
    seen = []
    for _ in range(3):
        t = lifecycle.toggle(t)
        seen.append(t.state)
    assert seen == [TaskState.COMPLETED, TaskState.FAILED, TaskState.ACTIVE]


def test_set_state_same_state_is_a_no_op() -> None:
    t = make_task("a", TODAY)
    assert lifecycle.set_state(t, TaskState.ACTIVE) is t
    assert lifecycle.set_state(t, TaskState.FAILED).state is TaskState.FAILED


def test_punt_overdue_task_lands_on_today() -> None:
    t = make_task("a", date(2025, 1, 1), created=date(2025, 1, 1), state=TaskState.FAILED)
    moved = lifecycle.punt(t, today=TODAY)
    assert moved.id == t.id
    assert moved.date == TODAY
    assert moved.state is TaskState.ACTIVE
    assert moved.punt_days == 2
    assert moved.punted


def test_punt_future_task_advances_one_day() -> None:
    t = make_task("a", date(2025, 1, 5), created=date(2025, 1, 1))
    moved = lifecycle.punt(t, today=TODAY)
    assert moved.date == date(2025, 1, 6)
    assert moved.punt_days == 5


def test_punt_today_task_goes_to_tomorrow() -> None:
    t = make_task("a", TODAY)
    assert lifecycle.punt(t, today=TODAY).date == date(2025, 1, 4)


def test_punt_keeps_order_key() -> None:
    t = make_task("a", TODAY, order="V")
    assert lifecycle.punt(t, today=TODAY).order == "V"


def test_punt_days_never_negative() -> None:
    # Created for a later day than it now sits on.
    t = make_task("a", date(2025, 1, 1), created=date(2025, 1, 10))
    assert lifecycle.punt(t, today=TODAY).punt_days == 0


def test_graveyard_and_resurrect_round_trip() -> None:
    t = make_task("a", date(2025, 1, 1), state=TaskState.FAILED, order="G")
    buried = lifecycle.graveyard(t)
    assert buried.in_graveyard
    assert buried.state is TaskState.ACTIVE
    assert buried.punt_days == 0

    back = lifecycle.resurrect(buried, TODAY)
    assert back.date == TODAY
    assert back.state is TaskState.ACTIVE
    assert back.punt_days == 0
    assert back.order == "G"


def test_relocate_changes_container_and_recomputes_punt_days() -> None:
    t = make_task("a", date(2025, 1, 1))
    moved = lifecycle.relocate(t, target_date=TODAY, category=TaskCategory.WORK, state=TaskState.COMPLETED)
    assert (moved.date, moved.category, moved.state) == (TODAY, TaskCategory.WORK, TaskState.COMPLETED)
    assert moved.punt_days == 2


def test_batch_helpers_transform_every_task() -> None:
    tasks = [make_task(str(i), date(2025, 1, 1)) for i in range(3)]
    assert {t.date for t in lifecycle.punt_all(tasks, today=TODAY, from_date=date(2025, 1, 1))} == {TODAY}
    assert {t.state for t in lifecycle.fail_all(tasks)} == {TaskState.FAILED}
    assert all(t.in_graveyard for t in lifecycle.graveyard_all(tasks))


def test_task_is_immutable() -> None:
    t = make_task("a", TODAY)
    with pytest.raises(AttributeError):
        t.text = "changed"  # type: ignore[misc]


def test_legacy_row_without_state_uses_completed_flag() -> None:
    t = Task.from_dict({"id": "x", "text": "old", "date": "2025-01-03", "completed": True})
    assert t.state is TaskState.COMPLETED
    assert t.category is TaskCategory.LIFE
    assert t.created_at.date() == TODAY
    assert t.to_dict()["completed"] is True
