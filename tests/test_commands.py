# tests/test_commands.py

from __future__ import annotations

from datetime import date

import pytest

from daybook.cli.commands import CommandRegistry, parse_day, registry
from daybook.tasks.task_models import TaskCategory, TaskState

from .conftest import TODAY
from .fakes import make_task


async def _seed(state, *tasks) -> None:
    for t in tasks:
        state.port.tasks[t.id] = t
    await state.engine.load()


@pytest.mark.asyncio
async def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}
    notes: list[str] = []

    def h2(state, args):
        called["h2"] += 1
        return "h2"

    async def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b", aliases=["bb"])

    assert await reg.handle(state, "/a x") == "h2"
    assert await reg.handle(state, "/bb y", emit=notes.append) == "h3"
    assert called == {"h2": 1, "h3": 1}
    assert notes == ["note"]


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert await reg.handle(state, "hello") is None
    assert "Unknown command" in (await reg.handle(state, "/nope") or "")
    assert "Empty command" in (await reg.handle(state, "/") or "")


@pytest.mark.asyncio
async def test_caller_errors_become_replies(state) -> None:
    reply = await registry.handle(state, "/toggle zzz")
    assert reply == "Error: unknown task: zzz"
    assert (await registry.handle(state, "/state")) == "Error: usage: /state <id> active|completed|failed"


def test_parse_day() -> None:
    assert parse_day("today", TODAY) == TODAY
    assert parse_day("tomorrow", TODAY) == date(2025, 1, 4)
    assert parse_day("-2", TODAY) == date(2025, 1, 1)
    assert parse_day("2025-02-01", TODAY) == date(2025, 2, 1)
    assert parse_day("groceries", TODAY) is None


@pytest.mark.asyncio
async def test_add_and_list(state) -> None:
    reply = await registry.handle(state, "/add work tomorrow write report")
    assert reply is not None and reply.startswith("Added")

    (task,) = state.engine.tasks_on(date(2025, 1, 4))
    assert (task.text, task.category) == ("write report", TaskCategory.WORK)

    listing = await registry.handle(state, "/ls tomorrow")
    assert listing is not None
    assert "write report" in listing
    assert state.focus_date == date(2025, 1, 4)
    await state.engine.drain()


@pytest.mark.asyncio
async def test_lifecycle_commands(state) -> None:
    await _seed(state, make_task("abc123", date(2025, 1, 1)), make_task("def456", TODAY))

    reply = await registry.handle(state, "/punt abc")
    assert reply == f"Punted abc123 to {TODAY.isoformat()} (+2d)."
    assert state.engine.require("abc123").date == TODAY

    await registry.handle(state, "/state def done")
    assert state.engine.require("def456").state is TaskState.COMPLETED

    await registry.handle(state, "/bury abc")
    assert state.engine.require("abc123").in_graveyard
    assert "abc123"[:8] in (await registry.handle(state, "/grave") or "")

    await registry.handle(state, "/raise abc today")
    assert state.engine.require("abc123").date == TODAY

    await registry.handle(state, "/edit abc new words")
    assert state.engine.require("abc123").text == "new words"

    reply = await registry.handle(state, "/flush")
    assert reply is not None and reply.startswith("Flushed")
    assert state.port.tasks["def456"].state is TaskState.COMPLETED

    await registry.handle(state, "/del abc")
    await state.engine.drain()
    assert "abc123" not in state.port.tasks


@pytest.mark.asyncio
async def test_batch_commands(state) -> None:
    await _seed(state, make_task("a1", TODAY), make_task("a2", TODAY), make_task("w1", TODAY, category=TaskCategory.WORK))

    await registry.handle(state, "/failall today work")
    assert state.engine.require("w1").state is TaskState.FAILED
    assert state.engine.require("a1").state is TaskState.ACTIVE

    reply = await registry.handle(state, "/puntall today")
    assert reply == "Punting 2 task(s) from 2025-01-03."
    await state.engine.drain()
    assert {state.engine.require(t).date for t in ("a1", "a2")} == {date(2025, 1, 4)}

    reply = await registry.handle(state, "/buryall tomorrow")
    assert reply == "Buried 2 task(s) from 2025-01-04."


@pytest.mark.asyncio
async def test_move_and_top(state) -> None:
    await _seed(state, make_task("a1", TODAY, order="G"), make_task("a2", TODAY, order="V"))

    await registry.handle(state, "/top a2")
    assert [t.id for t in state.engine.tasks_on(TODAY)] == ["a2", "a1"]

    await registry.handle(state, "/move a1 today life completed 0")
    assert state.engine.require("a1").state is TaskState.COMPLETED
    await state.engine.drain()


@pytest.mark.asyncio
async def test_status_and_help(state) -> None:
    assert "/punt" in (await registry.handle(state, "/help") or "")
    status = await registry.handle(state, "/status")
    assert status is not None and "Pending writes: 0" in status


@pytest.mark.asyncio
async def test_reload_reports_store_errors(state) -> None:
    await _seed(state, make_task("a1", TODAY))
    notes: list[str] = []
    state.port.down = True

    reply = await registry.handle(state, "/reload", emit=notes.append)

    assert notes == ["[STORE] Reloading..."]
    assert reply is not None and reply.startswith("[STORE] Could not reload:")
    assert state.engine.require("a1").date == TODAY
