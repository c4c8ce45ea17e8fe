# src/daybook/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import date, timedelta
from typing import cast

from ..core.errors import PersistenceError
from ..core.state import AppState
from ..tasks.containers import ContainerKey
from ..tasks.task_models import Task, TaskCategory, TaskState

CommandEmitter = Callable[[str], None]
CommandResult = str | Awaitable[str]
CommandHandler2 = Callable[[AppState, list[str]], CommandResult]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandResult]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)

SHORT_ID = 8

_CATEGORY_WORDS = {c.value: c for c in TaskCategory}
_STATE_WORDS = {
    "active": TaskState.ACTIVE,
    "a": TaskState.ACTIVE,
    "completed": TaskState.COMPLETED,
    "done": TaskState.COMPLETED,
    "c": TaskState.COMPLETED,
    "failed": TaskState.FAILED,
    "fail": TaskState.FAILED,
    "f": TaskState.FAILED,
}


class CommandRegistry:
    """Slash-command registry used by connectors (/help, /add, /punt, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        try:
            if nparams >= 3:
                result = cast(CommandHandler3, handler)(state, args, emit)
            else:
                result = cast(CommandHandler2, handler)(state, args)
            if inspect.isawaitable(result):
                result = await result
        except (KeyError, ValueError) as exc:
            msg = exc.args[0] if exc.args else exc.__class__.__name__
            return f"Error: {msg}"
        return cast(str, result)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- argument helpers ----


def parse_day(raw: str, today: date) -> date | None:
    """today / tomorrow / yesterday / +N / -N / YYYY-MM-DD; None if not a date."""
    word = raw.strip().lower()
    if word in ("today", "t"):
        return today
    if word in ("tomorrow", "tm"):
        return today + timedelta(days=1)
    if word in ("yesterday", "y"):
        return today - timedelta(days=1)
    if word[:1] in "+-" and word[1:].isdigit():
        return today + timedelta(days=int(word))
    try:
        return date.fromisoformat(word)
    except ValueError:
        return None


def _day_and_category(state: AppState, args: list[str]) -> tuple[date, TaskCategory | None, list[str]]:
    """Peel an optional category word and an optional day off the front of args."""
    today = state.engine.today()
    day: date | None = None
    category: TaskCategory | None = None
    rest = list(args)
    while rest:
        head = rest[0].lower()
        if category is None and head in _CATEGORY_WORDS:
            category = _CATEGORY_WORDS[head]
        elif day is None and (parsed := parse_day(head, today)) is not None:
            day = parsed
        else:
            break
        rest.pop(0)
    return day or state.focus_date or today, category, rest


def _need(args: list[str], n: int, usage: str) -> None:
    if len(args) < n:
        raise ValueError(f"usage: {usage}")


def _fmt_task(task: Task) -> str:
    mark = {TaskState.ACTIVE: " ", TaskState.COMPLETED: "x", TaskState.FAILED: "-"}[task.state]
    badge = f"  (+{task.punt_days}d)" if task.punted else ""
    return f"[{mark}] {task.id[:SHORT_ID]}  {task.text}{badge}"


# ---- commands ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    eng = state.engine
    backend = getattr(state.settings, "store_backend", "?")
    buried = len(eng.graveyard_tasks())
    return (
        "Status:\n"
        f"  Store: {backend}\n"
        f"  Tasks: {len(eng)} ({buried} in graveyard)\n"
        f"  Pending writes: {eng.pending_writes}\n"
        f"  Writes ok / rolled back: {eng.writes_ok} / {eng.rollbacks}"
    )


def cmd_add(state: AppState, args: list[str]) -> str:
    """/add [life|work] [day] text..."""
    day, category, rest = _day_and_category(state, args)
    _need(rest, 1, "/add [life|work] [day] text")
    task = state.engine.create_task(" ".join(rest), day, category or state.default_category)
    return f"Added {task.id[:SHORT_ID]} on {day.isoformat()} ({task.category.value})."


def cmd_ls(state: AppState, args: list[str]) -> str:
    """/ls [day] [life|work]"""
    day, only, _ = _day_and_category(state, args)
    state.focus_date = day
    grouped = state.engine.grouped(only).get(day)
    if not grouped:
        return f"{day.isoformat()}: nothing here."
    lines = [f"{day.isoformat()}:"]
    for category in TaskCategory:
        if only is not None and category is not only:
            continue
        tasks = [t for s in TaskState for t in grouped[s] if t.category is category]
        if not tasks:
            continue
        lines.append(f" {category.value}:")
        lines.extend(f"   {_fmt_task(t)}" for t in tasks)
    counts = state.engine.counts(only).get(day)
    if counts is not None:
        lines.append(
            f" active {counts.active}, punted {counts.punted}, "
            f"completed {counts.completed}, failed {counts.failed}"
        )
    return "\n".join(lines)


def cmd_grave(state: AppState, args: list[str]) -> str:
    tasks = state.engine.graveyard_tasks()
    if not tasks:
        return "Graveyard is empty."
    return "Graveyard:\n" + "\n".join(f"  {_fmt_task(t)} [{t.category.value}]" for t in tasks)


def cmd_toggle(state: AppState, args: list[str]) -> str:
    _need(args, 1, "/toggle <id>")
    task = state.engine.find(args[0])
    state.engine.toggle(task.id)
    return f"{task.id[:SHORT_ID]} -> {state.engine.require(task.id).state.value}"


def cmd_state(state: AppState, args: list[str]) -> str:
    _need(args, 2, "/state <id> active|completed|failed")
    task = state.engine.find(args[0])
    new_state = _STATE_WORDS.get(args[1].lower())
    if new_state is None:
        raise ValueError(f"unknown state: {args[1]}")
    state.engine.set_state(task.id, new_state)
    return f"{task.id[:SHORT_ID]} -> {new_state.value}"


def cmd_punt(state: AppState, args: list[str]) -> str:
    _need(args, 1, "/punt <id>")
    task = state.engine.find(args[0])
    state.engine.punt(task.id)
    moved = state.engine.require(task.id)
    return f"Punted {task.id[:SHORT_ID]} to {cast(date, moved.date).isoformat()} (+{moved.punt_days}d)."


def cmd_punt_all(state: AppState, args: list[str]) -> str:
    day, category, _ = _day_and_category(state, args)
    n = len([t for t in state.engine.tasks_on(day) if t.state is TaskState.ACTIVE and category in (None, t.category)])
    if state.engine.punt_all(day, category=category) is None:
        return f"No active tasks on {day.isoformat()}."
    return f"Punting {n} task(s) from {day.isoformat()}."


def cmd_fail_all(state: AppState, args: list[str]) -> str:
    day, category, _ = _day_and_category(state, args)
    if state.engine.fail_all(day, category=category) is None:
        return f"No active tasks on {day.isoformat()}."
    return f"Failed the remaining tasks on {day.isoformat()}."


def cmd_bury(state: AppState, args: list[str]) -> str:
    _need(args, 1, "/bury <id>")
    task = state.engine.find(args[0])
    if state.engine.graveyard(task.id) is None:
        return f"{task.id[:SHORT_ID]} is already in the graveyard."
    return f"Buried {task.id[:SHORT_ID]}."


def cmd_bury_all(state: AppState, args: list[str]) -> str:
    day, category, _ = _day_and_category(state, args)
    ids = [
        t.id
        for t in state.engine.tasks_on(day)
        if t.state is TaskState.ACTIVE and category in (None, t.category)
    ]
    if state.engine.graveyard_all(ids) is None:
        return f"No active tasks on {day.isoformat()}."
    return f"Buried {len(ids)} task(s) from {day.isoformat()}."


def cmd_raise(state: AppState, args: list[str]) -> str:
    _need(args, 1, "/raise <id> [day]")
    task = state.engine.find(args[0])
    today = state.engine.today()
    day = parse_day(args[1], today) if len(args) > 1 else today
    if day is None:
        raise ValueError(f"not a day: {args[1]}")
    state.engine.resurrect(task.id, day)
    return f"Resurrected {task.id[:SHORT_ID]} on {day.isoformat()}."


def cmd_move(state: AppState, args: list[str]) -> str:
    _need(args, 5, "/move <id> <day> <life|work> <state> <index>")
    task = state.engine.find(args[0])
    day = parse_day(args[1], state.engine.today())
    category = _CATEGORY_WORDS.get(args[2].lower())
    new_state = _STATE_WORDS.get(args[3].lower())
    if day is None or category is None or new_state is None:
        raise ValueError("usage: /move <id> <day> <life|work> <state> <index>")
    state.engine.reorder(task.id, ContainerKey(day, category, new_state), int(args[4]))
    return f"Moved {task.id[:SHORT_ID]} to {day.isoformat()}/{category.value}/{new_state.value} #{args[4]}."


def cmd_top(state: AppState, args: list[str]) -> str:
    _need(args, 1, "/top <id>")
    task = state.engine.find(args[0])
    if state.engine.move_to_top(task.id) is None:
        return f"{task.id[:SHORT_ID]} has no siblings."
    return f"Moved {task.id[:SHORT_ID]} to the top."


def cmd_edit(state: AppState, args: list[str]) -> str:
    _need(args, 2, "/edit <id> text...")
    task = state.engine.find(args[0])
    if state.engine.update_text(task.id, " ".join(args[1:])) is None:
        return "Nothing changed."
    return f"Updated {task.id[:SHORT_ID]}."


def cmd_del(state: AppState, args: list[str]) -> str:
    _need(args, 1, "/del <id>")
    task = state.engine.find(args[0])
    state.engine.delete_task(task.id)
    return f"Deleted {task.id[:SHORT_ID]}."


async def cmd_flush(state: AppState, args: list[str]) -> str:
    await state.engine.flush()
    await state.engine.drain()
    return f"Flushed. Rollbacks so far: {state.engine.rollbacks}."


async def cmd_reload(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        emit("[STORE] Reloading...")
    try:
        n = await state.engine.load()
    except PersistenceError as exc:
        return f"[STORE] Could not reload: {exc}"
    return f"Loaded {n} task(s)."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show store, task totals and write counters.")
registry.register("add", cmd_add, help_text="Add a task: /add [life|work] [day] text.", aliases=["a"])
registry.register("ls", cmd_ls, help_text="List a day: /ls [day] [life|work].", aliases=["l"])
registry.register("grave", cmd_grave, help_text="List the graveyard.")
registry.register("toggle", cmd_toggle, help_text="Cycle active -> completed -> failed: /toggle <id>.", aliases=["x"])
registry.register("state", cmd_state, help_text="Set state: /state <id> active|completed|failed.")
registry.register("punt", cmd_punt, help_text="Punt a task forward: /punt <id>.", aliases=["p"])
registry.register("puntall", cmd_punt_all, help_text="Punt every active task of a day: /puntall [day] [life|work].")
registry.register("failall", cmd_fail_all, help_text="Fail every active task of a day: /failall [day] [life|work].")
registry.register("bury", cmd_bury, help_text="Send a task to the graveyard: /bury <id>.")
registry.register("buryall", cmd_bury_all, help_text="Bury every active task of a day: /buryall [day] [life|work].")
registry.register("raise", cmd_raise, help_text="Resurrect from the graveyard: /raise <id> [day].")
registry.register("move", cmd_move, help_text="Reorder/move: /move <id> <day> <life|work> <state> <index>.")
registry.register("top", cmd_top, help_text="Move a task to the top of its list: /top <id>.")
registry.register("edit", cmd_edit, help_text="Change a task's text: /edit <id> text.")
registry.register("del", cmd_del, help_text="Delete a task: /del <id>.")
registry.register("flush", cmd_flush, help_text="Send pending writes now and wait for them.")
registry.register("reload", cmd_reload, help_text="Reload everything from the store.")
