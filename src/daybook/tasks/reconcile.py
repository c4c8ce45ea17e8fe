# src/daybook/tasks/reconcile.py

from __future__ import annotations

"""
Reconciliation engine.

Owns the authoritative in-memory task collection for one client session and is
the only place that mutates it. Every user intent goes through the same steps:

1. compute the new Task values (order keys and lifecycle transitions first),
2. apply them to the collection immediately and notify subscribers,
3. send the matching PersistencePort call in the background,
4. if that call fails, put back the values captured right before step 2 and
   notify subscribers again.

Snapshots are per operation and per task. A task that still holds the exact
object the failed operation wrote is restored whole. If a newer mutation has
replaced it since, only the fields that still carry the failed value go back;
fields the newer mutation changed are kept. Either way the failed transition
is undone for every task of a batch.

Reloads keep the local value of every task with a write still pending.

State toggles are debounced per task: the UI sees every intermediate state,
the store only the last one within the quiet window. If that write fails the
task goes back to the last value the store is known to hold.
"""

import asyncio
import contextlib
import logging
import uuid
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Final, cast

from ..core.errors import InvalidOrderKeyError, PersistenceError
from ..core.ports import PersistencePort, RemoteWrite, ReorderMove
from . import lifecycle, order_key
from .containers import (
    GRAVEYARD,
    AnyContainerKey,
    ContainerKey,
    DayCounts,
    append_key,
    container_key_of,
    container_members,
    containers_for,
    counts_by_date,
    grouped_by_date,
    present_keys,
    sort_by_order,
)
from .debounce import Debouncer
from .task_models import Task, TaskCategory, TaskState, created_at_for

logger = logging.getLogger(__name__)

ALL_FIELDS: Final = frozenset({"text", "date", "category", "state", "created_at", "order", "punt_days"})
LOCATION_FIELDS: Final = frozenset({"date", "state", "punt_days"})

_MISSING: Final = object()


@dataclass(frozen=True, slots=True)
class Mutation:
    """
    What an operation changes.

    fields lists the Task attributes the remote write makes durable; it is used
    to keep the "last known stored value" of debounced tasks accurate.
    """

    name: str
    task_ids: tuple[str, ...]
    fields: frozenset[str] = ALL_FIELDS


class ChangeKind(StrEnum):
    LOAD = "load"
    UPDATE = "update"
    ROLLBACK = "rollback"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    kind: ChangeKind
    mutation: str
    task_ids: tuple[str, ...]
    containers: frozenset[AnyContainerKey]
    tasks: Mapping[str, Task] = field(repr=False)


TaskSubscriber = Callable[[ChangeEvent], None]


class ReconciliationEngine:
    def __init__(
        self,
        port: PersistencePort,
        *,
        debounce_seconds: float = 3.0,
        today: Callable[[], date] = date.today,
        resync_on_failure: bool = False,
    ) -> None:
        self._port = port
        self._today = today
        self._resync_on_failure = resync_on_failure

        self._tasks: dict[str, Task] = {}
        self._by_date: dict[date | None, set[str]] = defaultdict(set)

        self._subscribers: list[TaskSubscriber] = []
        self._debouncer = Debouncer(debounce_seconds)
        # task id -> last value the store is known to hold, while a debounced write is pending
        self._stored: dict[str, Task | None] = {}
        self._inflight: set[asyncio.Task[bool]] = set()
        # task id -> number of remote writes still in flight for it
        self._writing: Counter[str] = Counter()
        self._closed = False

        self.writes_ok = 0
        self.rollbacks = 0

    # ---- read side ----

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def today(self) -> date:
        return self._today()

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def require(self, task_id: str) -> Task:
        try:
            return self._tasks[task_id]
        except KeyError:
            raise KeyError(f"unknown task: {task_id}") from None

    def snapshot(self) -> Mapping[str, Task]:
        return MappingProxyType(dict(self._tasks))

    def dates(self) -> list[date]:
        return sorted(d for d, ids in self._by_date.items() if d is not None and ids)

    def tasks_on(self, day: date | None) -> list[Task]:
        return sort_by_order(self._tasks[i] for i in self._by_date.get(day, ()))

    def graveyard_tasks(self) -> list[Task]:
        return self.tasks_on(None)

    def containers(self) -> dict[AnyContainerKey, list[Task]]:
        return containers_for(self._tasks.values())

    def container(self, key: AnyContainerKey) -> list[Task]:
        return container_members(self._tasks.values(), key)

    def counts(self, category: TaskCategory | None = None) -> dict[date, DayCounts]:
        return counts_by_date(self._tasks.values(), category=category)

    def grouped(self, category: TaskCategory | None = None) -> dict[date, dict[TaskState, list[Task]]]:
        return grouped_by_date(self._tasks.values(), category=category)

    def find(self, prefix: str) -> Task:
        """Resolve a full id or a unique id prefix."""
        prefix = prefix.strip()
        if prefix in self._tasks:
            return self._tasks[prefix]
        hits = [t for tid, t in self._tasks.items() if prefix and tid.startswith(prefix)]
        if len(hits) == 1:
            return hits[0]
        if not hits:
            raise KeyError(f"unknown task: {prefix}")
        raise KeyError(f"ambiguous task id prefix: {prefix} ({len(hits)} matches)")

    @property
    def pending_writes(self) -> int:
        return len(self._debouncer) + len(self._inflight)

    @property
    def closed(self) -> bool:
        return self._closed

    # ---- subscribe / notify ----

    def subscribe(self, callback: TaskSubscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(
        self,
        kind: ChangeKind,
        mutation: str,
        task_ids: Iterable[str],
        containers: Iterable[AnyContainerKey] = (),
    ) -> None:
        if not self._subscribers:
            return
        event = ChangeEvent(
            kind=kind,
            mutation=mutation,
            task_ids=tuple(task_ids),
            containers=frozenset(containers),
            tasks=self.snapshot(),
        )
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber failed on %s/%s", kind.value, mutation)

    # ---- collection plumbing ----

    def _put(self, task_id: str, task: Task | None) -> None:
        old = self._tasks.get(task_id)
        if old is not None:
            self._by_date[old.date].discard(task_id)
        if task is None:
            self._tasks.pop(task_id, None)
            return
        self._tasks[task_id] = task
        self._by_date[task.date].add(task_id)

    def _replace_all(self, tasks: Iterable[Task]) -> None:
        self._tasks = {}
        self._by_date = defaultdict(set)
        for t in tasks:
            self._put(t.id, t)

    @staticmethod
    def _touched(*groups: Mapping[str, Task | None]) -> set[AnyContainerKey]:
        out: set[AnyContainerKey] = set()
        for group in groups:
            for t in group.values():
                if t is not None:
                    out.add(container_key_of(t))
        return out

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("reconciliation engine is closed")

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    # ---- optimistic apply / persist / rollback ----

    def apply(
        self,
        mutation: Mutation,
        changes: Mapping[str, Task | None],
        remote_write: RemoteWrite,
    ) -> asyncio.Task[bool]:
        """
        Apply `changes` (task id -> new value, None deletes) now and persist them
        in the background. The returned task resolves to False after a rollback.
        """
        self._ensure_open()
        before = {tid: self._tasks.get(tid) for tid in changes}
        written = dict(changes)
        for tid, new in written.items():
            self._put(tid, new)
        logger.debug("Optimistic %s tasks=%s", mutation.name, ",".join(mutation.task_ids))
        self._notify(ChangeKind.UPDATE, mutation.name, written, self._touched(before, written))
        self._hold(written)
        return self._spawn(self._persist(mutation, before, written, remote_write))

    async def _persist(
        self,
        mutation: Mutation,
        before: Mapping[str, Task | None],
        written: Mapping[str, Task | None],
        remote_write: RemoteWrite,
    ) -> bool:
        """Run one remote write; the caller has already held its task ids."""
        try:
            await remote_write()
        except asyncio.CancelledError:
            raise
        except PersistenceError as exc:
            logger.warning("Remote %s failed (%s); rolling back %d task(s)", mutation.name, exc, len(written))
        except Exception:
            logger.exception("Remote %s crashed; rolling back %d task(s)", mutation.name, len(written))
        else:
            self.writes_ok += 1
            self._mark_stored(mutation, written)
            return True
        finally:
            self._release(written)

        self._rollback(mutation, before, written)
        if self._resync_on_failure and not self._closed:
            self._spawn(self._resync())
        return False

    def _hold(self, task_ids: Iterable[str]) -> None:
        self._writing.update(task_ids)

    def _release(self, task_ids: Iterable[str]) -> None:
        self._writing.subtract(task_ids)
        for tid in [t for t, n in self._writing.items() if n <= 0]:
            del self._writing[tid]

    def _unsettled(self) -> set[str]:
        """Ids whose local value is newer than the store's: pending debounce or write in flight."""
        return set(self._stored) | set(self._writing)

    def _mark_stored(self, mutation: Mutation, written: Mapping[str, Task | None]) -> None:
        for tid, value in written.items():
            if tid not in self._stored:
                continue
            stored = self._stored[tid]
            if stored is None or value is None:
                self._stored[tid] = value
            else:
                self._stored[tid] = replace(
                    stored, **{f: getattr(value, f) for f in mutation.fields}
                )

    @staticmethod
    def _revert(
        current: Task | None,
        old: Task | None,
        new: Task | None,
        fields: frozenset[str],
    ) -> tuple[bool, Task | None]:
        """
        Undo the failed write old -> new on `current`.

        Fields a newer mutation has changed since are kept; the others go back
        to `old`. The flag is False when there is nothing to undo.
        """
        if current is new:
            return True, old
        if current is None or new is None:
            # Deleted since (that delete has its own rollback), or a failed
            # delete of a task that was somehow re-added.
            return False, current
        if old is None:
            # Created by the failed write: the store never had it.
            return True, None
        undo = {
            f: getattr(old, f)
            for f in fields
            if getattr(current, f) == getattr(new, f) and getattr(new, f) != getattr(old, f)
        }
        if not undo:
            return False, current
        return True, replace(current, **undo)

    def _rollback(
        self,
        mutation: Mutation,
        before: Mapping[str, Task | None],
        written: Mapping[str, Task | None],
    ) -> None:
        restored: dict[str, Task | None] = {}
        for tid, old in before.items():
            new = written.get(tid)
            # A newer debounce burst that started from the failed value must
            # fall back to what the store actually holds.
            if tid in self._stored:
                changed, fixed = self._revert(self._stored[tid], old, new, mutation.fields)
                if changed:
                    self._stored[tid] = fixed

            current = self._tasks.get(tid)
            changed, value = self._revert(current, old, new, mutation.fields)
            if not changed:
                logger.debug("Nothing to roll back for task=%s", tid)
                continue
            if current is not new:
                logger.debug("Partial rollback task=%s: keeping fields of a newer mutation", tid)
            self._put(tid, value)
            restored[tid] = value

        self.rollbacks += 1
        logger.info("Rolled back %s (%d/%d task(s) restored)", mutation.name, len(restored), len(before))
        if restored:
            self._notify(
                ChangeKind.ROLLBACK,
                mutation.name,
                restored,
                self._touched({t: written.get(t) for t in restored}, restored),
            )

    async def _resync(self) -> bool:
        try:
            await self.load()
        except Exception:
            logger.exception("Resync after rollback failed")
            return False
        return True

    def _apply_debounced(self, name: str, task_id: str, new: Task) -> None:
        """Show `new` immediately; write its state once the task has been quiet for the window."""
        self._ensure_open()
        current = self._tasks.get(task_id)
        if task_id not in self._stored:
            self._stored[task_id] = current

        self._put(task_id, new)
        logger.debug("Optimistic %s task=%s state=%s (debounced)", name, task_id, new.state.value)
        self._notify(
            ChangeKind.UPDATE, name, (task_id,), self._touched({task_id: current}, {task_id: new})
        )

        async def fire() -> None:
            stored = self._stored.pop(task_id, current)
            latest = self._tasks.get(task_id)
            if latest is None:
                return
            mutation = Mutation(name, (task_id,), frozenset({"state"}))
            state = latest.state

            async def write() -> None:
                await self._port.update(task_id, {"state": state})

            self._hold((task_id,))
            await self._spawn(self._persist(mutation, {task_id: stored}, {task_id: latest}, write))

        self._debouncer.schedule(task_id, fire)

    # ---- loading ----

    async def load(self, category: TaskCategory | None = None) -> int:
        """Replace the collection with the store's contents (dated + graveyard)."""
        self._ensure_open()
        dated = await self._port.fetch_all(category)
        buried = await self._port.fetch_graveyard(category)
        fetched = {t.id: t for t in [*dated, *buried]}

        for tid in list(self._stored):
            self._stored[tid] = fetched.get(tid)

        # Pending debounces and writes in flight are newer locally than in the store.
        for tid in self._unsettled():
            local = self._tasks.get(tid)
            if local is None:
                fetched.pop(tid, None)
            else:
                fetched[tid] = local

        self._replace_all(fetched.values())
        logger.info("Loaded %d task(s) (%d in graveyard)", len(self._tasks), len(buried))
        self._notify(ChangeKind.LOAD, "load", self._tasks, self._touched(self._tasks))
        return len(self._tasks)

    async def load_range(self, start: date, end: date) -> int:
        """Merge one date window from the store; other dates are left alone."""
        self._ensure_open()
        fetched = await self._port.fetch_for_range(start, end)
        unsettled = self._unsettled()
        for tid, t in list(self._tasks.items()):
            if t.date is not None and start <= t.date <= end and tid not in unsettled:
                self._put(tid, None)
        for t in fetched:
            if t.id not in unsettled:
                self._put(t.id, t)
        logger.info("Loaded %d task(s) for %s..%s", len(fetched), start, end)
        self._notify(ChangeKind.LOAD, "load_range", (t.id for t in fetched), self._touched({t.id: t for t in fetched}))
        return len(fetched)

    # ---- single-task entry points ----

    def create_task(
        self,
        text: str,
        day: date,
        category: TaskCategory = TaskCategory.LIFE,
        *,
        task_id: str | None = None,
        created_at: datetime | None = None,
    ) -> Task:
        text = (text or "").strip()
        if not text:
            raise ValueError("text is required")
        tid = task_id or uuid.uuid4().hex
        if tid in self._tasks:
            raise ValueError(f"task id already exists: {tid}")

        members = self.container(ContainerKey(day, category, TaskState.ACTIVE))
        task = Task(
            id=tid,
            text=text,
            date=day,
            category=category,
            state=TaskState.ACTIVE,
            created_at=created_at or created_at_for(day),
            order=append_key(members),
        )
        self.apply(Mutation("create", (tid,)), {tid: task}, lambda: self._port.create(task))
        return task

    def update_text(self, task_id: str, text: str) -> asyncio.Task[bool] | None:
        task = self.require(task_id)
        text = (text or "").strip()
        if not text or text == task.text:
            return None
        return self.apply(
            Mutation("update_text", (task_id,), frozenset({"text"})),
            {task_id: lifecycle.with_text(task, text)},
            lambda: self._port.update(task_id, {"text": text}),
        )

    def delete_task(self, task_id: str) -> asyncio.Task[bool]:
        task = self.require(task_id)
        # A delete makes any pending state write pointless; roll back to what the store holds.
        if self._debouncer.cancel(task_id):
            stored = self._stored.pop(task_id, task)
            if stored is not None and stored is not task:
                self._put(task_id, stored)
        return self.apply(
            Mutation("delete", (task_id,)),
            {task_id: None},
            lambda: self._port.delete(task_id),
        )

    def toggle(self, task_id: str) -> None:
        task = self.require(task_id)
        self._apply_debounced("toggle", task_id, lifecycle.toggle(task))

    def set_state(self, task_id: str, state: TaskState) -> None:
        task = self.require(task_id)
        new = lifecycle.set_state(task, TaskState(state))
        if new is task:
            return
        self._apply_debounced("set_state", task_id, new)

    def punt(self, task_id: str) -> asyncio.Task[bool]:
        task = self.require(task_id)
        moved = lifecycle.punt(task, today=self._today())
        return self.apply(
            Mutation("punt", (task_id,), LOCATION_FIELDS),
            {task_id: moved},
            lambda: self._port.update(task_id, {"date": moved.date, "state": TaskState.ACTIVE}),
        )

    def graveyard(self, task_id: str) -> asyncio.Task[bool] | None:
        task = self.require(task_id)
        if task.in_graveyard:
            return None
        return self.apply(
            Mutation("graveyard", (task_id,), LOCATION_FIELDS),
            {task_id: lifecycle.graveyard(task)},
            lambda: self._port.batch_graveyard([task_id]),
        )

    def resurrect(self, task_id: str, target_date: date) -> asyncio.Task[bool]:
        task = self.require(task_id)
        if not task.in_graveyard:
            raise ValueError(f"task {task_id} is not in the graveyard")
        return self.apply(
            Mutation("resurrect", (task_id,), LOCATION_FIELDS),
            {task_id: lifecycle.resurrect(task, target_date)},
            lambda: self._port.resurrect(task_id, target_date),
        )

    # ---- batch entry points (one remote call, all-or-nothing rollback) ----

    def punt_all(
        self,
        source_date: date,
        task_ids: Sequence[str] | None = None,
        *,
        category: TaskCategory | None = None,
    ) -> asyncio.Task[bool] | None:
        """
        Punt several tasks from one day. Without task_ids, every active task on
        source_date (optionally of one category) is punted.
        """
        candidates = self._batch_members(source_date, task_ids, category)
        if not candidates:
            return None
        today = self._today()
        target = lifecycle.punt_target(source_date, today)
        moved = lifecycle.punt_all(candidates, today=today, from_date=source_date)
        ids = [t.id for t in moved]
        return self.apply(
            Mutation("punt_all", tuple(ids), LOCATION_FIELDS),
            {t.id: t for t in moved},
            lambda: self._port.batch_punt(ids, source_date, target),
        )

    def set_state_all(self, task_ids: Sequence[str], state: TaskState) -> asyncio.Task[bool] | None:
        state = TaskState(state)
        tasks = [self.require(tid) for tid in dict.fromkeys(task_ids)]
        if not tasks:
            return None
        updated = lifecycle.set_state_all(tasks, state)
        ids = [t.id for t in updated]
        return self.apply(
            Mutation(f"set_state_all:{state.value}", tuple(ids), frozenset({"state"})),
            {t.id: t for t in updated},
            lambda: self._port.batch_set_state(ids, state),
        )

    def fail_all(
        self,
        source_date: date,
        task_ids: Sequence[str] | None = None,
        *,
        category: TaskCategory | None = None,
    ) -> asyncio.Task[bool] | None:
        candidates = self._batch_members(source_date, task_ids, category)
        return self.set_state_all([t.id for t in candidates], TaskState.FAILED)

    def graveyard_all(self, task_ids: Sequence[str]) -> asyncio.Task[bool] | None:
        tasks = [t for t in (self.require(tid) for tid in dict.fromkeys(task_ids)) if not t.in_graveyard]
        if not tasks:
            return None
        buried = lifecycle.graveyard_all(tasks)
        ids = [t.id for t in buried]
        return self.apply(
            Mutation("graveyard_all", tuple(ids), LOCATION_FIELDS),
            {t.id: t for t in buried},
            lambda: self._port.batch_graveyard(ids),
        )

    def _batch_members(
        self,
        source_date: date,
        task_ids: Sequence[str] | None,
        category: TaskCategory | None,
    ) -> list[Task]:
        if task_ids is None:
            return [
                t
                for t in self.tasks_on(source_date)
                if t.state is TaskState.ACTIVE and (category is None or t.category is category)
            ]
        out: list[Task] = []
        for tid in dict.fromkeys(task_ids):
            t = self.require(tid)
            if t.date != source_date:
                logger.warning("Batch skips task=%s: dated %s, not %s", tid, t.date, source_date)
                continue
            out.append(t)
        return out

    # ---- ordering ----

    def reorder(self, task_id: str, target: AnyContainerKey, index: int) -> asyncio.Task[bool]:
        """
        Place a task at `index` of the target container (the task itself excluded
        from the index). Crossing into another dated container relocates the task;
        the graveyard is only reachable through graveyard().
        """
        task = self.require(task_id)
        source = container_key_of(task)
        if target is GRAVEYARD and source is not GRAVEYARD:
            raise ValueError("use graveyard() to move a task into the graveyard")

        members = container_members(self._tasks.values(), target, exclude=(task_id,))
        key = self._key_at(members, index)

        if target == source:
            moved = lifecycle.with_order(task, key)
        else:
            dest = cast(ContainerKey, target)
            moved = lifecycle.with_order(
                lifecycle.relocate(task, target_date=dest.date, category=dest.category, state=dest.state),
                key,
            )

        extra = self._changed_container_fields(task, moved)
        return self.apply(
            Mutation("reorder", (task_id,), frozenset({"order", "punt_days", *extra})),
            {task_id: moved},
            lambda: self._port.reorder(task_id, key, **extra),
        )

    def move_to_top(self, task_id: str) -> asyncio.Task[bool] | None:
        task = self.require(task_id)
        siblings = container_members(self._tasks.values(), container_key_of(task), exclude=(task_id,))
        if not siblings:
            return None
        return self.reorder(task_id, container_key_of(task), 0)

    def reorder_many(self, task_ids: Sequence[str], target: AnyContainerKey, index: int) -> asyncio.Task[bool] | None:
        """Drop several tasks together at `index`; they keep their relative order."""
        ids = list(dict.fromkeys(task_ids))
        if not ids:
            return None
        tasks = sort_by_order(self.require(tid) for tid in ids)
        if target is GRAVEYARD and any(not t.in_graveyard for t in tasks):
            raise ValueError("use graveyard_all() to move tasks into the graveyard")

        members = container_members(self._tasks.values(), target, exclude=ids)
        keys = present_keys(members)
        index = max(0, min(int(index), len(keys)))
        lower = keys[index - 1] if index > 0 else None
        upper = keys[index] if index < len(keys) else None
        try:
            new_keys = order_key.spread(lower, upper, len(tasks))
        except InvalidOrderKeyError:
            logger.warning("No room at index %d of %s; appending %d task(s)", index, target, len(tasks))
            new_keys = order_key.spread(max(keys) if keys else None, None, len(tasks))

        changes: dict[str, Task | None] = {}
        moves: list[ReorderMove] = []
        fields = {"order"}
        for t, key in zip(tasks, new_keys):
            if isinstance(target, ContainerKey) and container_key_of(t) != target:
                moved = lifecycle.relocate(t, target_date=target.date, category=target.category, state=target.state)
            else:
                moved = t
            moved = lifecycle.with_order(moved, key)
            extra = self._changed_container_fields(t, moved)
            fields.update(extra)
            changes[t.id] = moved
            moves.append(ReorderMove(id=t.id, order=key, **extra))

        return self.apply(
            Mutation("reorder_many", tuple(changes), frozenset(fields)),
            changes,
            lambda: self._port.batch_reorder(moves),
        )

    @staticmethod
    def _key_at(members: list[Task], index: int) -> str:
        try:
            return order_key.for_index(present_keys(members), index)
        except InvalidOrderKeyError as exc:
            # Duplicate neighbours leave no room at that spot: append instead.
            logger.warning("Cannot place at index %d (%s); appending", index, exc)
            return append_key(members)

    @staticmethod
    def _changed_container_fields(old: Task, new: Task) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if new.date != old.date:
            out["date"] = new.date
        if new.category is not old.category:
            out["category"] = new.category
        if new.state is not old.state:
            out["state"] = new.state
        return out

    # ---- lifecycle of the engine itself ----

    async def flush(self) -> None:
        """Send debounced writes now."""
        await self._debouncer.flush()

    async def drain(self) -> None:
        """Wait until every in-flight remote write has completed or rolled back."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def close(self) -> None:
        """
        Tear down: pending debounced writes are cancelled (never sent) and
        subscribers are dropped. In-flight writes run to completion.
        """
        if self._closed:
            return
        cancelled = self._debouncer.cancel_all()
        self._stored.clear()
        self._subscribers.clear()
        self._closed = True
        logger.info("Reconciliation engine closed (cancelled %d pending write(s))", cancelled)

    async def aclose(self, *, flush: bool = True) -> None:
        """Graceful shutdown: optionally send debounced writes, wait for in-flight ones, close."""
        if self._closed:
            return
        if flush:
            await self.flush()
        await self.drain()
        self.close()
