# src/daybook/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from pathlib import Path
from typing import Any

from .task_models import Task, TaskCategory, TaskState, derive_punt_days, parse_date, parse_timestamp

logger = logging.getLogger(__name__)

# Task attribute -> column. `completed` is written alongside `state`, never on its own.
_COLUMNS = {
    "text": "text",
    "date": "date",
    "category": "category",
    "state": "state",
    "order": '"order"',
}


class BatchMismatchError(LookupError):
    """A batch statement matched fewer rows than ids given; nothing was committed."""

    def __init__(self, expected: int, matched: int) -> None:
        super().__init__(f"batch matched {matched} of {expected} task(s)")
        self.expected = expected
        self.matched = matched


class TaskStore:
    """
    SQLite task store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Batch methods run in one transaction and roll back unless every id matched.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except Exception:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    text TEXT NOT NULL DEFAULT '',
                    completed INTEGER NOT NULL DEFAULT 0,
                    date TEXT,
                    created_at TEXT NOT NULL,
                    category TEXT NOT NULL DEFAULT 'life',
                    state TEXT,
                    "order" TEXT
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name.strip('"') in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            # Early databases only knew text/completed/date.
            add_col("created_at", "TEXT NOT NULL DEFAULT ''")
            add_col("category", "TEXT NOT NULL DEFAULT 'life'")
            add_col("state", "TEXT")
            add_col('"order"', "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_date ON tasks(date, category, state)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        task_date = parse_date(row["date"])
        created_at = parse_timestamp(row["created_at"] or None, fallback_day=task_date)
        return Task(
            id=str(row["id"]),
            text=str(row["text"] or ""),
            date=task_date,
            category=TaskCategory.from_db(row["category"]),
            state=TaskState.from_db(row["state"], completed=bool(row["completed"])),
            created_at=created_at,
            order=row["order"] or None,
            punt_days=derive_punt_days(created_at, task_date),
        )

    @staticmethod
    def _to_db(name: str, value: Any) -> Any:
        if value is None:
            return None
        if name == "date":
            return value.isoformat() if isinstance(value, date) else str(value)[:10]
        if name in ("category", "state"):
            return str(getattr(value, "value", value))
        return value

    def _assignments(self, fields: Mapping[str, Any]) -> tuple[list[str], list[Any]]:
        sets: list[str] = []
        params: list[Any] = []
        for name, value in fields.items():
            col = _COLUMNS.get(name)
            if col is None:
                raise ValueError(f"unknown task field: {name}")
            sets.append(f"{col} = ?")
            params.append(self._to_db(name, value))
            if name == "state":
                sets.append("completed = ?")
                params.append(1 if self._to_db(name, value) == TaskState.COMPLETED.value else 0)
        return sets, params

    def _select(self, where: str = "", params: Iterable[Any] = ()) -> list[Task]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(f'SELECT * FROM tasks {where} ORDER BY date, "order" IS NULL, "order", id', tuple(params))
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    def _run_batch(self, statements: Sequence[tuple[str, Sequence[Any]]]) -> int:
        """Run statements in one transaction; each must touch exactly one row per id."""
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            matched = 0
            expected = 0
            for sql, params in statements:
                cur.execute(sql, tuple(params))
                matched += cur.rowcount
                expected += 1
            if matched != expected:
                conn.rollback()
                raise BatchMismatchError(expected, matched)
            conn.commit()
            return matched
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ---- public API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM tasks")
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(self, task: Task) -> None:
        if not task.id:
            raise ValueError("id is required")

        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO tasks(id, text, completed, date, created_at, category, state, "order")
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.id,
                    task.text,
                    1 if task.completed else 0,
                    self._to_db("date", task.date),
                    task.created_at.isoformat(),
                    task.category.value,
                    task.state.value,
                    task.order,
                ),
            )
            conn.commit()
            logger.debug("Task added id=%s date=%s category=%s", task.id, task.date, task.category.value)
        finally:
            conn.close()

    def get_task(self, task_id: str) -> Task | None:
        rows = self._select("WHERE id = ?", (task_id,))
        return rows[0] if rows else None

    def update_task_fields(self, task_id: str, fields: Mapping[str, Any]) -> bool:
        """Patch the given fields; False if no such task. An empty patch only checks existence."""
        if not fields:
            return self.get_task(task_id) is not None

        sets, params = self._assignments(fields)
        params.append(task_id)
        conn = self._get_conn()
        try:
            cur = conn.execute(f"UPDATE tasks SET {', '.join(sets)} WHERE id = ?", params)
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def delete_task(self, task_id: str) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def punt_tasks(self, task_ids: Sequence[str], source_date: date, target_date: date) -> int:
        """Move tasks dated source_date to target_date and make them active again."""
        return self._run_batch(
            [
                (
                    "UPDATE tasks SET date = ?, state = 'active', completed = 0 WHERE id = ? AND date = ?",
                    (target_date.isoformat(), tid, source_date.isoformat()),
                )
                for tid in task_ids
            ]
        )

    def set_state_many(self, task_ids: Sequence[str], state: TaskState) -> int:
        completed = 1 if state is TaskState.COMPLETED else 0
        return self._run_batch(
            [
                ("UPDATE tasks SET state = ?, completed = ? WHERE id = ?", (state.value, completed, tid))
                for tid in task_ids
            ]
        )

    def graveyard_many(self, task_ids: Sequence[str]) -> int:
        return self._run_batch(
            [
                ("UPDATE tasks SET date = NULL, state = 'active', completed = 0 WHERE id = ?", (tid,))
                for tid in task_ids
            ]
        )

    def reorder_many(self, moves: Sequence[Mapping[str, Any]]) -> int:
        """Each move is {"id": ..., "order": ..., optional date/category/state}."""
        statements: list[tuple[str, Sequence[Any]]] = []
        for move in moves:
            fields = {k: v for k, v in move.items() if k != "id"}
            if not fields.get("order"):
                raise ValueError(f"order is required (task {move.get('id')})")
            sets, params = self._assignments(fields)
            statements.append((f"UPDATE tasks SET {', '.join(sets)} WHERE id = ?", [*params, move["id"]]))
        return self._run_batch(statements)

    def resurrect_task(self, task_id: str, target_date: date) -> bool:
        return self.update_task_fields(task_id, {"date": target_date, "state": TaskState.ACTIVE})

    def list_tasks(self, category: TaskCategory | None = None) -> list[Task]:
        """All dated tasks."""
        if category is None:
            return self._select("WHERE date IS NOT NULL")
        return self._select("WHERE date IS NOT NULL AND category = ?", (category.value,))

    def list_tasks_between(self, start: date, end: date) -> list[Task]:
        return self._select("WHERE date >= ? AND date <= ?", (start.isoformat(), end.isoformat()))

    def list_graveyard(self, category: TaskCategory | None = None) -> list[Task]:
        if category is None:
            return self._select("WHERE date IS NULL")
        return self._select("WHERE date IS NULL AND category = ?", (category.value,))
