# src/daybook/core/errors.py

from __future__ import annotations


class PersistenceError(Exception):
    """A store call failed (transport error, non-success status, database error)."""


class TaskNotFoundError(PersistenceError):
    """The store reports that the target task no longer exists."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"task not found: {task_id}")
        self.task_id = task_id


class InvalidOrderKeyError(ValueError):
    """An order key is malformed, or a lower bound is not below its upper bound."""
