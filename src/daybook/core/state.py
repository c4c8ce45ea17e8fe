# src/daybook/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from ..tasks.reconcile import ReconciliationEngine
from ..tasks.task_models import TaskCategory
from .ports import PersistencePort


@dataclass
class AppState:
    """
    Application state shared by connectors and commands.

    The engine is the only owner of the task collection; everything else reads
    its snapshots.
    """

    settings: Any
    port: PersistencePort
    engine: ReconciliationEngine

    default_category: TaskCategory = TaskCategory.LIFE
    # Date shown by /ls when none is given.
    focus_date: date | None = None
    notices: list[str] = field(default_factory=list)
