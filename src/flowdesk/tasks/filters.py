# src/flowdesk/tasks/filters.py

"""
Task filter composition.

A TaskFilter is an immutable set of optional predicates (stage, priority,
project). A task matches when it satisfies every predicate that is set, so
filters commute and reapplying the same filter changes nothing.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any

from .models import Task, TaskPriority, TaskStatus

FILTER_NAMES: tuple[str, ...] = ("status", "priority", "project")

# Filter name -> query parameter expected by GET /tasks.
_QUERY_KEYS = {"status": "status", "priority": "priority", "project": "projectId"}


@dataclass(frozen=True, slots=True)
class TaskFilter:
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    project_id: str | None = None

    def with_value(self, name: str, value: Any) -> TaskFilter:
        """
        Return a copy with one filter set (or cleared when value is None/"").

        Raises ValueError for unknown filter names or out-of-range values.
        """
        if isinstance(value, str):
            value = value.strip()
        empty = value is None or value == ""

        if name == "status":
            return replace(self, status=None if empty else TaskStatus.from_api(value))
        if name == "priority":
            return replace(self, priority=None if empty else TaskPriority(str(value)))
        if name == "project":
            return replace(self, project_id=None if empty else str(value))
        raise ValueError(f"unknown filter: {name!r} (expected one of {', '.join(FILTER_NAMES)})")

    def cleared(self) -> TaskFilter:
        return TaskFilter()

    @property
    def any_active(self) -> bool:
        return self.status is not None or self.priority is not None or self.project_id is not None

    def to_query(self) -> dict[str, str]:
        """Canonical query parameters: only set filters, always in the same key order."""
        out: dict[str, str] = {}
        if self.status is not None:
            out[_QUERY_KEYS["status"]] = self.status.value
        if self.priority is not None:
            out[_QUERY_KEYS["priority"]] = self.priority.value
        if self.project_id is not None:
            out[_QUERY_KEYS["project"]] = self.project_id
        return out

    def matches(self, task: Task) -> bool:
        if self.status is not None and task.status is not self.status:
            return False
        if self.priority is not None and task.priority is not self.priority:
            return False
        if self.project_id is not None and task.project_id != self.project_id:
            return False
        return True

    def apply(self, tasks: Iterable[Task]) -> tuple[Task, ...]:
        return tuple(t for t in tasks if self.matches(t))
