# src/flowdesk/tasks/derive.py

"""
Derived views over the entity store.

Everything here is a pure function of its arguments: nothing is cached and
nothing touches the network. Time-dependent facts (overdue) take `now`
explicitly so callers re-evaluate them on every render.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .models import PRIORITIES, STAGES, Project, Task, TaskPriority, TaskStatus, User

logger = logging.getLogger(__name__)

# Dashboard shows priorities most-urgent first.
PRIORITY_DISPLAY_ORDER: tuple[TaskPriority, ...] = (TaskPriority.HIGH, TaskPriority.MEDIUM, TaskPriority.LOW)

DEFAULT_RECENT_LIMIT = 5


def group_by_stage(tasks: Iterable[Task]) -> dict[TaskStatus, tuple[Task, ...]]:
    """Partition tasks into the four stage buckets, keeping input order inside each."""
    buckets: dict[TaskStatus, list[Task]] = {stage: [] for stage in STAGES}
    for task in tasks:
        buckets[task.status].append(task)
    return {stage: tuple(items) for stage, items in buckets.items()}


def is_overdue(task: Task, now: datetime) -> bool:
    if task.due_date is None:
        return False
    return task.due_date < now and task.status is not TaskStatus.DONE


def completion_percentage(done: int, total: int) -> int:
    """round(done / total * 100), 0 for an empty set. Halves round up."""
    if total <= 0:
        return 0
    pct = math.floor(done * 100 / total + 0.5)
    return max(0, min(100, pct))


@dataclass(frozen=True, slots=True)
class Histogram:
    """Counts per category plus the scale used to draw bars (never below 1)."""

    counts: dict[str, int]
    max_count: int

    def bar_percent(self, category: str) -> float:
        return self.counts.get(category, 0) / self.max_count * 100


def histogram(counts: Mapping[str, int], categories: Sequence[str]) -> Histogram:
    ordered = {str(c): int(counts.get(str(c), 0) or 0) for c in categories}
    return Histogram(counts=ordered, max_count=max([*ordered.values(), 1]))


def stage_histogram(tasks: Iterable[Task]) -> Histogram:
    grouped = group_by_stage(tasks)
    return histogram({s.value: len(items) for s, items in grouped.items()}, [s.value for s in STAGES])


def priority_histogram(tasks: Iterable[Task]) -> Histogram:
    counts: dict[str, int] = {p.value: 0 for p in PRIORITIES}
    for task in tasks:
        counts[task.priority.value] += 1
    return histogram(counts, [p.value for p in PRIORITY_DISPLAY_ORDER])


@dataclass(frozen=True, slots=True)
class DashboardSummary:
    total_projects: int
    total_tasks: int
    done_tasks: int
    completed_percentage: int
    overdue_tasks: int
    tasks_by_status: dict[str, int]
    tasks_by_priority: dict[str, int]
    recent_tasks: tuple[Task, ...] = field(default_factory=tuple)

    @property
    def status_histogram(self) -> Histogram:
        return histogram(self.tasks_by_status, [s.value for s in STAGES])

    @property
    def priority_histogram(self) -> Histogram:
        return histogram(self.tasks_by_priority, [p.value for p in PRIORITY_DISPLAY_ORDER])

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> DashboardSummary:
        by_status = payload.get("tasksByStatus") or {}
        by_priority = payload.get("tasksByPriority") or {}
        return cls(
            total_projects=int(payload.get("totalProjects") or 0),
            total_tasks=int(payload.get("totalTasks") or 0),
            done_tasks=int(payload.get("doneTasks") or 0),
            completed_percentage=int(payload.get("completedPercentage") or 0),
            overdue_tasks=int(payload.get("overdueTasks") or 0),
            tasks_by_status={s.value: int(by_status.get(s.value, 0) or 0) for s in STAGES},
            tasks_by_priority={p.value: int(by_priority.get(p.value, 0) or 0) for p in PRIORITIES},
            # Server already sorted newest-first and truncated; keep that order.
            recent_tasks=_recent_from_api(payload.get("recentTasks") or []),
        )


def _recent_from_api(raw_tasks: Iterable[Any]) -> tuple[Task, ...]:
    # Malformed entries are skipped, as in list loads.
    out: list[Task] = []
    for raw in raw_tasks:
        try:
            out.append(Task.from_api(raw))
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning("Skipping malformed recent task %r: %s", raw, e)
    return tuple(out)


def build_dashboard(
    projects: Sequence[Project],
    tasks: Sequence[Task],
    now: datetime,
    *,
    recent_limit: int = DEFAULT_RECENT_LIMIT,
) -> DashboardSummary:
    """
    Compute the dashboard from loaded records.

    `tasks` is expected in service order (newest first); the recent list is
    its head, not a re-sort.
    """
    grouped = group_by_stage(tasks)
    done = len(grouped[TaskStatus.DONE])
    by_priority: dict[str, int] = {p.value: 0 for p in PRIORITIES}
    for task in tasks:
        by_priority[task.priority.value] += 1
    return DashboardSummary(
        total_projects=len(projects),
        total_tasks=len(tasks),
        done_tasks=done,
        completed_percentage=completion_percentage(done, len(tasks)),
        overdue_tasks=sum(1 for t in tasks if is_overdue(t, now)),
        tasks_by_status={s.value: len(items) for s, items in grouped.items()},
        tasks_by_priority=by_priority,
        recent_tasks=tuple(tasks[: max(0, recent_limit)]),
    )


@dataclass(frozen=True, slots=True)
class Workload:
    assigned_total: int = 0
    done_total: int = 0

    @property
    def percentage(self) -> int:
        return completion_percentage(self.done_total, self.assigned_total)


def member_workload(members: Iterable[User], tasks: Iterable[Task]) -> dict[str, Workload]:
    """
    Assigned/done counts per member over the tasks passed in.

    Only reflects the task set given: callers pass the full unfiltered list.
    Unassigned tasks and assignees missing from `members` are skipped.
    """
    totals: dict[str, list[int]] = {m.id: [0, 0] for m in members}
    for task in tasks:
        assignee_id = task.assignee_id
        if assignee_id is None:
            continue
        counts = totals.get(assignee_id)
        if counts is None:
            continue
        counts[0] += 1
        if task.status is TaskStatus.DONE:
            counts[1] += 1
    return {member_id: Workload(assigned, done) for member_id, (assigned, done) in totals.items()}


def split_members_by_role(members: Iterable[User]) -> tuple[tuple[User, ...], tuple[User, ...]]:
    """(admins, regular members), each in input order."""
    admins: list[User] = []
    regular: list[User] = []
    for m in members:
        (admins if m.is_admin else regular).append(m)
    return tuple(admins), tuple(regular)


def initials(name: str) -> str:
    parts = [p for p in (name or "").split() if p]
    return "".join(p[0] for p in parts).upper()[:2]


def excerpt(text: str | None, limit: int = 80) -> str:
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + "…"
