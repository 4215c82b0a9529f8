# src/flowdesk/tasks/views.py

"""
Per-page presentation state.

Each view owns `loading` / `error`, loads through the coordinator, and keeps
rendering whatever it already has when a load fails: no failure escapes a
view's `load()`. Derived facts are recomputed from the store on every access.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from ..core.session import SessionContext
from ..errors import NotFoundError, TrackerError, friendly_error_message
from .coordinator import MutationCoordinator
from .derive import (
    DashboardSummary,
    Histogram,
    Workload,
    group_by_stage,
    is_overdue,
    member_workload,
    split_members_by_role,
)
from .filters import TaskFilter
from .models import Project, Task, TaskStatus, User
from .store import EntityStore

logger = logging.getLogger(__name__)

PROJECTS_ROUTE = "/projects"


def utcnow() -> datetime:
    return datetime.now(UTC)


class _View:
    def __init__(self, coordinator: MutationCoordinator) -> None:
        self._coordinator = coordinator
        self.loading = False
        self.error: str | None = None

    @property
    def store(self) -> EntityStore:
        return self._coordinator.store

    def _record_failure(self, err: TrackerError, fallback: str) -> None:
        self.error = friendly_error_message(err, fallback)
        logger.info("%s load failed: %s", type(self).__name__, self.error)


@dataclass(frozen=True, slots=True)
class TaskCard:
    """One board card: the task plus its render-time overdue flag."""

    task: Task
    overdue: bool


def _cards(tasks: tuple[Task, ...], now: datetime) -> tuple[TaskCard, ...]:
    return tuple(TaskCard(task=t, overdue=is_overdue(t, now)) for t in tasks)


class DashboardView(_View):
    def __init__(self, coordinator: MutationCoordinator) -> None:
        super().__init__(coordinator)
        self.summary: DashboardSummary | None = None

    async def load(self) -> None:
        self.loading = True
        try:
            self.summary = await self._coordinator.load_dashboard()
            self.error = None
        except TrackerError as e:
            self._record_failure(e, "Failed to load dashboard")
        finally:
            self.loading = False

    @property
    def status_histogram(self) -> Histogram | None:
        return self.summary.status_histogram if self.summary else None

    @property
    def priority_histogram(self) -> Histogram | None:
        return self.summary.priority_histogram if self.summary else None

    def recent_cards(self, now: datetime | None = None) -> tuple[TaskCard, ...]:
        if self.summary is None:
            return ()
        return _cards(self.summary.recent_tasks, now or utcnow())


class ProjectsView(_View):
    def __init__(self, coordinator: MutationCoordinator, session: SessionContext) -> None:
        super().__init__(coordinator)
        self._session = session

    @property
    def can_manage(self) -> bool:
        """Create/delete controls are shown to admins only."""
        return self._session.is_admin

    @property
    def projects(self) -> tuple[Project, ...]:
        return self.store.projects()

    async def load(self) -> None:
        self.loading = True
        try:
            await self._coordinator.load_projects()
            self.error = None
        except TrackerError as e:
            self._record_failure(e, "Failed to load projects")
        finally:
            self.loading = False


class ProjectDetailView(_View):
    def __init__(self, coordinator: MutationCoordinator, project_id: str) -> None:
        super().__init__(coordinator)
        self.project_id = project_id
        self.project: Project | None = None
        # Set when the project no longer exists; the caller navigates there.
        self.redirect_to: str | None = None

    async def load(self) -> None:
        self.loading = True
        try:
            project, _, _ = await asyncio.gather(
                self._coordinator.load_project(self.project_id),
                self._coordinator.load_tasks(TaskFilter(project_id=self.project_id)),
                self._coordinator.load_members(),
            )
            self.project = project
            self.error = None
        except NotFoundError:
            self.project = None
            self.redirect_to = PROJECTS_ROUTE
        except TrackerError as e:
            self._record_failure(e, "Failed to load project")
            # The page has nothing to show without its project.
            if self.project is None:
                self.redirect_to = PROJECTS_ROUTE
        finally:
            self.loading = False

    @property
    def tasks(self) -> tuple[Task, ...]:
        return tuple(t for t in self.store.tasks() if t.project_id == self.project_id)

    def board(self, now: datetime | None = None) -> dict[TaskStatus, tuple[TaskCard, ...]]:
        now = now or utcnow()
        return {stage: _cards(tasks, now) for stage, tasks in group_by_stage(self.tasks).items()}


class TaskBoardView(_View):
    def __init__(self, coordinator: MutationCoordinator) -> None:
        super().__init__(coordinator)
        self.task_filter = TaskFilter()

    async def load(self) -> None:
        self.loading = True
        try:
            await self._coordinator.load_tasks(self.task_filter)
            self.error = None
        except TrackerError as e:
            self._record_failure(e, "Failed to load tasks")
        finally:
            self.loading = False

    async def set_filter(self, name: str, value: Any) -> bool:
        """Change one filter; refetches only if the result set can change."""
        updated = self.task_filter.with_value(name, value)
        if updated == self.task_filter:
            return False
        self.task_filter = updated
        await self.load()
        return True

    async def clear_filters(self) -> bool:
        if not self.task_filter.any_active:
            return False
        self.task_filter = self.task_filter.cleared()
        await self.load()
        return True

    @property
    def show_reset(self) -> bool:
        return self.task_filter.any_active

    @property
    def tasks(self) -> tuple[Task, ...]:
        return self.store.tasks()

    @property
    def count_label(self) -> str:
        n = len(self.tasks)
        return f"{n} task{'' if n == 1 else 's'} found"

    def board(self, now: datetime | None = None) -> dict[TaskStatus, tuple[TaskCard, ...]]:
        now = now or utcnow()
        return {stage: _cards(tasks, now) for stage, tasks in group_by_stage(self.tasks).items()}


class TeamView(_View):
    """
    Members and their workload.

    Always loads the full, unfiltered task set: workload figures are only
    meaningful over every task of the organization.
    """

    async def load(self) -> None:
        self.loading = True
        try:
            await asyncio.gather(
                self._coordinator.load_members(),
                self._coordinator.load_tasks(TaskFilter()),
            )
            self.error = None
        except TrackerError as e:
            self._record_failure(e, "Failed to load team")
        finally:
            self.loading = False

    @property
    def members(self) -> tuple[User, ...]:
        return self.store.members()

    @property
    def workload(self) -> dict[str, Workload]:
        return member_workload(self.members, self.store.tasks())

    @property
    def admins(self) -> tuple[User, ...]:
        return split_members_by_role(self.members)[0]

    @property
    def regular_members(self) -> tuple[User, ...]:
        return split_members_by_role(self.members)[1]
