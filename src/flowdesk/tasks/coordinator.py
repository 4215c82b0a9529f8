# src/flowdesk/tasks/coordinator.py

"""
Loads and mutations against the tracker service.

Policy per mutation kind:
- create / edit (projects, tasks): send, then refetch the affected collection;
  nothing is inserted locally, so ids and ordering always come from the service
- stage change: the store is patched before the request resolves; on failure
  the status is reverted and the error surfaced
- delete: blocking confirmation, then optimistic removal; on failure the record
  is put back where it was and the error surfaced

No retries anywhere. Every failure is reported once through `notify` and
re-raised so the calling view can keep its own error state.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

from ..core.ports import Confirmer, Notifier, Payload, TrackerApi
from ..errors import NotFoundError, RequiredFieldError, ServerError, TrackerError, friendly_error_message
from .derive import DashboardSummary
from .filters import TaskFilter
from .models import Project, ProjectDraft, Task, TaskDraft, TaskStatus, User
from .store import MEMBERS, PROJECTS, TASKS, EntityStore, PendingMutation

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _quiet(message: str, is_error: bool) -> None:
    return


def _parse_many(factory: Callable[[Payload], T], payloads: Iterable[Any], what: str) -> list[T]:
    """Parse a list response, skipping records the client cannot represent."""
    out: list[T] = []
    for raw in payloads or []:
        if not isinstance(raw, dict):
            logger.warning("Skipping non-object %s record: %r", what, raw)
            continue
        try:
            out.append(factory(raw))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning("Skipping malformed %s record id=%s: %s", what, raw.get("_id"), e)
    return out


class MutationCoordinator:
    def __init__(
        self,
        api: TrackerApi,
        store: EntityStore,
        *,
        confirm: Confirmer,
        notify: Notifier | None = None,
    ) -> None:
        self._api = api
        self._store = store
        self._confirm = confirm
        self._notify = notify or _quiet
        self._task_filter = TaskFilter()

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def task_filter(self) -> TaskFilter:
        """Filter of the last task load; task refetches reuse it."""
        return self._task_filter

    # ---- helpers ----

    def _fail(self, err: TrackerError, fallback: str) -> None:
        self._notify(friendly_error_message(err, fallback), True)
        if self._notify is not _quiet:
            err.reported = True

    async def _refetch(self, load: Callable[[], Awaitable[Any]], fallback: str) -> None:
        # The mutation itself already succeeded; a failed refetch only leaves
        # the previous snapshot on screen.
        try:
            await load()
        except TrackerError as e:
            logger.info("Refetch after mutation failed: %s", e.message)
            self._fail(e, fallback)

    # ---- loads ----

    async def load_projects(self) -> tuple[Project, ...]:
        seq = self._store.begin_fetch(PROJECTS)
        payloads = await self._api.list_projects()
        self._store.replace_collection(PROJECTS, _parse_many(Project.from_api, payloads, "project"), seq=seq)
        return self._store.projects()

    async def load_project(self, project_id: str) -> Project:
        """Fetch one project. NotFoundError means it is gone: go back to the list."""
        try:
            payload = await self._api.get_project(project_id)
        except NotFoundError:
            self._store.remove_one(PROJECTS, project_id)
            raise
        try:
            project = Project.from_api(payload)
        except (ValueError, TypeError) as e:
            raise ServerError("The service sent an unexpected project record.") from e
        self._store.upsert_one(PROJECTS, project)
        return project

    async def load_tasks(self, task_filter: TaskFilter | None = None) -> tuple[Task, ...]:
        if task_filter is not None:
            self._task_filter = task_filter
        query = self._task_filter.to_query()
        seq = self._store.begin_fetch(TASKS)
        payloads = await self._api.list_tasks(query)
        self._store.replace_collection(TASKS, _parse_many(Task.from_api, payloads, "task"), seq=seq)
        return self._store.tasks()

    async def load_members(self) -> tuple[User, ...]:
        seq = self._store.begin_fetch(MEMBERS)
        payloads = await self._api.list_members()
        self._store.replace_collection(MEMBERS, _parse_many(User.from_api, payloads, "member"), seq=seq)
        return self._store.members()

    async def load_dashboard(self) -> DashboardSummary:
        payload = await self._api.get_dashboard()
        try:
            return DashboardSummary.from_api(payload)
        except (ValueError, TypeError) as e:
            raise ServerError("The service sent an unexpected dashboard.") from e

    # ---- projects ----

    async def create_project(self, draft: ProjectDraft) -> None:
        if not draft.name.strip():
            raise RequiredFieldError("name")
        try:
            await self._api.create_project(draft.to_api())
        except TrackerError as e:
            self._fail(e, "Failed to create project")
            raise
        logger.info("Project created name=%s", draft.name.strip())
        self._notify("Project created!", False)
        await self._refetch(self.load_projects, "Failed to load projects")

    async def update_project(self, project_id: str, draft: ProjectDraft) -> None:
        if not draft.name.strip():
            raise RequiredFieldError("name")
        try:
            await self._api.update_project(project_id, draft.to_api())
        except TrackerError as e:
            self._fail(e, "Failed to update project")
            raise
        self._notify("Project updated!", False)
        await self._refetch(self.load_projects, "Failed to load projects")

    async def delete_project(self, project_id: str) -> bool:
        """Returns False if the user declined the confirmation."""
        if not self._confirm("Delete this project and all its tasks?"):
            return False

        pendings = self._store.apply_optimistic_project_removal(project_id)
        try:
            await self._api.delete_project(project_id)
        except TrackerError as e:
            for pending in reversed(pendings):
                self._store.rollback(pending)
            self._fail(e, "Failed to delete project")
            raise
        for pending in pendings:
            self._store.confirm(pending)

        logger.info("Project deleted id=%s (%d local tasks dropped)", project_id, max(0, len(pendings) - 1))
        self._notify("Project deleted", False)
        await self._refetch(self.load_projects, "Failed to load projects")
        return True

    # ---- tasks ----

    @staticmethod
    def _check_task_draft(draft: TaskDraft) -> None:
        if not draft.title.strip():
            raise RequiredFieldError("title")
        if not (draft.project_id or "").strip():
            raise RequiredFieldError("project")

    async def create_task(self, draft: TaskDraft) -> None:
        self._check_task_draft(draft)
        try:
            await self._api.create_task(draft.to_api())
        except TrackerError as e:
            self._fail(e, "Failed to create task")
            raise
        logger.info("Task created title=%s project=%s", draft.title.strip(), draft.project_id)
        self._notify("Task created!", False)
        await self._refetch(self.load_tasks, "Failed to load tasks")

    async def update_task(self, task_id: str, draft: TaskDraft) -> None:
        self._check_task_draft(draft)
        try:
            await self._api.update_task(task_id, draft.to_api(clear_absent=True))
        except TrackerError as e:
            self._fail(e, "Failed to update")
            raise
        self._notify("Task updated!", False)
        await self._refetch(self.load_tasks, "Failed to load tasks")

    async def change_stage(self, task_id: str, status: TaskStatus | str) -> None:
        new_status = TaskStatus.from_api(status)

        pending: PendingMutation | None = None
        if self._store.get(TASKS, task_id) is not None:
            pending = self._store.apply_optimistic_patch(TASKS, task_id, status=new_status)

        try:
            await self._api.update_task(task_id, {"status": new_status.value})
        except TrackerError as e:
            if pending is not None:
                self._store.rollback(pending)
            self._fail(e, "Failed to update")
            raise

        if pending is not None:
            self._store.confirm(pending)
        logger.debug("Task %s -> %s", task_id, new_status.value)
        self._notify("Status updated", False)

    async def delete_task(self, task_id: str) -> bool:
        """Returns False if the user declined the confirmation."""
        if not self._confirm("Delete this task?"):
            return False

        pending = self._store.apply_optimistic_removal(TASKS, task_id)
        try:
            await self._api.delete_task(task_id)
        except TrackerError as e:
            if pending is not None:
                self._store.rollback(pending)
            self._fail(e, "Failed to delete")
            raise

        if pending is not None:
            self._store.confirm(pending)
        logger.info("Task deleted id=%s", task_id)
        self._notify("Task deleted", False)
        return True
