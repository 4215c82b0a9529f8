# tests/test_views.py

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from flowdesk.core.session import SessionContext
from flowdesk.errors import ServerError
from flowdesk.tasks.coordinator import MutationCoordinator
from flowdesk.tasks.filters import TaskFilter
from flowdesk.tasks.models import TaskStatus
from flowdesk.tasks.views import (
    PROJECTS_ROUTE,
    DashboardView,
    ProjectDetailView,
    ProjectsView,
    TaskBoardView,
    TeamView,
)

from .fakes import ADMIN_LOGIN, MEMBER_LOGIN, FakeTrackerApi, task_payload, user_payload

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


def _seed(api: FakeTrackerApi) -> None:
    api.projects = [{"_id": "p1", "name": "Site", "totalTasks": 2, "doneTasks": 1, "completionPercentage": 50}]
    api.tasks = [
        task_payload("a", project="p1", status="Todo", priority="High", assignee="u1"),
        task_payload("b", project="p2", status="Done", assignee="u1"),
        task_payload("c", project="p1", status="Done", assignee="u2"),
    ]
    api.members = [user_payload("u1", "Ada Admin", "Admin"), user_payload("u2", "Bob Member")]


@pytest.mark.asyncio
async def test_dashboard_load_and_failure(coordinator: MutationCoordinator, api: FakeTrackerApi) -> None:
    api.dashboard = {
        "totalTasks": 1,
        "tasksByStatus": {"Todo": 1},
        "recentTasks": [task_payload("a", status="Todo", due=(NOW - timedelta(days=1)).isoformat())],
    }
    view = DashboardView(coordinator)
    await view.load()

    assert view.error is None
    assert view.status_histogram.counts["Todo"] == 1
    assert [c.overdue for c in view.recent_cards(NOW)] == [True]

    api.fail_next["get_dashboard"] = ServerError(status_code=500)
    await view.load()

    assert view.error == "Failed to load dashboard"
    # The previous summary stays on screen.
    assert view.summary is not None
    assert view.loading is False


@pytest.mark.asyncio
async def test_projects_view_controls_follow_role(
    coordinator: MutationCoordinator, api: FakeTrackerApi, session: SessionContext
) -> None:
    _seed(api)
    view = ProjectsView(coordinator, session)

    api.auth_response = MEMBER_LOGIN
    await session.login("bob@example.com", "pw")
    await view.load()
    assert view.can_manage is False
    assert view.projects[0].completion_percentage == 50

    session.logout()
    api.auth_response = ADMIN_LOGIN
    await session.login("ada@example.com", "pw")
    assert view.can_manage is True


@pytest.mark.asyncio
async def test_project_detail_loads_project_tasks_and_members(
    coordinator: MutationCoordinator, api: FakeTrackerApi
) -> None:
    _seed(api)
    view = ProjectDetailView(coordinator, "p1")
    await view.load()

    assert view.project is not None and view.project.name == "Site"
    assert view.redirect_to is None
    assert api.queries[-1] == {"projectId": "p1"}
    board = view.board(NOW)
    assert [c.task.id for c in board[TaskStatus.TODO]] == ["a"]
    assert [c.task.id for c in board[TaskStatus.DONE]] == ["c"]
    assert board[TaskStatus.BACKLOG] == ()
    assert len(coordinator.store.members()) == 2


@pytest.mark.asyncio
async def test_project_detail_redirects_when_project_is_gone(
    coordinator: MutationCoordinator, api: FakeTrackerApi
) -> None:
    _seed(api)
    view = ProjectDetailView(coordinator, "missing")
    await view.load()

    assert view.project is None
    assert view.redirect_to == PROJECTS_ROUTE


@pytest.mark.asyncio
async def test_task_board_filters(coordinator: MutationCoordinator, api: FakeTrackerApi) -> None:
    _seed(api)
    board = TaskBoardView(coordinator)
    await board.load()
    assert board.count_label == "3 tasks found"
    assert board.show_reset is False

    assert await board.set_filter("priority", "High") is True
    assert board.count_label == "1 task found"
    assert board.show_reset is True

    calls = len(api.calls)
    assert await board.set_filter("priority", "High") is False
    assert len(api.calls) == calls

    assert await board.clear_filters() is True
    assert api.queries[-1] is None
    assert await board.clear_filters() is False


@pytest.mark.asyncio
async def test_team_view_always_uses_full_task_set(coordinator: MutationCoordinator, api: FakeTrackerApi) -> None:
    _seed(api)
    await coordinator.load_tasks(TaskFilter(project_id="p1"))

    view = TeamView(coordinator)
    await view.load()

    assert api.queries[-1] is None
    assert [m.id for m in view.admins] == ["u1"]
    assert [m.id for m in view.regular_members] == ["u2"]
    assert view.workload["u1"].assigned_total == 2
    assert view.workload["u1"].percentage == 50
    assert view.workload["u2"].percentage == 100
