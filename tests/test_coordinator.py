# tests/test_coordinator.py

from __future__ import annotations

import asyncio

import pytest

from flowdesk.errors import NotFoundError, PermissionDeniedError, RequiredFieldError, ServerError, TransportError
from flowdesk.tasks.coordinator import MutationCoordinator
from flowdesk.tasks.filters import TaskFilter
from flowdesk.tasks.models import ProjectDraft, TaskDraft, TaskStatus
from flowdesk.tasks.store import PROJECTS, TASKS, EntityStore

from .fakes import FakeTrackerApi, RecordingNotifier, ScriptedConfirmer, task_payload


def _seed(api: FakeTrackerApi) -> None:
    api.projects = [{"_id": "p1", "name": "Site"}, {"_id": "p2", "name": "App"}]
    api.tasks = [
        task_payload("a", project="p1", status="Todo"),
        task_payload("b", project="p2", status="Todo"),
        task_payload("c", project="p1", status="Done"),
    ]


class OutOfOrderApi(FakeTrackerApi):
    """GET /tasks responses are released by the test, in any order."""

    def __init__(self) -> None:
        super().__init__()
        self.releases: list[asyncio.Event] = []

    async def list_tasks(self, query=None):
        release = asyncio.Event()
        self.releases.append(release)
        await release.wait()
        return await super().list_tasks(query)


@pytest.mark.asyncio
async def test_create_project_requires_name_before_any_request(
    coordinator: MutationCoordinator, api: FakeTrackerApi
) -> None:
    with pytest.raises(RequiredFieldError) as exc:
        await coordinator.create_project(ProjectDraft(name="   "))

    assert exc.value.field == "name"
    assert api.calls == []


@pytest.mark.asyncio
async def test_create_project_posts_once_then_refetches(
    coordinator: MutationCoordinator, api: FakeTrackerApi, store: EntityStore, notifier: RecordingNotifier
) -> None:
    await coordinator.create_project(ProjectDraft(name="Launch", description="Q3"))

    assert api.calls == [("POST", "/projects"), ("GET", "/projects")]
    assert api.bodies == [{"name": "Launch", "description": "Q3"}]
    assert [p.name for p in store.projects()] == ["Launch"]
    assert notifier.infos == ["Project created!"]


@pytest.mark.asyncio
async def test_update_project_patches_then_refetches(
    coordinator: MutationCoordinator, api: FakeTrackerApi, store: EntityStore, notifier: RecordingNotifier
) -> None:
    _seed(api)
    await coordinator.load_projects()
    api.calls.clear()

    await coordinator.update_project("p1", ProjectDraft(name=" Site v2 ", description="Relaunch"))

    assert api.calls == [("PATCH", "/projects/p1"), ("GET", "/projects")]
    assert api.bodies == [{"name": "Site v2", "description": "Relaunch"}]
    assert store.get(PROJECTS, "p1").name == "Site v2"
    assert notifier.infos == ["Project updated!"]


@pytest.mark.asyncio
async def test_update_project_requires_name_before_any_request(
    coordinator: MutationCoordinator, api: FakeTrackerApi
) -> None:
    with pytest.raises(RequiredFieldError) as exc:
        await coordinator.update_project("p1", ProjectDraft(name=""))

    assert exc.value.field == "name"
    assert api.calls == []


@pytest.mark.asyncio
async def test_failed_refetch_does_not_fail_the_mutation(
    coordinator: MutationCoordinator, api: FakeTrackerApi, notifier: RecordingNotifier
) -> None:
    api.fail_next["list_projects"] = TransportError()

    await coordinator.create_project(ProjectDraft(name="Launch"))

    assert notifier.infos == ["Project created!"]
    assert notifier.errors == ["Failed to load projects"]


@pytest.mark.asyncio
async def test_delete_project_cascades_on_the_service(
    coordinator: MutationCoordinator, api: FakeTrackerApi, store: EntityStore
) -> None:
    _seed(api)
    await coordinator.load_projects()
    await coordinator.load_tasks()
    api.calls.clear()

    assert await coordinator.delete_project("p1") is True
    assert api.calls == [("DELETE", "/projects/p1"), ("GET", "/projects")]

    await coordinator.load_tasks()
    assert [p.id for p in store.projects()] == ["p2"]
    assert [t.id for t in store.tasks()] == ["b"]


@pytest.mark.asyncio
async def test_delete_project_failure_restores_project_and_tasks(
    coordinator: MutationCoordinator, api: FakeTrackerApi, store: EntityStore, notifier: RecordingNotifier
) -> None:
    _seed(api)
    await coordinator.load_projects()
    await coordinator.load_tasks()
    api.fail_next["delete_project"] = PermissionDeniedError("Admins only", status_code=403)

    with pytest.raises(PermissionDeniedError):
        await coordinator.delete_project("p1")

    assert [p.id for p in store.projects()] == ["p1", "p2"]
    assert [t.id for t in store.tasks()] == ["a", "b", "c"]
    assert notifier.errors == ["Admins only"]
    assert store.pending() == []


@pytest.mark.asyncio
async def test_declined_confirmation_sends_nothing(
    coordinator: MutationCoordinator, api: FakeTrackerApi, store: EntityStore, confirmer: ScriptedConfirmer
) -> None:
    _seed(api)
    await coordinator.load_tasks()
    api.calls.clear()
    confirmer.answer = False

    assert await coordinator.delete_task("a") is False
    assert await coordinator.delete_project("p1") is False
    assert api.calls == []
    assert confirmer.prompts == ["Delete this task?", "Delete this project and all its tasks?"]
    assert len(store.tasks()) == 3


@pytest.mark.asyncio
async def test_stage_change_is_visible_before_the_service_answers(
    coordinator: MutationCoordinator, api: FakeTrackerApi, store: EntityStore, notifier: RecordingNotifier
) -> None:
    _seed(api)
    await coordinator.load_tasks()
    api.gate = asyncio.Event()

    in_flight = asyncio.create_task(coordinator.change_stage("a", "In Progress"))
    await asyncio.sleep(0)

    assert store.get(TASKS, "a").status is TaskStatus.IN_PROGRESS
    assert len(store.pending()) == 1

    api.gate.set()
    await in_flight

    assert store.get(TASKS, "a").status is TaskStatus.IN_PROGRESS
    assert store.pending() == []
    assert api.bodies[-1] == {"status": "In Progress"}
    assert notifier.infos == ["Status updated"]


@pytest.mark.asyncio
async def test_stage_change_rolls_back_on_failure(
    coordinator: MutationCoordinator, api: FakeTrackerApi, store: EntityStore, notifier: RecordingNotifier
) -> None:
    _seed(api)
    await coordinator.load_tasks()
    api.fail_next["update_task"] = ServerError(status_code=500)

    with pytest.raises(ServerError):
        await coordinator.change_stage("a", TaskStatus.DONE)

    assert store.get(TASKS, "a").status is TaskStatus.TODO
    assert notifier.errors == ["Failed to update"]


@pytest.mark.asyncio
async def test_delete_task_is_optimistic_and_rolls_back(
    coordinator: MutationCoordinator, api: FakeTrackerApi, store: EntityStore, notifier: RecordingNotifier
) -> None:
    _seed(api)
    await coordinator.load_tasks()
    api.gate = asyncio.Event()
    api.fail_next["delete_task"] = TransportError()

    in_flight = asyncio.create_task(coordinator.delete_task("b"))
    await asyncio.sleep(0)
    assert [t.id for t in store.tasks()] == ["a", "c"]

    api.gate.set()
    with pytest.raises(TransportError):
        await in_flight

    assert [t.id for t in store.tasks()] == ["a", "b", "c"]
    assert notifier.errors == ["Failed to delete"]


@pytest.mark.asyncio
async def test_create_task_guards_and_refetches_with_current_filter(
    coordinator: MutationCoordinator, api: FakeTrackerApi
) -> None:
    _seed(api)

    with pytest.raises(RequiredFieldError) as exc:
        await coordinator.create_task(TaskDraft(title="", project_id="p1"))
    assert exc.value.field == "title"
    with pytest.raises(RequiredFieldError) as exc:
        await coordinator.create_task(TaskDraft(title="Write docs", project_id=""))
    assert exc.value.field == "project"
    assert api.calls == []

    await coordinator.load_tasks(TaskFilter(project_id="p1"))
    await coordinator.create_task(TaskDraft(title="Write docs", project_id="p1"))

    assert api.calls[-2:] == [("POST", "/tasks"), ("GET", "/tasks")]
    assert api.queries[-1] == {"projectId": "p1"}
    assert "assignedTo" not in api.bodies[-1]
    assert "dueDate" not in api.bodies[-1]


@pytest.mark.asyncio
async def test_newer_task_fetch_wins_regardless_of_arrival_order(store: EntityStore) -> None:
    api = OutOfOrderApi()
    _seed(api)
    coordinator = MutationCoordinator(api, store, confirm=ScriptedConfirmer())

    older = asyncio.create_task(coordinator.load_tasks(TaskFilter(status=TaskStatus.DONE)))
    await asyncio.sleep(0)
    newer = asyncio.create_task(coordinator.load_tasks(TaskFilter()))
    await asyncio.sleep(0)

    api.releases[1].set()
    await newer
    api.releases[0].set()
    await older

    assert [t.id for t in store.tasks()] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_missing_project_is_dropped_and_reported(
    coordinator: MutationCoordinator, api: FakeTrackerApi, store: EntityStore
) -> None:
    _seed(api)
    await coordinator.load_projects()
    api.projects = [p for p in api.projects if p["_id"] != "p2"]

    with pytest.raises(NotFoundError):
        await coordinator.load_project("p2")
    assert store.get(PROJECTS, "p2") is None


@pytest.mark.asyncio
async def test_malformed_records_are_skipped(
    coordinator: MutationCoordinator, api: FakeTrackerApi, store: EntityStore
) -> None:
    api.tasks = [task_payload("ok"), {"_id": "bad", "title": "?", "status": "Blocked", "projectId": "p1"}, "junk"]

    await coordinator.load_tasks()

    assert [t.id for t in store.tasks()] == ["ok"]
