# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from flowdesk.core.session import SessionContext
from flowdesk.core.state import AppState
from flowdesk.tasks.coordinator import MutationCoordinator
from flowdesk.tasks.store import EntityStore

from .fakes import FakeTrackerApi, MemorySessionStorage, RecordingNotifier, ScriptedConfirmer


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="flowdesk-test",
        log_level="DEBUG",
        api_base_url="http://tracker.test/api",
        connect_timeout_seconds=1.0,
        read_timeout_seconds=1.0,
        data_dir=tmp_path / "data",
        session_path=tmp_path / "data" / "session.json",
        confirm_destructive=True,
    )


@pytest.fixture()
def api() -> FakeTrackerApi:
    return FakeTrackerApi()


@pytest.fixture()
def store() -> EntityStore:
    return EntityStore()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def confirmer() -> ScriptedConfirmer:
    return ScriptedConfirmer(answer=True)


@pytest.fixture()
def coordinator(
    api: FakeTrackerApi,
    store: EntityStore,
    confirmer: ScriptedConfirmer,
    notifier: RecordingNotifier,
) -> MutationCoordinator:
    return MutationCoordinator(api, store, confirm=confirmer, notify=notifier)


@pytest.fixture()
def session_storage() -> MemorySessionStorage:
    return MemorySessionStorage()


@pytest.fixture()
def session(api: FakeTrackerApi, store: EntityStore, session_storage: MemorySessionStorage) -> SessionContext:
    ctx = SessionContext(api, session_storage)
    ctx.add_logout_hook(store.clear)
    return ctx


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    api: FakeTrackerApi,
    session: SessionContext,
    store: EntityStore,
    coordinator: MutationCoordinator,
) -> AppState:
    """AppState wired with the in-memory tracker fake (logged out)."""
    return AppState(settings=settings, api=api, session=session, store=store, coordinator=coordinator)
