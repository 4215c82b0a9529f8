# tests/test_session.py

from __future__ import annotations

import json
import os
import stat
from pathlib import Path

import pytest

from flowdesk.core.session import TOKEN_KEY, USER_KEY, FileSessionStorage, SessionContext
from flowdesk.errors import RequiredFieldError, UnauthenticatedError, ValidationError
from flowdesk.tasks.models import Role, Task
from flowdesk.tasks.store import TASKS, EntityStore

from .fakes import ADMIN_LOGIN, MEMBER_LOGIN, FakeTrackerApi, MemorySessionStorage, task_payload


@pytest.mark.asyncio
async def test_login_persists_identity_and_token(
    session: SessionContext, api: FakeTrackerApi, session_storage: MemorySessionStorage
) -> None:
    api.auth_response = ADMIN_LOGIN

    ident = await session.login(" ada@example.com ", "pw")

    assert ident.role is Role.ADMIN
    assert ident.org_name == "Acme"
    assert session.is_authenticated and session.is_admin
    assert session.token == "tok-admin"
    assert api.bodies == [{"email": "ada@example.com", "password": "pw"}]

    # A fresh context over the same storage comes back logged in.
    again = SessionContext(api, session_storage)
    assert again.restore() == ident
    assert again.token == "tok-admin"


@pytest.mark.asyncio
async def test_login_requires_fields_before_any_request(session: SessionContext, api: FakeTrackerApi) -> None:
    with pytest.raises(RequiredFieldError) as exc:
        await session.login("", "pw")
    assert exc.value.field == "email"
    assert api.calls == []


@pytest.mark.asyncio
async def test_rejected_login_leaves_session_empty(session: SessionContext, api: FakeTrackerApi) -> None:
    with pytest.raises(UnauthenticatedError) as exc:
        await session.login("ada@example.com", "wrong")

    assert exc.value.message == "Invalid credentials"
    assert not session.is_authenticated
    with pytest.raises(UnauthenticatedError):
        session.require_identity()


@pytest.mark.asyncio
async def test_register_and_join_send_org_name(session: SessionContext, api: FakeTrackerApi) -> None:
    api.auth_response = ADMIN_LOGIN
    await session.register_and_create_org("Ada", "ada@example.com", "pw", "Acme")

    api.auth_response = MEMBER_LOGIN
    ident = await session.join_existing_org("Bob", "bob@example.com", "pw", " Acme ")

    assert [c[1] for c in api.calls] == ["/auth/register", "/org/join"]
    assert api.bodies[1]["orgName"] == "Acme"
    assert ident.role is Role.MEMBER
    assert not session.is_admin


@pytest.mark.asyncio
async def test_register_requires_org_name(session: SessionContext, api: FakeTrackerApi) -> None:
    with pytest.raises(RequiredFieldError) as exc:
        await session.register_and_create_org("Ada", "ada@example.com", "pw", " ")
    assert exc.value.field == "orgName"


@pytest.mark.asyncio
async def test_response_without_token_is_rejected(session: SessionContext, api: FakeTrackerApi) -> None:
    api.auth_response = {"user": ADMIN_LOGIN["user"]}

    with pytest.raises(ValidationError):
        await session.login("ada@example.com", "pw")
    assert not session.is_authenticated


@pytest.mark.asyncio
async def test_flat_login_payload_is_accepted(session: SessionContext, api: FakeTrackerApi) -> None:
    api.auth_response = {"token": "t", "_id": "u9", "name": "Flat", "email": "f@example.com", "role": "Member"}

    ident = await session.login("f@example.com", "pw")
    assert ident.id == "u9"


@pytest.mark.asyncio
async def test_logout_clears_storage_and_store(
    session: SessionContext, api: FakeTrackerApi, store: EntityStore, session_storage: MemorySessionStorage
) -> None:
    api.auth_response = ADMIN_LOGIN
    await session.login("ada@example.com", "pw")
    store.upsert_one(TASKS, Task.from_api(task_payload("a")))

    session.logout()

    assert session.identity is None
    assert session.token is None
    assert session_storage.data == {}
    assert store.tasks() == ()


def test_corrupt_saved_identity_starts_logged_out(api: FakeTrackerApi) -> None:
    storage = MemorySessionStorage()
    storage.data = {TOKEN_KEY: "t", USER_KEY: "{not json"}

    session = SessionContext(api, storage)

    assert session.restore() is None
    assert storage.data == {}


def test_file_storage_roundtrip_and_permissions(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "session.json"
    storage = FileSessionStorage(path)

    storage.set(TOKEN_KEY, "abc")
    storage.set(USER_KEY, "{}")

    assert json.loads(path.read_text("utf-8")) == {TOKEN_KEY: "abc", USER_KEY: "{}"}
    assert FileSessionStorage(path).get(TOKEN_KEY) == "abc"
    if os.name == "posix":
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    storage.remove(TOKEN_KEY)
    storage.remove(USER_KEY)
    assert not path.exists()


def test_file_storage_ignores_unreadable_file(tmp_path: Path) -> None:
    path = tmp_path / "session.json"
    path.write_text("definitely not json", "utf-8")

    assert FileSessionStorage(path).get(TOKEN_KEY) is None
