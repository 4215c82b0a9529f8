# src/flowdesk/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the HTTP client and local storage swappable and makes testing easier.
"""

from typing import Any, Callable, Protocol

# Raw JSON objects as the persistence service sends them.
Payload = dict[str, Any]


class TrackerApi(Protocol):
    """The persistence service, one coroutine per endpoint."""

    # Auth / organization membership
    async def login(self, *, email: str, password: str) -> Payload: ...
    async def register(self, *, name: str, email: str, password: str, org_name: str) -> Payload: ...
    async def join_org(self, *, name: str, email: str, password: str, org_name: str) -> Payload: ...

    # Reads
    async def get_dashboard(self) -> Payload: ...
    async def list_projects(self) -> list[Payload]: ...
    async def get_project(self, project_id: str) -> Payload: ...
    async def list_tasks(self, query: dict[str, str] | None = None) -> list[Payload]: ...
    async def list_members(self) -> list[Payload]: ...

    # Writes
    async def create_project(self, fields: Payload) -> Payload: ...
    async def update_project(self, project_id: str, fields: Payload) -> Payload: ...
    async def delete_project(self, project_id: str) -> None: ...
    async def create_task(self, fields: Payload) -> Payload: ...
    async def update_task(self, task_id: str, fields: Payload) -> Payload: ...
    async def delete_task(self, task_id: str) -> None: ...


class SessionStorage(Protocol):
    """
    Durable local storage for the session (survives restarts).

    Only two keys are ever used: "token" and "user".
    """

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def remove(self, key: str) -> None: ...


# Blocking yes/no prompt shown before destructive actions.
Confirmer = Callable[[str], bool]

# User-visible notice (toast): message, is_error.
Notifier = Callable[[str, bool], None]
